"""JWT token handling."""

import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from jose import JWTError, jwt

from scheduling_api.config import get_settings
from scheduling_api.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


class TokenPayload:
    """JWT token payload structure."""

    def __init__(
        self,
        user_id: str,
        email: str,
        role: str,
        exp: Optional[int] = None,
        iat: Optional[int] = None,
        token_type: str = "access",
        jti: Optional[str] = None,
    ):
        """Initialize token payload."""
        settings = get_settings()
        self.user_id = user_id
        self.email = email
        self.role = role
        self.token_type = token_type
        self.jti = jti or uuid.uuid4().hex
        self.iat = iat or int(time.time())
        self.exp = exp or self.iat + settings.jwt.access_token_expire_hours * 3600

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.exp, tz=timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JWT encoding."""
        return {
            "sub": self.user_id,
            "email": self.email,
            "role": self.role,
            "exp": self.exp,
            "iat": self.iat,
            "type": self.token_type,
            "jti": self.jti,
        }

    @classmethod
    def from_dict(cls, claims: Dict[str, Any]) -> "TokenPayload":
        """Create TokenPayload from decoded JWT claims."""
        return cls(
            user_id=claims.get("sub", ""),
            email=claims.get("email", ""),
            role=claims.get("role", ""),
            exp=claims.get("exp"),
            iat=claims.get("iat"),
            token_type=claims.get("type", "access"),
            jti=claims.get("jti"),
        )


class JWTTokenHandler:
    """Handler for JWT token generation and validation."""

    def __init__(self):
        """Initialize JWT token handler."""
        self.config = get_settings().jwt
        self.secret_key = self.config.secret_key
        self.algorithm = self.config.algorithm

    def encode_token(self, payload: TokenPayload) -> str:
        """Encode a token payload into a JWT token."""
        try:
            token = jwt.encode(payload.to_dict(), self.secret_key, algorithm=self.algorithm)
            logger.debug(f"Generated JWT token for user: {payload.user_id}")
            return token
        except JWTError as e:
            logger.error(f"Error encoding JWT token: {e}")
            raise AuthenticationError("Failed to generate token") from e

    def decode_token(self, token: str) -> TokenPayload:
        """Decode and validate a JWT token (signature and expiry)."""
        try:
            claims = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_signature": True, "verify_exp": True},
            )
        except JWTError as e:
            logger.warning(f"JWT token validation failed: {e}")
            raise AuthenticationError("Invalid or expired token") from e

        if claims.get("type", "access") != "access":
            raise AuthenticationError("Invalid token type")
        if not claims.get("sub"):
            raise AuthenticationError("Invalid token payload")

        payload = TokenPayload.from_dict(claims)
        logger.debug(f"Decoded JWT token for user: {payload.user_id}")
        return payload

    def create_access_token(
        self,
        user_id: str,
        email: str,
        role: str,
        expires_delta: Optional[timedelta] = None,
    ) -> Tuple[str, datetime]:
        """
        Create an access token for a user.

        Returns:
            Tuple of (encoded token, absolute expiry)
        """
        now = int(time.time())
        lifetime = expires_delta or timedelta(hours=self.config.access_token_expire_hours)
        payload = TokenPayload(
            user_id=user_id,
            email=email,
            role=role,
            iat=now,
            exp=now + int(lifetime.total_seconds()),
        )
        return self.encode_token(payload), payload.expires_at


# Global handler instance
_handler: Optional[JWTTokenHandler] = None


def get_jwt_handler() -> JWTTokenHandler:
    """Get the global JWT token handler instance."""
    global _handler
    if _handler is None:
        _handler = JWTTokenHandler()
    return _handler


def create_access_token(
    user_id: str, email: str, role: str, expires_delta: Optional[timedelta] = None
) -> Tuple[str, datetime]:
    """Create an access token for a user (convenience function)."""
    return get_jwt_handler().create_access_token(user_id, email, role, expires_delta)


def decode_token(token: str) -> TokenPayload:
    """Decode and validate a JWT token (convenience function)."""
    return get_jwt_handler().decode_token(token)
