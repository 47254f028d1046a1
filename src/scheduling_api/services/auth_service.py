"""Authentication service: registration, login, logout, password reset, token checks."""

import asyncio
import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_api.auth.jwt import create_access_token, decode_token
from scheduling_api.auth.passwords import hash_password, verify_password
from scheduling_api.config import get_settings
from scheduling_api.database.models import User, UserRole
from scheduling_api.exceptions import AuthenticationError, ConflictError, ValidationError
from scheduling_api.repositories.token_repository import PasswordResetRepository, TokenRepository
from scheduling_api.repositories.user_repository import UserRepository
from scheduling_api.services.token_cache import TokenCache
from scheduling_api.utils.time import utcnow

logger = logging.getLogger(__name__)

VALID_ROLES = tuple(role.value for role in UserRole)


@dataclass
class CurrentUser:
    """Authenticated actor resolved from a bearer token."""

    user_id: str
    email: str
    role: str
    token: Optional[str] = None

    @property
    def is_manager(self) -> bool:
        return self.role == UserRole.MANAGER.value

    @property
    def is_developer(self) -> bool:
        return self.role == UserRole.DEVELOPER.value


def _hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AuthService:
    """Service for authentication operations."""

    def __init__(self, session: AsyncSession, token_cache: TokenCache):
        """
        Initialize auth service.

        Args:
            session: Database session
            token_cache: Token lookup cache
        """
        self.users = UserRepository(session)
        self.tokens = TokenRepository(session)
        self.resets = PasswordResetRepository(session)
        self.token_cache = token_cache
        self.settings = get_settings()

    def _check_password(self, password: Optional[str]) -> None:
        min_length = self.settings.security.password_min_length
        if not password or len(password) < min_length:
            raise ValidationError(f"Password must be at least {min_length} characters")

    async def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        role: str,
        phone: Optional[str] = None,
        department: Optional[str] = None,
    ) -> User:
        """Create a user account."""
        if not (first_name or "").strip() or not (last_name or "").strip():
            raise ValidationError("First name and last name are required")
        if role not in VALID_ROLES:
            raise ValidationError("Role must be Manager or Developer")
        self._check_password(password)
        if await self.users.email_exists(email):
            raise ConflictError("User with this email already exists")

        hashed = await asyncio.to_thread(hash_password, password)
        user = await self.users.create_user(
            first_name=first_name,
            last_name=last_name,
            email=email,
            hashed_password=hashed,
            role=role,
            phone=phone,
            department=department,
        )
        logger.info(f"Registered user {user.id} with role {role}")
        return user

    async def login(self, email: str, password: str) -> Tuple[User, str, datetime]:
        """
        Verify credentials and issue a stored, cached access token.

        Returns:
            Tuple of (user, token, expiry)
        """
        user = await self.users.get_by_email(email)
        if user is None or not await asyncio.to_thread(
            verify_password, password, user.hashed_password
        ):
            raise AuthenticationError("Invalid email or password")

        token, expires_at = create_access_token(user.id, user.email, user.role)
        await self.tokens.store(token, user.id, expires_at)
        await self.token_cache.set(token, user.id)
        logger.info(f"User {user.id} logged in")
        return user, token, expires_at

    async def logout(self, token: str) -> None:
        """Invalidate a single token."""
        await self.tokens.delete_token(token)
        await self.token_cache.delete(token)

    async def authenticate(self, token: str) -> CurrentUser:
        """
        Resolve a bearer token to the acting user.

        The token must be known (cache first, then the durable store, which
        refills the cache) and must carry a valid signature and expiry.
        """
        cached = await self.token_cache.get(token)
        if cached is None:
            stored = await self.tokens.get_valid(token)
            if stored is None:
                raise AuthenticationError("Invalid or expired token")
            await self.token_cache.set(token, stored.user_id)

        payload = decode_token(token)
        if cached is not None and cached.get("userId") != payload.user_id:
            raise AuthenticationError("Invalid or expired token")
        return CurrentUser(
            user_id=payload.user_id, email=payload.email, role=payload.role, token=token
        )

    async def request_password_reset(self, email: str) -> Optional[str]:
        """
        Create a reset token for ``email``.

        Returns:
            The raw reset token, or None when no account has this email
        """
        user = await self.users.get_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return None

        raw_token = secrets.token_hex(32)
        await self.resets.delete_for_user(user.id)
        await self.resets.create(
            user_id=user.id,
            token_hash=_hash_reset_token(raw_token),
            expires_at=utcnow()
            + timedelta(minutes=self.settings.security.password_reset_expire_minutes),
        )
        logger.info(f"Password reset token issued for user {user.id}")
        return raw_token

    async def reset_password(self, token: str, new_password: str) -> None:
        """Set a new password and revoke every token of the user."""
        if not token:
            raise ValidationError("Token and new password are required")
        self._check_password(new_password)

        record = await self.resets.find_valid(_hash_reset_token(token))
        if record is None:
            raise ValidationError("Invalid or expired reset token")

        user = await self.users.get_by_id(record.user_id)
        if user is None:
            raise ValidationError("Invalid or expired reset token")

        hashed = await asyncio.to_thread(hash_password, new_password)
        await self.users.update(user, hashed_password=hashed)
        await self.resets.invalidate_for_user(user.id)

        revoked = await self.tokens.list_for_user(user.id)
        await self.tokens.delete_for_user(user.id)
        for value in revoked:
            await self.token_cache.delete(value)
        logger.info(f"Password reset for user {user.id}; revoked {len(revoked)} tokens")


def get_auth_service(session: AsyncSession, token_cache: TokenCache) -> AuthService:
    """Get an auth service instance."""
    return AuthService(session, token_cache)
