"""Unit tests for JWT token handling."""

import time
from datetime import timedelta

import pytest
from jose import jwt

from scheduling_api.auth.jwt import (
    JWTTokenHandler,
    TokenPayload,
    create_access_token,
    decode_token,
    get_jwt_handler,
)
from scheduling_api.config import get_settings
from scheduling_api.exceptions import AuthenticationError


class TestJWTTokenCreation:
    """Tests for JWT token creation."""

    def test_create_access_token(self):
        """Test creating an access token."""
        token, expires_at = create_access_token("user-1", "test@example.com", "Manager")

        assert isinstance(token, str)
        assert len(token) > 0
        assert expires_at.tzinfo is not None

    def test_access_token_contains_user_info(self):
        """Test that access token contains user information."""
        token, _ = create_access_token("user-1", "test@example.com", "Developer")
        payload = decode_token(token)

        assert payload.user_id == "user-1"
        assert payload.email == "test@example.com"
        assert payload.role == "Developer"
        assert payload.token_type == "access"

    def test_access_token_expiration(self):
        """Test that the default lifetime follows the configured hours."""
        hours = get_settings().jwt.access_token_expire_hours
        token, expires_at = create_access_token("user-1", "test@example.com", "Manager")
        payload = decode_token(token)

        expected_exp = int(time.time()) + hours * 3600
        assert abs(payload.exp - expected_exp) < 120
        assert int(expires_at.timestamp()) == payload.exp

    def test_tokens_are_unique(self):
        """Test two tokens issued in the same second differ."""
        first, _ = create_access_token("user-1", "test@example.com", "Manager")
        second, _ = create_access_token("user-1", "test@example.com", "Manager")
        assert first != second

    def test_payload_round_trip(self):
        """Test claims survive conversion to and from a dict."""
        payload = TokenPayload(user_id="user-1", email="a@example.com", role="Manager")
        restored = TokenPayload.from_dict(payload.to_dict())
        assert restored.user_id == "user-1"
        assert restored.jti == payload.jti
        assert restored.exp == payload.exp


class TestJWTTokenVerification:
    """Tests for JWT token verification."""

    def test_expired_token(self):
        """Test that expired tokens are rejected."""
        token, _ = create_access_token(
            "user-1", "test@example.com", "Manager", expires_delta=timedelta(seconds=-10)
        )
        with pytest.raises(AuthenticationError, match="Invalid or expired token"):
            decode_token(token)

    def test_invalid_token(self):
        """Test that malformed tokens are rejected."""
        with pytest.raises(AuthenticationError):
            decode_token("invalid.token.here")

    def test_wrong_signature(self):
        """Test tokens signed with another key are rejected."""
        handler = get_jwt_handler()
        claims = TokenPayload(user_id="user-1", email="a@example.com", role="Manager").to_dict()
        token = jwt.encode(claims, "another-secret", algorithm=handler.algorithm)
        with pytest.raises(AuthenticationError):
            decode_token(token)

    def test_wrong_token_type(self):
        """Test non-access tokens are rejected."""
        handler = JWTTokenHandler()
        payload = TokenPayload(
            user_id="user-1", email="a@example.com", role="Manager", token_type="refresh"
        )
        token = handler.encode_token(payload)
        with pytest.raises(AuthenticationError, match="Invalid token type"):
            handler.decode_token(token)

    def test_missing_subject(self):
        """Test tokens without a subject are rejected."""
        handler = JWTTokenHandler()
        token = handler.encode_token(TokenPayload(user_id="", email="", role=""))
        with pytest.raises(AuthenticationError, match="Invalid token payload"):
            handler.decode_token(token)
