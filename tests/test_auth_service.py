"""Unit tests for AuthService."""

import threading
from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import TEST_PASSWORD, FakeRedis

from scheduling_api.auth.jwt import create_access_token
from scheduling_api.auth.passwords import hash_password, verify_password
from scheduling_api.database.models import Token, User
from scheduling_api.exceptions import AuthenticationError, ConflictError, ValidationError
from scheduling_api.services import auth_service as auth_module
from scheduling_api.services.auth_service import AuthService, get_auth_service
from scheduling_api.services.token_cache import TokenCache


@pytest.fixture
def cache_client() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def auth_service(session: AsyncSession, cache_client: FakeRedis) -> AuthService:
    """Create AuthService instance for testing."""
    return get_auth_service(session, TokenCache(cache_client))


async def register(service: AuthService, email: str = "new@example.com", **overrides) -> User:
    fields = {
        "first_name": "New",
        "last_name": "User",
        "email": email,
        "password": TEST_PASSWORD,
        "role": "Developer",
    }
    fields.update(overrides)
    return await service.register(**fields)


class TestPasswordHashing:
    """Tests for password hashing and verification."""

    def test_hash_and_verify(self):
        """Test a hashed password verifies and differs from the plain text."""
        hashed = hash_password("Password123")
        assert hashed != "Password123"
        assert verify_password("Password123", hashed) is True
        assert verify_password("wrong-password", hashed) is False

    def test_salted(self):
        """Test that same password produces different hashes (bcrypt salt)."""
        assert hash_password("Password123") != hash_password("Password123")

    def test_long_passwords_are_not_truncated(self):
        """Test passwords differing after 72 bytes are distinguished."""
        base = "x" * 80
        hashed = hash_password(base + "a")
        assert verify_password(base + "b", hashed) is False

    def test_garbage_hash(self):
        """Test an unparseable hash fails verification instead of raising."""
        assert verify_password("Password123", "not-a-hash") is False


class TestRegister:
    """Tests for account registration."""

    async def test_register_developer(self, auth_service: AuthService):
        """Test registration stores a normalized, hashed account."""
        user = await register(auth_service, email="  New@Example.COM ", department="Platform")
        assert user.email == "new@example.com"
        assert user.role == "Developer"
        assert user.department == "Platform"
        assert user.hashed_password != TEST_PASSWORD

    async def test_register_invalid_role(self, auth_service: AuthService):
        """Test unknown roles are rejected."""
        with pytest.raises(ValidationError, match="Manager or Developer"):
            await register(auth_service, role="Admin")

    async def test_register_short_password(self, auth_service: AuthService):
        """Test the minimum password length."""
        with pytest.raises(ValidationError, match="at least 8 characters"):
            await register(auth_service, password="short")

    async def test_register_missing_name(self, auth_service: AuthService):
        """Test first and last name are required."""
        with pytest.raises(ValidationError, match="required"):
            await register(auth_service, first_name="  ")

    async def test_register_duplicate_email(self, auth_service: AuthService):
        """Test email uniqueness is case-insensitive."""
        await register(auth_service, email="dup@example.com")
        with pytest.raises(ConflictError, match="already exists"):
            await register(auth_service, email="DUP@example.com")


class TestHashingOffLoop:
    """Tests that bcrypt work runs on worker threads, not the event loop."""

    @pytest.fixture
    def hashing_threads(self, monkeypatch):
        threads = []

        def recording_hash(password):
            threads.append(threading.get_ident())
            return hash_password(password)

        def recording_verify(password, hashed):
            threads.append(threading.get_ident())
            return verify_password(password, hashed)

        monkeypatch.setattr(auth_module, "hash_password", recording_hash)
        monkeypatch.setattr(auth_module, "verify_password", recording_verify)
        return threads

    async def test_register_login_reset(self, auth_service: AuthService, hashing_threads):
        """Test register, login and reset each hash away from the loop thread."""
        user = await register(auth_service)
        await auth_service.login(user.email, TEST_PASSWORD)
        reset_token = await auth_service.request_password_reset(user.email)
        await auth_service.reset_password(reset_token, "BrandNewPass1")

        assert len(hashing_threads) == 3
        assert threading.get_ident() not in hashing_threads


class TestLoginLogout:
    """Tests for login, token checks and logout."""

    async def test_login_issues_stored_and_cached_token(
        self, auth_service: AuthService, session: AsyncSession, cache_client: FakeRedis, developer
    ):
        """Test login persists the token and writes it to the cache."""
        user, token, expires_at = await auth_service.login(developer.email, TEST_PASSWORD)
        assert user.id == developer.id

        stored = (await session.execute(select(Token).where(Token.token == token))).scalar_one()
        assert stored.user_id == developer.id
        assert stored.expires_at == expires_at
        assert any(key.endswith(token) for key in cache_client.store)

    async def test_login_twice_gives_distinct_tokens(self, auth_service: AuthService, developer):
        """Test two logins in quick succession get separate tokens."""
        _, first, _ = await auth_service.login(developer.email, TEST_PASSWORD)
        _, second, _ = await auth_service.login(developer.email, TEST_PASSWORD)
        assert first != second

    async def test_login_wrong_password(self, auth_service: AuthService, developer):
        """Test a wrong password is rejected with the generic message."""
        with pytest.raises(AuthenticationError, match="Invalid email or password"):
            await auth_service.login(developer.email, "WrongPassword1")

    async def test_login_unknown_email(self, auth_service: AuthService):
        """Test an unknown email gets the same message as a wrong password."""
        with pytest.raises(AuthenticationError, match="Invalid email or password"):
            await auth_service.login("nobody@example.com", TEST_PASSWORD)

    async def test_authenticate_from_cache(self, auth_service: AuthService, manager):
        """Test a cached token resolves to the actor."""
        _, token, _ = await auth_service.login(manager.email, TEST_PASSWORD)
        current = await auth_service.authenticate(token)
        assert current.user_id == manager.id
        assert current.is_manager is True
        assert current.token == token

    async def test_authenticate_refills_cache_from_store(
        self, auth_service: AuthService, cache_client: FakeRedis, developer
    ):
        """Test a cache miss falls back to the durable store and refills the cache."""
        _, token, _ = await auth_service.login(developer.email, TEST_PASSWORD)
        cache_client.store.clear()

        current = await auth_service.authenticate(token)
        assert current.user_id == developer.id
        assert cache_client.store

    async def test_authenticate_when_cache_down(
        self, session: AsyncSession, developer
    ):
        """Test authentication keeps working from the store while the cache fails."""
        writer = get_auth_service(session, TokenCache(FakeRedis()))
        _, token, _ = await writer.login(developer.email, TEST_PASSWORD)

        reader = get_auth_service(session, TokenCache(FakeRedis(fail=True)))
        current = await reader.authenticate(token)
        assert current.user_id == developer.id

    async def test_unknown_token_rejected(self, auth_service: AuthService, developer):
        """Test a validly signed token that was never issued is rejected."""
        token, _ = create_access_token(developer.id, developer.email, developer.role)
        with pytest.raises(AuthenticationError, match="Invalid or expired token"):
            await auth_service.authenticate(token)

    async def test_expired_token_rejected(
        self, auth_service: AuthService, session: AsyncSession, developer
    ):
        """Test a stored but expired token is rejected."""
        token, expires_at = create_access_token(
            developer.id, developer.email, developer.role, expires_delta=timedelta(seconds=-10)
        )
        session.add(Token(token=token, user_id=developer.id, expires_at=expires_at))
        await session.commit()
        with pytest.raises(AuthenticationError):
            await auth_service.authenticate(token)

    async def test_logout_revokes_token(self, auth_service: AuthService, developer):
        """Test a logged-out token no longer authenticates."""
        _, token, _ = await auth_service.login(developer.email, TEST_PASSWORD)
        await auth_service.logout(token)
        with pytest.raises(AuthenticationError):
            await auth_service.authenticate(token)


class TestPasswordReset:
    """Tests for the forgot/reset password flow."""

    async def test_unknown_email_returns_no_token(self, auth_service: AuthService):
        """Test requesting a reset for an unknown email issues nothing."""
        assert await auth_service.request_password_reset("ghost@example.com") is None

    async def test_reset_changes_password_and_revokes_tokens(
        self, auth_service: AuthService, developer
    ):
        """Test a reset sets the new password and invalidates every session."""
        _, old_token, _ = await auth_service.login(developer.email, TEST_PASSWORD)
        reset_token = await auth_service.request_password_reset(developer.email)

        await auth_service.reset_password(reset_token, "BrandNewPass1")

        with pytest.raises(AuthenticationError):
            await auth_service.authenticate(old_token)
        with pytest.raises(AuthenticationError):
            await auth_service.login(developer.email, TEST_PASSWORD)
        user, _, _ = await auth_service.login(developer.email, "BrandNewPass1")
        assert user.id == developer.id

    async def test_reset_token_single_use(self, auth_service: AuthService, developer):
        """Test a reset token cannot be used twice."""
        reset_token = await auth_service.request_password_reset(developer.email)
        await auth_service.reset_password(reset_token, "BrandNewPass1")
        with pytest.raises(ValidationError, match="Invalid or expired reset token"):
            await auth_service.reset_password(reset_token, "AnotherPass1")

    async def test_new_request_replaces_previous(self, auth_service: AuthService, developer):
        """Test only the latest reset token is honoured."""
        first = await auth_service.request_password_reset(developer.email)
        second = await auth_service.request_password_reset(developer.email)
        with pytest.raises(ValidationError):
            await auth_service.reset_password(first, "BrandNewPass1")
        await auth_service.reset_password(second, "BrandNewPass1")

    async def test_reset_rejects_short_password(self, auth_service: AuthService, developer):
        """Test the new password must meet the minimum length."""
        reset_token = await auth_service.request_password_reset(developer.email)
        with pytest.raises(ValidationError, match="at least 8 characters"):
            await auth_service.reset_password(reset_token, "short")
