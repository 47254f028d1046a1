"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("SECURITY_BCRYPT_ROUNDS", "4")
os.environ.setdefault("IMPORT_SWEEP_ON_STARTUP", "false")

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from scheduling_api.auth.jwt import create_access_token
from scheduling_api.auth.passwords import hash_password
from scheduling_api.database.connection import enable_sqlite_foreign_keys
from scheduling_api.database.models import Appointment, AppointmentAttendee, Base, Token, User
from scheduling_api.database.session import get_session
from scheduling_api.exceptions import ConflictError
from scheduling_api.services.auth_service import CurrentUser
from scheduling_api.services.file_storage import FileStorage
from scheduling_api.services.token_cache import TokenCache
from scheduling_api.utils.time import utcnow

# Test database URL (in-memory SQLite for unit tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_PASSWORD = "Password123"


class FakeRedis:
    """In-memory stand-in for the redis client used by the token cache."""

    def __init__(self, fail: bool = False):
        self.store: Dict[str, Any] = {}
        self.fail = fail
        self.calls = 0

    def _maybe_fail(self) -> None:
        self.calls += 1
        if self.fail:
            raise ConnectionError("redis unavailable")

    async def get(self, key: str) -> Optional[str]:
        self._maybe_fail()
        return self.store.get(key)

    async def setex(self, key: str, ttl: int, value: str) -> None:
        self._maybe_fail()
        self.store[key] = value

    async def delete(self, key: str) -> None:
        self._maybe_fail()
        self.store.pop(key, None)

    async def aclose(self) -> None:
        pass


class FakeImportQueue:
    """Records import jobs instead of sending them to a broker."""

    def __init__(self, available: bool = True):
        self.available = available
        self.jobs: List[Tuple[str, str]] = []

    def enqueue(self, upload_id: str, file_path: str) -> str:
        if not self.available:
            raise ConflictError("Import queue is unavailable, try again later")
        self.jobs.append((upload_id, file_path))
        return f"job-{len(self.jobs)}"


class RecordingHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records: List[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@pytest.fixture
def http_log():
    """Records of the access logger for the duration of a test."""
    logger = logging.getLogger("scheduling_api.http")
    handler = RecordingHandler()
    previous = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    yield handler.records
    logger.removeHandler(handler)
    logger.setLevel(previous)


@pytest.fixture
async def engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def token_cache() -> TokenCache:
    return TokenCache(FakeRedis())


@pytest.fixture
def storage(tmp_path) -> FileStorage:
    return FileStorage(str(tmp_path / "uploads"), max_file_size_bytes=1024 * 1024)


@pytest.fixture
def make_user(session: AsyncSession):
    """Factory creating committed users."""
    counter = {"n": 0}

    async def _make(
        role: str = "Developer",
        first_name: Optional[str] = None,
        last_name: str = "Tester",
        email: Optional[str] = None,
        password: str = TEST_PASSWORD,
        department: Optional[str] = None,
    ) -> User:
        counter["n"] += 1
        user = User(
            first_name=first_name or f"{role}{counter['n']}",
            last_name=last_name,
            email=email or f"{role.lower()}{counter['n']}@example.com",
            hashed_password=hash_password(password),
            role=role,
            department=department,
        )
        session.add(user)
        await session.commit()
        return user

    return _make


@pytest.fixture
async def manager(make_user) -> User:
    return await make_user("Manager", first_name="Maria", last_name="Manager")


@pytest.fixture
async def developer(make_user) -> User:
    return await make_user("Developer", first_name="Dev", last_name="One")


@pytest.fixture
async def other_developer(make_user) -> User:
    return await make_user("Developer", first_name="Dana", last_name="Two")


def actor(user: User) -> CurrentUser:
    """Authenticated actor for a stored user."""
    return CurrentUser(user_id=user.id, email=user.email, role=user.role)


@pytest.fixture
def make_appointment(session: AsyncSession):
    """Factory inserting appointments directly, bypassing the future-date rule."""

    async def _make(
        manager: User,
        attendees,
        title: str = "Sprint planning",
        days_from_now: float = 1,
        duration: int = 30,
        status: str = "scheduled",
        responses: Optional[Dict[str, str]] = None,
    ) -> Appointment:
        responses = responses or {}
        appointment = Appointment(
            title=title,
            manager_id=manager.id,
            scheduled_date=utcnow() + timedelta(days=days_from_now),
            duration=duration,
            status=status,
            attendees=[
                AppointmentAttendee(
                    user_id=user.id,
                    position=position,
                    status=responses.get(user.id, "pending"),
                    responded_at=utcnow() if user.id in responses else None,
                )
                for position, user in enumerate(attendees)
            ],
        )
        session.add(appointment)
        await session.commit()
        # Later queries load their own copy with relationships populated
        session.expunge(appointment)
        return appointment

    return _make


@pytest.fixture
async def app(session: AsyncSession, token_cache, storage):
    """Application with the database session and process-wide state replaced."""
    from scheduling_api.main import app as fastapi_app

    async def override_get_session():
        yield session
        await session.commit()

    fastapi_app.dependency_overrides[get_session] = override_get_session
    fastapi_app.state.token_cache = token_cache
    fastapi_app.state.file_storage = storage
    fastapi_app.state.import_queue = FakeImportQueue()
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    """Async HTTP client bound to the application."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers(session: AsyncSession):
    """Issue and store a bearer token for a user."""

    async def _headers(user: User) -> Dict[str, str]:
        token, expires_at = create_access_token(user.id, user.email, user.role)
        session.add(Token(token=token, user_id=user.id, expires_at=expires_at))
        await session.commit()
        return {"Authorization": f"Bearer {token}"}

    return _headers
