"""
Shared fixtures: in-memory SQLite database, app client with dependency
overrides, user factory and recording notification sinks.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("UPSTASH_REDIS_URL", "")
os.environ.setdefault("UPSTASH_REDIS_TOKEN", "")

from datetime import datetime, timezone
from typing import List

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import StaticPool

from app.core.clock import FixedClock
from app.core.dependencies import get_clock, get_redis_service
from app.core.security import create_access_token
from app.db.redis import RedisService
from app.db.session import Base, get_db, make_engine, make_session_maker
from app.main import app as fastapi_app
from app.models.user import User
from app.services.notifications import NotificationEmitter, NotificationEvent, get_notification_emitter


FIXED_NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


class RecordingEmitter(NotificationEmitter):
    """Keeps emitted events in memory."""

    def __init__(self):
        self.events: List[NotificationEvent] = []

    async def emit(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def kinds_for(self, recipient) -> List[str]:
        return [event.kind for event in self.events if event.recipient == recipient]


class FailingEmitter(NotificationEmitter):
    """Sink that is always down."""

    def __init__(self):
        self.attempts = 0

    async def emit(self, event: NotificationEvent) -> None:
        self.attempts += 1
        raise ConnectionError("notification sink unavailable")


class FakeRedisClient:
    """Dict-backed stand-in for the Upstash client methods the cache uses."""

    def __init__(self):
        self.store = {}

    def setex(self, key, seconds, value):
        self.store[key] = value

    def get(self, key):
        return self.store.get(key)

    def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)


@pytest_asyncio.fixture
async def engine():
    engine = make_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return make_session_maker(engine)


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def fixed_clock():
    return FixedClock(FIXED_NOW)


@pytest.fixture
def emitter():
    return RecordingEmitter()


@pytest.fixture
def fake_redis():
    return FakeRedisClient()


@pytest.fixture
def make_user(session_maker):
    """Create and commit a user; returns the detached instance."""
    counter = {"n": 0}

    async def _make_user(name: str = None, **fields) -> User:
        counter["n"] += 1
        name = name or f"Nomad {counter['n']}"
        fields.setdefault("email", f"{name.lower().replace(' ', '.')}.{counter['n']}@example.com")
        fields.setdefault("has_completed_onboarding", True)
        async with session_maker() as session:
            user = User(name=name, **fields)
            session.add(user)
            await session.commit()
            return user

    return _make_user


@pytest.fixture
def fetch(session_maker):
    """Read a fresh copy of a row in its own session."""

    async def _fetch(model, pk):
        async with session_maker() as session:
            return await session.get(model, pk)

    return _fetch


@pytest_asyncio.fixture
async def client(session_maker, emitter, fake_redis):
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_notification_emitter] = lambda: emitter
    fastapi_app.dependency_overrides[get_redis_service] = lambda: RedisService(client=fake_redis)

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def freeze_api_clock(fixed_clock):
    """Pin the clock used by request handlers."""
    fastapi_app.dependency_overrides[get_clock] = lambda: fixed_clock
    yield fixed_clock
    fastapi_app.dependency_overrides.pop(get_clock, None)


@pytest.fixture
def auth():
    """Bearer headers for a user."""

    def _auth(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}

    return _auth
