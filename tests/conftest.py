"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- A recording messaging provider and mocked LINE / geocoder HTTP
- Session, record and reference data factories
"""
# Settings are read at import time; a signed webhook needs a channel secret
import os
os.environ.setdefault("LINE_CHANNEL_SECRET", "test-channel-secret")
os.environ.setdefault("LINE_CHANNEL_ACCESS_TOKEN", "test-access-token")

import pytest
from datetime import datetime, timedelta
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock, patch
from zoneinfo import ZoneInfo
from httpx import Response

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from triplog.db.database import Base, get_db
from triplog.db.models.reference import Store, Vehicle
from triplog.domain.services.conversation_service import get_conversation_engine
from triplog.domain.services.messaging import BaseMessagingProvider, get_messaging_provider
from triplog.domain.services.session_store import SessionStore
from triplog.main import app
from triplog.state_machine.engine import ConversationEngine
from triplog.state_machine.responses import MessageResponse
from triplog.state_machine.session import Session


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_USER_ID = "U" + "0123456789abcdef" * 2

JST = ZoneInfo("Asia/Tokyo")
FIXED_NOW = datetime(2025, 12, 26, 14, 30, tzinfo=JST)


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


# ============================================================================
# Clock / Engine
# ============================================================================

class FakeClock:
    """Settable clock for the engine and the renderer"""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def geocoder():
    """Reverse geocoder stub; set ``return_value`` / ``side_effect`` per test"""
    mock = MagicMock()
    mock.reverse_geocode = AsyncMock(return_value="東京都千代田区丸の内1丁目")
    return mock


@pytest.fixture
def engine(clock: FakeClock, geocoder) -> ConversationEngine:
    return ConversationEngine(geocoder=geocoder, session_timeout=timedelta(minutes=30), clock=clock)


# ============================================================================
# Messaging
# ============================================================================

class RecordingProvider(BaseMessagingProvider):
    """Messaging provider that keeps every reply instead of calling LINE"""

    def __init__(self) -> None:
        self.replies: list[tuple[str, list[MessageResponse]]] = []
        self.fail_with: Exception | None = None

    async def reply(self, reply_token: str, messages: list[MessageResponse]) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.replies.append((reply_token, list(messages)))

    def to_payload(self, message: MessageResponse) -> dict:
        return {"type": "text", "text": message.text}

    @property
    def last_texts(self) -> list[str]:
        return [m.text for m in self.replies[-1][1]] if self.replies else []


@pytest.fixture
def provider() -> RecordingProvider:
    return RecordingProvider()


@pytest.fixture(scope="function")
async def test_client(db_session: AsyncSession, provider: RecordingProvider, engine: ConversationEngine):
    """Create test client with database, messaging and engine overrides"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_messaging_provider] = lambda: provider
    app.dependency_overrides[get_conversation_engine] = lambda: engine

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Mock External Services
# ============================================================================

@pytest.fixture
def mock_line_api():
    """Mock LINE Messaging API responses"""
    with patch("httpx.AsyncClient") as mock_client:
        mock_response = MagicMock(spec=Response)
        mock_response.status_code = 200
        mock_response.json.return_value = {}
        mock_response.text = "{}"

        mock_instance = AsyncMock()
        mock_instance.post = AsyncMock(return_value=mock_response)
        mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
        mock_instance.__aexit__ = AsyncMock(return_value=None)

        mock_client.return_value = mock_instance

        yield mock_instance


@pytest.fixture
def mock_geocode_api():
    """Mock Google Geocoding API responses"""
    with patch("httpx.AsyncClient") as mock_client:
        mock_response = MagicMock(spec=Response)
        mock_response.status_code = 200
        mock_response.json.return_value = {
            "status": "OK",
            "results": [{"formatted_address": "日本、〒100-0005 東京都千代田区丸の内１丁目"}],
        }

        mock_instance = AsyncMock()
        mock_instance.get = AsyncMock(return_value=mock_response)
        mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
        mock_instance.__aexit__ = AsyncMock(return_value=None)

        mock_client.return_value = mock_instance

        yield mock_instance


# ============================================================================
# Test Data Factories
# ============================================================================

COMPLETE_DRAFT = {
    "departure_time": "2025/12/26 20:15",
    "departure_point": "東京駅",
    "store_name": "新宿店",
    "via_point": "",
    "arrival_time": "2025/12/26 21:00",
    "destination": "渋谷駅",
    "distance": "12.5",
    "amount": "3200",
    "vehicle_number": "品川500あ1234",
    "note": "",
}


@pytest.fixture
def session_factory(db_session: AsyncSession, clock: FakeClock):
    """Factory for storing a conversation session"""
    async def _create_session(
        state: str,
        draft: dict[str, str] | None = None,
        selection: dict | None = None,
        user_id: str = TEST_USER_ID,
        last_updated_at: datetime | None = None,
    ) -> Session:
        session = Session(
            user_id=user_id,
            state=state,
            draft=dict(draft or {}),
            selection=dict(selection or {}),
            last_updated_at=last_updated_at or clock(),
        )
        await SessionStore(db_session).put(session)
        await db_session.commit()
        return session

    return _create_session


@pytest.fixture
def reference_factory(db_session: AsyncSession):
    """Factory for vehicles and stores"""
    async def _create(
        vehicles: tuple[str, ...] = ("品川500あ1234", "品川500い5678"),
        stores: tuple[str, ...] = ("新宿店", "渋谷店"),
    ) -> None:
        for order, number in enumerate(vehicles):
            db_session.add(Vehicle(vehicle_number=number, sort_order=order))
        for order, name in enumerate(stores):
            db_session.add(Store(store_name=name, sort_order=order))
        await db_session.commit()

    return _create


# ============================================================================
# Circuit Breaker Reset
# ============================================================================

@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Reset circuit breakers between tests"""
    from triplog.core.circuit_breaker import CircuitBreaker
    CircuitBreaker.reset_all()
    yield
    CircuitBreaker.reset_all()


class FakeRedis:
    """In-memory Redis replacement with TTL tracking"""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self._ttls: dict[str, int] = {}

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, nx: bool = False, ex: int | None = None) -> bool | None:
        if nx and key in self._store:
            return None
        self._store[key] = value
        if ex is not None:
            self._ttls[key] = ex
        return True

    async def setex(self, key: str, ttl: int, value: str) -> None:
        self._store[key] = value
        self._ttls[key] = ttl

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._store.pop(key, None)
            self._ttls.pop(key, None)

    async def aclose(self) -> None:
        self._store.clear()
        self._ttls.clear()


@pytest.fixture(autouse=True)
def fake_redis():
    """Replaces get_redis with FakeRedis in every module that uses it"""
    _fake = FakeRedis()

    async def _get_fake_redis():
        return _fake

    with patch("triplog.core.redis_client.get_redis", _get_fake_redis), \
         patch("triplog.domain.services.reference_service.get_redis", _get_fake_redis), \
         patch("triplog.domain.services.health_service.get_redis", _get_fake_redis):
        yield _fake


# Every test gets a fresh in-memory database through async_engine, so the
# webhook idempotency table needs no cleanup.
