"""Pytest configuration and fixtures.

Provides fixtures for:
- Database with SQLite in-memory (aiosqlite)
- Redis mocking
- Controllable clocks for staleness tests
- Settings override for testing
"""

from collections.abc import AsyncGenerator, Generator
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

import keyword_intel.models  # noqa: F401  registers tables on Base.metadata
from keyword_intel.core.config import Settings, get_settings
from keyword_intel.core.database import Base
from keyword_intel.core.document_store import InMemoryDocumentStore
from keyword_intel.core.redis import RedisManager

SECONDS_PER_DAY = 86400

# Fixed "now" used by clock fixtures: 2024-06-01T00:00:00Z
BASE_TIMESTAMP = 1717200000.0

# ---------------------------------------------------------------------------
# Settings Fixtures
# ---------------------------------------------------------------------------


TEST_ENV = {
    "APP_NAME": "Test App",
    "APP_VERSION": "0.0.1",
    "DEBUG": "true",
    "ENVIRONMENT": "test",
    "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
    "LOG_LEVEL": "DEBUG",
    "LOG_FORMAT": "text",
    "BATCH_PACING_MS": "0",
}

# Never pick up real services or credentials from the developer's shell
UNSET_ENV = (
    "REDIS_URL",
    "APIFY_API_TOKEN",
    "PAGE_FETCH_API_URL",
    "GOOGLE_ADS_DEVELOPER_TOKEN",
    "GOOGLE_ADS_CLIENT_ID",
    "GOOGLE_ADS_CLIENT_SECRET",
    "GOOGLE_ADS_REFRESH_TOKEN",
    "GOOGLE_ADS_CUSTOMER_ID",
    "ANTHROPIC_API_KEY",
)


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Point get_settings() at test values for the duration of each test."""
    for name, value in TEST_ENV.items():
        monkeypatch.setenv(name, value)
    for name in UNSET_ENV:
        monkeypatch.delenv(name, raising=False)

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def test_settings() -> Settings:
    """Settings as every component sees them during a test."""
    return get_settings()


# ---------------------------------------------------------------------------
# Clock Fixtures
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, now: float = BASE_TIMESTAMP) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float = 0.0, days: float = 0.0) -> None:
        self.now += seconds + days * SECONDS_PER_DAY


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store(clock: FakeClock) -> InMemoryDocumentStore:
    """In-memory document store stamped by the fake clock."""
    return InMemoryDocumentStore(clock=clock)


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async SQLite engine for testing.

    StaticPool keeps the single in-memory connection alive for the test.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def async_session_factory(
    async_engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Create async session factory for testing."""
    return async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(
    async_session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test.

    Uncommitted changes are rolled back after the test.
    """
    async with async_session_factory() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------------------------
# Redis Fixtures
# ---------------------------------------------------------------------------


class MockRedis:
    """Mock Redis client for testing.

    Implements the hash, TIME and pub/sub commands the document store and
    invalidation notifier use, with in-memory storage. Set ``fail_with``
    to an exception instance to make every command raise it.
    """

    def __init__(self, server_time: float = BASE_TIMESTAMP) -> None:
        self._hashes: dict[str, dict[str, Any]] = {}
        self.server_time = server_time
        self.published: list[tuple[str, str]] = []
        self.fail_with: Exception | None = None

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def time(self) -> tuple[int, int]:
        self._check()
        seconds = int(self.server_time)
        microseconds = int(round((self.server_time - seconds) * 1_000_000))
        return seconds, microseconds

    async def hget(self, name: str, key: str) -> bytes | None:
        self._check()
        value = self._hashes.get(name, {}).get(key)
        if value is None:
            return None
        return value if isinstance(value, bytes) else str(value).encode()

    async def hset(
        self,
        name: str,
        key: str | None = None,
        value: Any = None,
        mapping: dict | None = None,
    ) -> int:
        self._check()
        if name not in self._hashes:
            self._hashes[name] = {}

        count = 0
        if mapping:
            for k, v in mapping.items():
                if k not in self._hashes[name]:
                    count += 1
                self._hashes[name][k] = v
        elif key is not None:
            if key not in self._hashes[name]:
                count = 1
            self._hashes[name][key] = value
        return count

    async def hgetall(self, name: str) -> dict:
        self._check()
        return {
            k.encode(): (v if isinstance(v, bytes) else str(v).encode())
            for k, v in self._hashes.get(name, {}).items()
        }

    async def delete(self, *keys: str) -> int:
        self._check()
        count = 0
        for key in keys:
            if self._hashes.pop(key, None) is not None:
                count += 1
        return count

    async def publish(self, channel: str, message: str) -> int:
        self._check()
        self.published.append((channel, message))
        return 1

    async def ping(self) -> bool:
        self._check()
        return True

    async def aclose(self) -> None:
        self._hashes.clear()

    def clear(self) -> None:
        """Clear all stored data (useful between tests)."""
        self._hashes.clear()
        self.published.clear()


@pytest.fixture
def mock_redis() -> MockRedis:
    """Create a mock Redis client."""
    return MockRedis()


@pytest.fixture
def mock_redis_manager(mock_redis: MockRedis) -> RedisManager:
    """RedisManager wired to the mock client."""
    return RedisManager(client=mock_redis)  # type: ignore[arg-type]


@pytest.fixture
def mock_redis_unavailable() -> RedisManager:
    """RedisManager with no client (Redis not configured)."""
    return RedisManager(redis_url="redis://localhost:6379/0")
