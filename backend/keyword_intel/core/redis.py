"""Redis client with connection pooling for the document store.

Features:
- Connection pooling via redis-py (redis.asyncio)
- Connection retry logic for cold starts
- Typed failures: every Redis error is converted to a StoreError, and
  out-of-memory refusals become StoreQuotaExceededError
- Comprehensive logging per requirements
"""

import asyncio
import time
from typing import Any

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
)
from redis.exceptions import (
    RedisError,
    ResponseError,
)
from redis.exceptions import (
    TimeoutError as RedisTimeoutError,
)

from keyword_intel.core.config import get_settings
from keyword_intel.core.errors import StoreError, StoreQuotaExceededError
from keyword_intel.core.logging import get_logger, store_logger

logger = get_logger(__name__)

# Redis answers writes beyond maxmemory with "OOM command not allowed ..."
OOM_ERROR_PREFIX = "OOM"


class RedisManager:
    """Manages a pooled Redis connection for the document store."""

    def __init__(
        self,
        redis_url: str | None = None,
        client: Redis | None = None,
        socket_timeout: float | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            redis_url: Redis connection string. Defaults to settings.
            client: Pre-built client (tests inject a fake here).
            socket_timeout: Socket timeout in seconds. Defaults to settings.
        """
        settings = get_settings()
        self._redis_url = redis_url or (
            str(settings.redis_url) if settings.redis_url else None
        )
        self._socket_timeout = socket_timeout or settings.redis_socket_timeout
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = client
        self._available = client is not None

    @property
    def available(self) -> bool:
        """Check if Redis is available."""
        return self._available and self._client is not None

    async def init_redis(self) -> bool:
        """Initialize the Redis connection pool.

        Returns True if Redis is reachable, False otherwise.
        """
        if self._client is not None:
            return self._available

        if not self._redis_url:
            logger.info("Redis URL not configured, Redis document store disabled")
            self._available = False
            return False

        settings = get_settings()

        try:
            self._pool = ConnectionPool.from_url(
                self._redis_url,
                max_connections=settings.redis_pool_size,
                socket_connect_timeout=settings.redis_connect_timeout,
                socket_timeout=self._socket_timeout,
            )
            self._client = Redis(connection_pool=self._pool)
            await self._connect_with_retry()

            self._available = True
            store_logger.connection_success("redis")
            return True

        except (RedisError, OSError) as e:
            store_logger.connection_error(e, self._redis_url)
            self._available = False
            return False

    async def _connect_with_retry(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ) -> None:
        """Ping Redis with exponential backoff for cold starts."""
        last_error: Exception | None = None

        for attempt in range(max_retries):
            try:
                if self._client:
                    await self._client.ping()  # type: ignore[misc]
                    return
            except (RedisConnectionError, RedisTimeoutError) as e:
                last_error = e
                if attempt < max_retries - 1:
                    delay = base_delay * (2**attempt)
                    logger.warning(
                        f"Redis connection attempt {attempt + 1} failed, "
                        f"retrying in {delay}s",
                        extra={
                            "attempt": attempt + 1,
                            "max_retries": max_retries,
                            "delay_seconds": delay,
                            "error": str(e),
                        },
                    )
                    await asyncio.sleep(delay)

        if last_error:
            raise last_error

    async def close(self) -> None:
        """Close Redis connections."""
        if self._client:
            await self._client.aclose()
            self._client = None
        if self._pool:
            await self._pool.disconnect()
            self._pool = None
        self._available = False
        logger.info("Redis connections closed")

    async def execute(self, operation: str, *args: Any, **kwargs: Any) -> Any:
        """Execute a Redis command, converting failures into StoreError."""
        key = str(args[0]) if args else ""

        if not self._client:
            store_logger.graceful_fallback(operation, "Redis not initialized")
            raise StoreError("Redis not initialized", key=key)

        start_time = time.monotonic()

        try:
            method = getattr(self._client, operation)
            result = await method(*args, **kwargs)
            duration_ms = (time.monotonic() - start_time) * 1000
            store_logger.operation(operation, key, duration_ms, success=True)
            return result

        except RedisTimeoutError as e:
            duration_ms = (time.monotonic() - start_time) * 1000
            store_logger.timeout(operation, key, self._socket_timeout)
            store_logger.operation(operation, key, duration_ms, success=False)
            raise StoreError(f"Redis {operation} timed out", key=key) from e

        except RedisConnectionError as e:
            duration_ms = (time.monotonic() - start_time) * 1000
            store_logger.connection_error(e, self._redis_url or "")
            store_logger.operation(operation, key, duration_ms, success=False)
            raise StoreError(f"Redis connection failed: {e}", key=key) from e

        except ResponseError as e:
            duration_ms = (time.monotonic() - start_time) * 1000
            store_logger.operation(operation, key, duration_ms, success=False)
            if str(e).startswith(OOM_ERROR_PREFIX):
                store_logger.quota_exceeded(operation, key, str(e))
                raise StoreQuotaExceededError(str(e), key=key) from e
            raise StoreError(f"Redis {operation} failed: {e}", key=key) from e

        except RedisError as e:
            duration_ms = (time.monotonic() - start_time) * 1000
            store_logger.operation(operation, key, duration_ms, success=False)
            logger.error(
                f"Redis error during {operation}",
                extra={
                    "operation": operation,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
            )
            raise StoreError(f"Redis {operation} failed: {e}", key=key) from e

    async def server_time(self) -> float:
        """Return the Redis server clock as epoch seconds."""
        seconds, microseconds = await self.execute("time")
        return int(seconds) + int(microseconds) / 1_000_000

    async def hgetall(self, name: str) -> dict[Any, Any]:
        """Get all hash fields."""
        return await self.execute("hgetall", name) or {}

    async def hget(self, name: str, key: str) -> Any:
        """Get a hash field."""
        return await self.execute("hget", name, key)

    async def hset(self, name: str, mapping: dict[str, Any]) -> int:
        """Set hash fields."""
        return await self.execute("hset", name, mapping=mapping)

    async def delete(self, *keys: str) -> int:
        """Delete keys from Redis."""
        return await self.execute("delete", *keys)

    async def publish(self, channel: str, message: str) -> int:
        """Publish a message. Returns the number of receiving subscribers."""
        return await self.execute("publish", channel, message)

    async def check_health(self) -> bool:
        """Check if the Redis connection is healthy."""
        if not self.available:
            return False
        try:
            result = await self.execute("ping")
        except StoreError:
            return False
        return result is True or result == b"PONG"
