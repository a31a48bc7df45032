"""Key -> JSON document storage with server-assigned write timestamps.

The pipeline needs nothing beyond single-document get/put/delete. Two
backends implement the DocumentStore protocol:

- RedisDocumentStore: one Redis hash per document holding the JSON payload
  and its write timestamp, stamped from the Redis server clock.
- InMemoryDocumentStore: process-local dict, used for tests and local runs.

Both guarantee that timestamps for a key strictly increase with every
write, even when the clock they read from does not.
"""

import asyncio
import json
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from keyword_intel.core.config import get_settings
from keyword_intel.core.errors import StoreError, StoreQuotaExceededError
from keyword_intel.core.logging import get_logger, store_logger
from keyword_intel.core.redis import RedisManager

logger = get_logger(__name__)

# Smallest step used to keep per-key timestamps strictly increasing
TIMESTAMP_EPSILON = 1e-6


@dataclass
class StoredDocument:
    """A raw stored payload and its server-assigned write time."""

    payload: Any
    updated_at: float


class DocumentStore(Protocol):
    """Minimal document store contract used by CacheStore."""

    async def get(self, key: str) -> StoredDocument | None: ...

    async def put(self, key: str, payload: dict[str, Any]) -> float: ...

    async def delete(self, key: str) -> bool: ...


def _next_timestamp(now: float, previous: float | None) -> float:
    if previous is not None and now <= previous:
        return previous + TIMESTAMP_EPSILON
    return now


class InMemoryDocumentStore:
    """Process-local document store.

    Payloads are serialized to JSON on write so the same encoding rules
    (and failures) apply as with a remote store.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        max_document_bytes: int | None = None,
    ) -> None:
        self._clock = clock
        self._max_document_bytes = max_document_bytes
        self._documents: dict[str, tuple[str, float]] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, key: object) -> bool:
        return key in self._documents

    async def get(self, key: str) -> StoredDocument | None:
        entry = self._documents.get(key)
        if entry is None:
            return None
        raw, updated_at = entry
        return StoredDocument(payload=json.loads(raw), updated_at=updated_at)

    async def put(self, key: str, payload: dict[str, Any]) -> float:
        try:
            raw = json.dumps(payload, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StoreError(f"Document is not JSON serializable: {e}", key=key) from e

        if self._max_document_bytes is not None:
            size = len(raw.encode("utf-8"))
            if size > self._max_document_bytes:
                message = (
                    f"Document size {size} exceeds quota of "
                    f"{self._max_document_bytes} bytes"
                )
                store_logger.quota_exceeded("put", key, message)
                raise StoreQuotaExceededError(message, key=key)

        async with self._lock:
            previous = self._documents.get(key)
            updated_at = _next_timestamp(
                self._clock(), previous[1] if previous else None
            )
            self._documents[key] = (raw, updated_at)
        return updated_at

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._documents.pop(key, None) is not None

    async def set_raw(self, key: str, payload: Any, updated_at: float) -> None:
        """Write a payload with an explicit timestamp, bypassing validation.

        Used to seed fixtures and to simulate documents left behind by
        older writers.
        """
        async with self._lock:
            self._documents[key] = (json.dumps(payload, ensure_ascii=False), updated_at)


class RedisDocumentStore:
    """Document store backed by Redis hashes.

    Each document lives at ``{prefix}:{key}`` as a hash with two fields:
    ``payload`` (JSON) and ``updatedAt`` (epoch seconds from the Redis
    server clock).
    """

    PAYLOAD_FIELD = "payload"
    UPDATED_AT_FIELD = "updatedAt"

    def __init__(self, redis: RedisManager, prefix: str | None = None) -> None:
        self._redis = redis
        self._prefix = prefix or get_settings().redis_key_prefix

    def _full_key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def get(self, key: str) -> StoredDocument | None:
        fields = await self._redis.hgetall(self._full_key(key))
        if not fields:
            return None

        decoded = {
            (k.decode() if isinstance(k, bytes) else k): (
                v.decode() if isinstance(v, bytes) else v
            )
            for k, v in fields.items()
        }
        raw_payload = decoded.get(self.PAYLOAD_FIELD)
        raw_updated_at = decoded.get(self.UPDATED_AT_FIELD)
        if raw_payload is None or raw_updated_at is None:
            logger.warning(
                "Stored document is missing required hash fields",
                extra={"key": key, "fields": sorted(decoded)},
            )
            return None

        try:
            payload = json.loads(raw_payload)
            updated_at = float(raw_updated_at)
        except ValueError as e:
            logger.warning(
                "Stored document could not be decoded",
                extra={"key": key, "error_message": str(e)},
            )
            return None

        return StoredDocument(payload=payload, updated_at=updated_at)

    async def put(self, key: str, payload: dict[str, Any]) -> float:
        full_key = self._full_key(key)
        try:
            raw = json.dumps(payload, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StoreError(f"Document is not JSON serializable: {e}", key=key) from e

        now = await self._redis.server_time()
        previous_raw = await self._redis.hget(full_key, self.UPDATED_AT_FIELD)
        previous = float(previous_raw) if previous_raw is not None else None
        updated_at = _next_timestamp(now, previous)

        await self._redis.hset(
            full_key,
            mapping={
                self.PAYLOAD_FIELD: raw,
                self.UPDATED_AT_FIELD: f"{updated_at:.6f}",
            },
        )
        return updated_at

    async def delete(self, key: str) -> bool:
        deleted = await self._redis.delete(self._full_key(key))
        return bool(deleted)
