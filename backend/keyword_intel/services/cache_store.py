"""Typed, staleness-aware cache over a DocumentStore.

One CacheStore wraps one document model (SerpDocument, VolumeDocument, ...)
in one key namespace. Lookups classify entries as FRESH, STALE or MISS
from the server-assigned write timestamp; writes are full upserts.

Decoding is tolerant: a stored document that fails validation is passed
through an optional ``degrade`` step (which strips optional nested data)
and validated again. Only if that also fails is the entry treated as a
miss.

ERROR LOGGING REQUIREMENTS:
- Log cache hits/misses at DEBUG level with key and timing
- Log schema validation failures at WARNING level
- Log store failures at ERROR level; quota exhaustion at WARNING level
- Add timing logs for operations >1 second
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from keyword_intel.core.config import get_settings
from keyword_intel.core.document_store import DocumentStore
from keyword_intel.core.errors import SchemaValidationError, StoreError
from keyword_intel.core.logging import get_logger, store_logger

logger = get_logger(__name__)

# Constants
SLOW_OPERATION_THRESHOLD_MS = 1000
SECONDS_PER_DAY = 86400

ModelT = TypeVar("ModelT", bound=BaseModel)


class CacheOutcome(str, Enum):
    """Classification of a cache lookup."""

    FRESH = "fresh"
    STALE = "stale"
    MISS = "miss"


@dataclass
class CacheStats:
    """Statistics for cache operations."""

    hits: int = 0
    stale: int = 0
    misses: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate fresh-hit rate."""
        total = self.hits + self.stale + self.misses
        if total == 0:
            return 0.0
        return self.hits / total


@dataclass
class CacheLookup(Generic[ModelT]):
    """Result of a cache lookup."""

    outcome: CacheOutcome
    document: ModelT | None = None
    partial: bool = False
    age_days: float | None = None
    updated_at: float | None = None

    @property
    def is_fresh(self) -> bool:
        return self.outcome is CacheOutcome.FRESH


class CacheStore(Generic[ModelT]):
    """Staleness-aware typed cache for one document model and namespace."""

    def __init__(
        self,
        store: DocumentStore,
        model: type[ModelT],
        namespace: str,
        stale_threshold_days: float | None = None,
        degrade: Callable[[dict[str, Any]], dict[str, Any]] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize cache store.

        Args:
            store: Backing document store
            model: Pydantic model documents are validated against
            namespace: Key prefix separating this cache from others
            stale_threshold_days: Entries older than this are STALE.
                Defaults to settings (7 days).
            degrade: Optional payload transform tried when validation fails
            clock: Epoch-seconds clock used to age entries
        """
        self._store = store
        self._model = model
        self._namespace = namespace
        self._stale_threshold_days = (
            stale_threshold_days
            if stale_threshold_days is not None
            else get_settings().cache_stale_threshold_days
        )
        self._degrade = degrade
        self._clock = clock
        self._stats = CacheStats()

        logger.debug(
            "CacheStore initialized",
            extra={
                "namespace": namespace,
                "model": model.__name__,
                "stale_threshold_days": self._stale_threshold_days,
            },
        )

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def stats(self) -> CacheStats:
        """Get cache statistics."""
        return self._stats

    def _storage_key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def _check_slow(self, operation: str, key: str, start_time: float) -> float:
        duration_ms = (time.monotonic() - start_time) * 1000
        if duration_ms > SLOW_OPERATION_THRESHOLD_MS:
            logger.warning(
                f"Slow cache {operation} operation",
                extra={
                    "namespace": self._namespace,
                    "key": key[:100],
                    "duration_ms": round(duration_ms, 2),
                    "threshold_ms": SLOW_OPERATION_THRESHOLD_MS,
                },
            )
        return duration_ms

    def _decode(self, key: str, payload: Any) -> tuple[ModelT, bool]:
        """Validate a stored payload, falling back to the degraded form.

        Returns:
            (document, partial) where partial is True if degraded recovery
            was needed.

        Raises:
            SchemaValidationError: If neither form validates
        """
        if not isinstance(payload, dict):
            raise SchemaValidationError(
                f"Stored payload is {type(payload).__name__}, expected object",
                key=key,
            )

        try:
            return self._model.model_validate(payload), False
        except PydanticValidationError as e:
            if self._degrade is None:
                raise SchemaValidationError(str(e), key=key) from e
            first_error = e

        logger.info(
            "Cached document failed validation, trying degraded recovery",
            extra={
                "namespace": self._namespace,
                "key": key[:100],
                "error_count": first_error.error_count(),
            },
        )
        try:
            return self._model.model_validate(self._degrade(payload)), True
        except PydanticValidationError as e:
            raise SchemaValidationError(str(e), key=key) from e

    async def get(self, key: str) -> CacheLookup[ModelT]:
        """Look up and classify a cached document.

        Store failures, undecodable payloads and schema mismatches are
        logged and reported as MISS.
        """
        start_time = time.monotonic()

        try:
            stored = await self._store.get(self._storage_key(key))
        except StoreError as e:
            self._stats.errors += 1
            logger.error(
                "Cache read failed",
                extra={
                    "namespace": self._namespace,
                    "key": key[:100],
                    "error_kind": e.kind.value,
                    "error_message": e.message,
                },
                exc_info=True,
            )
            store_logger.graceful_fallback("get", e.message)
            return CacheLookup(outcome=CacheOutcome.MISS)

        if stored is None:
            self._stats.misses += 1
            duration_ms = self._check_slow("get", key, start_time)
            logger.debug(
                "Cache miss",
                extra={
                    "namespace": self._namespace,
                    "key": key[:100],
                    "duration_ms": round(duration_ms, 2),
                },
            )
            return CacheLookup(outcome=CacheOutcome.MISS)

        try:
            document, partial = self._decode(key, stored.payload)
        except SchemaValidationError as e:
            self._stats.misses += 1
            logger.warning(
                "Cached document failed schema validation",
                extra={
                    "namespace": self._namespace,
                    "key": key[:100],
                    "error_kind": e.kind.value,
                    "error_message": e.message[:500],
                },
            )
            return CacheLookup(outcome=CacheOutcome.MISS)

        age_days = (self._clock() - stored.updated_at) / SECONDS_PER_DAY
        if age_days > self._stale_threshold_days:
            outcome = CacheOutcome.STALE
            self._stats.stale += 1
        else:
            outcome = CacheOutcome.FRESH
            self._stats.hits += 1

        duration_ms = self._check_slow("get", key, start_time)
        logger.debug(
            f"Cache {outcome.value} hit",
            extra={
                "namespace": self._namespace,
                "key": key[:100],
                "age_days": round(age_days, 3),
                "partial": partial,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return CacheLookup(
            outcome=outcome,
            document=document,
            partial=partial,
            age_days=age_days,
            updated_at=stored.updated_at,
        )

    async def put(self, key: str, document: ModelT) -> float:
        """Upsert a document.

        Returns:
            The store-assigned write timestamp

        Raises:
            StoreError: On store failure (StoreQuotaExceededError when the
                store is out of space)
        """
        start_time = time.monotonic()
        payload = document.model_dump(mode="json", by_alias=True)

        try:
            updated_at = await self._store.put(self._storage_key(key), payload)
        except StoreError as e:
            self._stats.errors += 1
            if e.is_quota_exceeded:
                store_logger.quota_exceeded("put", key, e.message)
            else:
                logger.error(
                    "Cache write failed",
                    extra={
                        "namespace": self._namespace,
                        "key": key[:100],
                        "error_kind": e.kind.value,
                        "error_message": e.message,
                    },
                    exc_info=True,
                )
            raise

        duration_ms = self._check_slow("put", key, start_time)
        store_logger.operation("put", self._storage_key(key), duration_ms, True)
        return updated_at

    async def merge_result_field(
        self,
        key: str,
        keyword: str,
        match_url: str,
        patch: dict[str, Any],
    ) -> bool:
        """Patch one organic entry of a cached SERP-shaped document.

        Reads the raw document, finds ``results[keyword].results[*]`` whose
        ``url`` equals ``match_url``, applies ``patch`` (camelCase fields)
        to it and writes the document back. Concurrent merges on the same
        document are last-writer-wins.

        Returns:
            True if the document was updated. Missing documents, keywords
            or URLs, invalid results and store failures are logged and
            return False.
        """
        log_extra = {
            "namespace": self._namespace,
            "key": key[:100],
            "keyword": keyword[:50],
            "url": match_url[:200],
        }

        try:
            stored = await self._store.get(self._storage_key(key))
        except StoreError as e:
            logger.error(
                "Cache merge read failed",
                extra={**log_extra, "error_message": e.message},
                exc_info=True,
            )
            return False

        if stored is None or not isinstance(stored.payload, dict):
            logger.warning("Cache merge target document not found", extra=log_extra)
            return False

        payload = stored.payload
        keyword_result = (payload.get("results") or {}).get(keyword)
        entries = keyword_result.get("results") if isinstance(keyword_result, dict) else None
        if not isinstance(entries, list):
            logger.warning("Cache merge keyword not found in document", extra=log_extra)
            return False

        target = next(
            (
                entry
                for entry in entries
                if isinstance(entry, dict) and entry.get("url") == match_url
            ),
            None,
        )
        if target is None:
            logger.warning("Cache merge URL not found in results", extra=log_extra)
            return False

        target.update(patch)

        # No degraded fallback here: stripping would rewrite sibling entries
        try:
            document = self._model.model_validate(payload)
        except PydanticValidationError as e:
            logger.warning(
                "Merged document failed schema validation",
                extra={**log_extra, "error_message": str(e)[:500]},
            )
            return False

        try:
            await self.put(key, document)
        except StoreError:
            # put() has already logged the failure
            return False

        logger.debug("Cache entry merged", extra=log_extra)
        return True

    async def delete(self, key: str) -> bool:
        """Remove one cached document. Returns True if it existed."""
        try:
            deleted = await self._store.delete(self._storage_key(key))
        except StoreError as e:
            logger.error(
                "Cache delete failed",
                extra={
                    "namespace": self._namespace,
                    "key": key[:100],
                    "error_message": e.message,
                },
                exc_info=True,
            )
            return False

        logger.info(
            "Cache entry deleted",
            extra={"namespace": self._namespace, "key": key[:100], "deleted": deleted},
        )
        return deleted
