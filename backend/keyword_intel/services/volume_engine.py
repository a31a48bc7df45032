"""Keyword search-volume lookup with caching and batched provider calls.

Flow for one lookup:
1. Validate inputs and credentials (before any I/O)
2. Clean keywords: drop simplified-Chinese terms, then case-insensitive
   duplicates
3. Serve a fresh cached VolumeDocument if there is one
4. Otherwise query the ad-planning provider 20 seeds at a time, map and
   filter the returned ideas, sort by volume and cache the document once

A batch that fails is skipped; only when every batch fails does the
lookup report an error.

ERROR LOGGING REQUIREMENTS:
- Log method entry/exit at DEBUG level with parameters (sanitized)
- Log all exceptions with full stack trace and context
- Log validation failures with field names and rejected values
- Add timing logs for operations >1 second
"""

import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from keyword_intel.core.config import get_settings
from keyword_intel.core.errors import StoreError, ValidationError
from keyword_intel.core.logging import get_logger
from keyword_intel.integrations.google_ads import (
    MAX_SEED_KEYWORDS,
    GoogleAdsClient,
    KeywordIdea,
)
from keyword_intel.schemas.volume import (
    CompetitionLevel,
    ProcessingTime,
    VolumeDocument,
    VolumeItem,
)
from keyword_intel.services.batch_fetcher import BatchFetcher
from keyword_intel.services.cache_store import CacheStore
from keyword_intel.utils.keyspace import derive_key
from keyword_intel.utils.regions import (
    LANGUAGE_CODES,
    LOCATION_CODES,
    REGION_NAMES,
    resolve_language_code,
    resolve_location_code,
)
from keyword_intel.utils.script_filter import (
    ScriptType,
    classify,
    dedupe_case_insensitive,
    filter_simplified,
    spaced_variant,
)

logger = get_logger(__name__)

__all__ = [
    "LANGUAGE_CODES",
    "LOCATION_CODES",
    "REGION_NAMES",
    "VolumeCacheEngine",
    "VolumeLookupResult",
    "estimate_processing_time",
    "map_keyword_idea",
    "resolve_language_code",
    "resolve_location_code",
]

# Constants
SLOW_OPERATION_THRESHOLD_MS = 1000
MICROS_PER_UNIT = 1_000_000

# Processing time model (seconds)
BASE_PROCESSING_SECONDS = 1.0
PER_KEYWORD_SECONDS = 0.1
PER_KEYWORD_VOLUME_SECONDS = 0.5
PER_BATCH_VOLUME_SECONDS = 2

COMPETITION_BY_INDEX: dict[int, CompetitionLevel] = {
    0: CompetitionLevel.UNKNOWN,
    1: CompetitionLevel.LOW,
    2: CompetitionLevel.MEDIUM,
    3: CompetitionLevel.HIGH,
    4: CompetitionLevel.VERY_HIGH,
}

COMPETITION_BY_NAME: dict[str, CompetitionLevel] = {
    "UNSPECIFIED": CompetitionLevel.UNKNOWN,
    "UNKNOWN": CompetitionLevel.UNKNOWN,
    "LOW": CompetitionLevel.LOW,
    "MEDIUM": CompetitionLevel.MEDIUM,
    "HIGH": CompetitionLevel.HIGH,
    "VERY_HIGH": CompetitionLevel.VERY_HIGH,
}

SourceInfo = Literal["cache", "api"]


@dataclass
class VolumeLookupResult:
    """Result of a search-volume lookup."""

    results: list[VolumeItem] = field(default_factory=list)
    processing_time: ProcessingTime = field(
        default_factory=lambda: ProcessingTime(estimated=0)
    )
    source_info: SourceInfo = "api"
    error: str | None = None
    failed_batches: int = 0
    total_batches: int = 0

    @property
    def success(self) -> bool:
        return self.error is None


def estimate_processing_time(keyword_count: int, with_volume: bool = True) -> int:
    """Estimated seconds for a lookup of ``keyword_count`` keywords."""
    seconds = BASE_PROCESSING_SECONDS + PER_KEYWORD_SECONDS * keyword_count
    if with_volume:
        batches = math.ceil(keyword_count / MAX_SEED_KEYWORDS)
        seconds += PER_KEYWORD_VOLUME_SECONDS * keyword_count
        seconds += PER_BATCH_VOLUME_SECONDS * batches
    return math.ceil(seconds)


def _parse_search_volume(value: Any) -> int:
    if value is None:
        return 0
    try:
        volume = int(value)
    except (TypeError, ValueError):
        try:
            volume = int(float(value))
        except (TypeError, ValueError):
            return 0
    return max(volume, 0)


def _parse_competition(value: Any) -> CompetitionLevel:
    if value is None:
        return CompetitionLevel.UNKNOWN
    if isinstance(value, str):
        name = value.strip().upper()
        if name in COMPETITION_BY_NAME:
            return COMPETITION_BY_NAME[name]
        if not name.isdigit():
            return CompetitionLevel.UNKNOWN
        value = int(name)
    return COMPETITION_BY_INDEX.get(value, CompetitionLevel.UNKNOWN)


def _parse_competition_index(value: Any) -> float | None:
    if value is None:
        return None
    try:
        index = round(float(value), 2)
    except (TypeError, ValueError):
        return None
    return index if 0 <= index <= 100 else None


def _parse_cpc(micros: Any) -> float | None:
    if micros is None:
        return None
    try:
        cpc = round(float(micros) / MICROS_PER_UNIT, 2)
    except (TypeError, ValueError):
        return None
    return cpc if cpc >= 0 else None


def map_keyword_idea(idea: KeywordIdea) -> VolumeItem:
    """Map a provider keyword idea to a VolumeItem."""
    text = (idea.text or "").strip()
    metrics = idea.keyword_idea_metrics
    if metrics is None:
        return VolumeItem(text=text)
    return VolumeItem(
        text=text,
        search_volume=_parse_search_volume(metrics.avg_monthly_searches),
        competition=_parse_competition(metrics.competition),
        competition_index=_parse_competition_index(metrics.competition_index),
        cpc=_parse_cpc(metrics.low_top_of_page_bid_micros),
    )


class VolumeCacheEngine:
    """Cache-first keyword volume lookups against the ad-planning provider."""

    def __init__(
        self,
        cache: CacheStore[VolumeDocument] | None,
        ads_client: GoogleAdsClient,
        fetcher: BatchFetcher | None = None,
        include_spaced_variants: bool | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize volume engine.

        Args:
            cache: CacheStore for VolumeDocument entries (None disables caching)
            ads_client: Ad-planning provider client
            fetcher: Batch runner. Defaults to one built from settings.
            include_spaced_variants: Also query "電 腦" for "電腦". Defaults
                to settings.
            clock: Clock used to measure actual processing time
        """
        settings = get_settings()
        self._cache = cache
        self._ads_client = ads_client
        self._fetcher = fetcher or BatchFetcher()
        self._include_spaced_variants = (
            include_spaced_variants
            if include_spaced_variants is not None
            else settings.volume_spaced_cjk_variants
        )
        self._clock = clock

    def _elapsed_seconds(self, started: float) -> int:
        return round(self._clock() - started)

    async def get_search_volume(
        self,
        keywords: list[str],
        region: str,
        language: str,
    ) -> VolumeLookupResult:
        """Return search volumes for keywords, from cache when fresh.

        Raises:
            ValidationError: On empty keywords/region/language, missing
                provider credentials, or no usable keywords after cleaning
        """
        started = self._clock()
        stripped = [kw.strip() for kw in keywords or [] if kw and kw.strip()]
        if not stripped:
            logger.warning(
                "Volume lookup validation failed - empty keywords",
                extra={"field": "keywords", "value": keywords},
            )
            raise ValidationError("keywords", keywords, "At least one keyword is required")
        if not region or not region.strip():
            raise ValidationError("region", region, "Region cannot be empty")
        if not language or not language.strip():
            raise ValidationError("language", language, "Language cannot be empty")
        if not self._ads_client.available:
            logger.warning(
                "Volume lookup validation failed - provider credentials missing",
                extra={"field": "credentials"},
            )
            raise ValidationError(
                "credentials", None, "Google Ads API credentials are not configured"
            )

        cleaned = dedupe_case_insensitive(filter_simplified(stripped))
        if not cleaned:
            raise ValidationError(
                "keywords", keywords, "No keywords left after removing simplified Chinese"
            )

        estimated = estimate_processing_time(len(cleaned), with_volume=True)
        cache_key = derive_key(cleaned, region, language)

        logger.debug(
            "Volume lookup started",
            extra={
                "keyword_count": len(cleaned),
                "dropped_count": len(stripped) - len(cleaned),
                "region": region,
                "language": language,
            },
        )

        if self._cache is not None:
            lookup = await self._cache.get(cache_key)
            if lookup.is_fresh and lookup.document is not None:
                logger.info(
                    "Volume lookup served from cache",
                    extra={
                        "keyword_count": len(cleaned),
                        "result_count": len(lookup.document.results),
                        "age_days": round(lookup.age_days or 0.0, 3),
                    },
                )
                return VolumeLookupResult(
                    results=lookup.document.results,
                    processing_time=ProcessingTime(
                        estimated=estimated, actual=self._elapsed_seconds(started)
                    ),
                    source_info="cache",
                )

        query_keywords = self._build_query_list(cleaned)
        location_id = resolve_location_code(region)
        language_id = resolve_language_code(language)

        async def fetch_batch(batch: list[str]) -> list[KeywordIdea]:
            response = await self._ads_client.generate_keyword_ideas(
                batch, location_id, language_id
            )
            return response.results

        run = await self._fetcher.run_batches(
            query_keywords,
            fetch_batch,
            batch_size=min(self._fetcher.batch_size, MAX_SEED_KEYWORDS),
            operation="keyword_volume",
        )

        if run.all_failed:
            last_error = run.errors[-1].error if run.errors else "unknown error"
            logger.error(
                "Volume lookup failed - every batch failed",
                extra={
                    "keyword_count": len(cleaned),
                    "total_batches": run.total_batches,
                    "error_message": last_error[:500],
                },
            )
            return VolumeLookupResult(
                results=[],
                processing_time=ProcessingTime(
                    estimated=estimated, actual=self._elapsed_seconds(started)
                ),
                source_info="api",
                error=f"All {run.total_batches} volume batches failed: {last_error}",
                failed_batches=run.failed_batches,
                total_batches=run.total_batches,
            )

        items = self._collect_items(run.results)
        # sort() is stable: equal volumes keep provider order
        items.sort(key=lambda item: item.search_volume, reverse=True)

        await self._persist(cache_key, cleaned, region, language, items)

        duration_ms = (self._clock() - started) * 1000
        actual = self._elapsed_seconds(started)
        if duration_ms > SLOW_OPERATION_THRESHOLD_MS:
            logger.warning(
                "Slow volume lookup",
                extra={
                    "keyword_count": len(cleaned),
                    "duration_ms": round(duration_ms, 2),
                    "estimated_seconds": estimated,
                },
            )
        logger.info(
            "Volume lookup served from provider",
            extra={
                "keyword_count": len(cleaned),
                "result_count": len(items),
                "failed_batches": run.failed_batches,
                "total_batches": run.total_batches,
            },
        )
        return VolumeLookupResult(
            results=items,
            processing_time=ProcessingTime(estimated=estimated, actual=actual),
            source_info="api",
            failed_batches=run.failed_batches,
            total_batches=run.total_batches,
        )

    def _build_query_list(self, cleaned: list[str]) -> list[str]:
        if not self._include_spaced_variants:
            return cleaned
        variants = [v for v in (spaced_variant(kw) for kw in cleaned) if v]
        return list(dict.fromkeys(variants + cleaned))

    @staticmethod
    def _collect_items(ideas: list[KeywordIdea]) -> list[VolumeItem]:
        seen: set[str] = set()
        items: list[VolumeItem] = []
        for idea in ideas:
            text = (idea.text or "").strip()
            if not text or text.casefold() in seen:
                continue
            seen.add(text.casefold())
            if classify(text) is ScriptType.SIMPLIFIED:
                continue
            items.append(map_keyword_idea(idea))
        return items

    async def _persist(
        self,
        cache_key: str,
        keywords: list[str],
        region: str,
        language: str,
        items: list[VolumeItem],
    ) -> None:
        if self._cache is None:
            return
        document = VolumeDocument(
            keywords=keywords, region=region, language=language, results=items
        )
        try:
            await self._cache.put(cache_key, document)
        except StoreError as e:
            if e.is_quota_exceeded:
                logger.warning(
                    "Document store full, volume results not cached",
                    extra={"cache_key": cache_key[:100], "error_message": e.message},
                )
            else:
                logger.error(
                    "Failed to cache volume results",
                    extra={"cache_key": cache_key[:100], "error_message": e.message},
                )
