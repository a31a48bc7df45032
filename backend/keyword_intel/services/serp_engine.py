"""SERP retrieval with per-keyword caching and on-page HTML analysis.

Cache policy:
- Every keyword's SERP is cached under its own key,
  derive_key([keyword], region, language).
- The first (primary) keyword decides freshness; the cache answers only
  when every requested keyword has a fresh entry. Otherwise the whole
  keyword list is fetched again.
- Results are written back keyword by keyword. A full store stops the
  remaining writes for the call; other write failures are logged and
  skipped. Data is returned either way.

ERROR LOGGING REQUIREMENTS:
- Log method entry/exit at DEBUG level with parameters (sanitized)
- Log all exceptions with full stack trace and context
- Log validation failures with field names and rejected values
- Add timing logs for operations >1 second
"""

import hashlib
import math
import re
import time
from dataclasses import dataclass
from typing import Literal
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from keyword_intel.core.config import get_settings
from keyword_intel.core.errors import ProviderError, StoreError, ValidationError
from keyword_intel.core.logging import get_logger
from keyword_intel.integrations.apify_serp import ApifySerpClient, SerpProviderItem
from keyword_intel.integrations.page_fetch import PageFetchClient
from keyword_intel.schemas.serp import (
    Heading,
    HtmlAnalysis,
    KeywordSerpResult,
    OrganicResult,
    PageContent,
    SerpAnalysis,
    SerpDocument,
)
from keyword_intel.services.cache_store import CacheStore
from keyword_intel.utils.keyspace import derive_key
from keyword_intel.utils.regions import map_region_to_country, normalize_language_code

logger = get_logger(__name__)

# Constants
SLOW_OPERATION_THRESHOLD_MS = 1000
TOP_DOMAIN_COUNT = 5
IMAGE_LINK_PATTERN = re.compile(r"!\[.*?\]\(.*?\)")
HEADING_TAGS = ("h1", "h2", "h3")

SourceInfo = Literal["cache", "api"]


@dataclass
class SerpAnalysisResult:
    """Result of a SERP lookup."""

    results: dict[str, KeywordSerpResult]
    source_info: SourceInfo
    error: str | None = None
    partial: bool = False
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class HtmlEnrichmentResult:
    """Result of attaching HTML analyses to a cached keyword's results."""

    success: bool
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    message: str | None = None


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def analyze_serp_results(results: list[OrganicResult]) -> SerpAnalysis:
    """Compute domain counts and average lengths in a single pass."""
    domains: dict[str, int] = {}
    total_title_length = 0
    total_description_length = 0

    for result in results:
        if result.url:
            parsed = urlparse(result.url)
            if parsed.scheme in ("http", "https") and parsed.hostname:
                domains[parsed.hostname] = domains.get(parsed.hostname, 0) + 1
        total_title_length += len(result.title)
        total_description_length += len(result.description)

    count = len(results)
    # sorted() is stable, so equal counts keep first-seen order
    top_domains = [
        domain
        for domain, _ in sorted(domains.items(), key=lambda item: item[1], reverse=True)
    ][:TOP_DOMAIN_COUNT]

    return SerpAnalysis(
        total_results=count,
        domains=domains,
        top_domains=top_domains,
        avg_title_length=_round_half_up(total_title_length / count) if count else 0,
        avg_description_length=(
            _round_half_up(total_description_length / count) if count else 0
        ),
    )


def process_provider_item(item: SerpProviderItem, keyword: str) -> KeywordSerpResult:
    """Convert one provider dataset item into a KeywordSerpResult."""
    organic: list[OrganicResult] = []
    for counter, raw in enumerate(item.organic_results, start=1):
        position = raw.position if raw.position and raw.position >= 1 else counter
        organic.append(
            OrganicResult(
                position=position,
                title=raw.title or "",
                url=raw.url or "",
                description=raw.description or "",
                displayed_url=raw.displayed_url or raw.url or "",
            )
        )

    return KeywordSerpResult(
        results=organic,
        analysis=analyze_serp_results(organic),
        related_queries=item.related_queries,
        people_also_ask=item.people_also_ask,
        ai_overview=item.ai_overview,
        original_query=keyword,
        total_results=item.results_total or 0,
    )


def check_h1_consistency(title: str, headings: list[Heading]) -> bool:
    """True if every H1 is contained in the title or contains it."""
    normalized_title = title.lower().strip()
    for heading in headings:
        if heading.level != "h1":
            continue
        h1 = heading.text.lower().strip()
        if h1 not in normalized_title and normalized_title not in h1:
            return False
    return True


def strip_image_links(markdown: str) -> str:
    """Remove ![alt](src) image links from markdown."""
    return IMAGE_LINK_PATTERN.sub("", markdown)


def page_content_key(url: str) -> str:
    """Deterministic content-cache key for a page URL."""
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


def _is_http_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class SerpCacheEngine:
    """Cache-first SERP retrieval and HTML enrichment."""

    def __init__(
        self,
        cache: CacheStore[SerpDocument],
        serp_client: ApifySerpClient,
        page_client: PageFetchClient | None = None,
        content_cache: CacheStore[PageContent] | None = None,
        max_keywords: int | None = None,
        default_max_results: int | None = None,
    ) -> None:
        """Initialize SERP engine.

        Args:
            cache: CacheStore for SerpDocument entries
            serp_client: SERP provider client
            page_client: Page fetch client used for HTML analysis
            content_cache: Optional store for page markdown; when set,
                analyses keep only a content_ref
            max_keywords: Keywords sent per provider call. Defaults to settings.
            default_max_results: Results per keyword when the caller passes
                a non-positive value. Defaults to settings.
        """
        settings = get_settings()
        self._cache = cache
        self._serp_client = serp_client
        self._page_client = page_client
        self._content_cache = content_cache
        self._max_keywords = max_keywords or settings.serp_max_keywords
        self._default_max_results = (
            default_max_results or settings.serp_default_max_results
        )

        logger.debug(
            "SerpCacheEngine initialized",
            extra={
                "max_keywords": self._max_keywords,
                "has_page_client": page_client is not None,
                "has_content_cache": content_cache is not None,
            },
        )

    async def get_serp_analysis(
        self,
        keywords: list[str],
        region: str,
        language: str,
        max_results: int = 100,
    ) -> SerpAnalysisResult:
        """Return SERP results for keywords, from cache when all are fresh.

        Raises:
            ValidationError: If keywords, region or language are empty
        """
        start_time = time.monotonic()
        cleaned = self._clean_keywords(keywords)
        if not cleaned:
            logger.warning(
                "SERP lookup validation failed - empty keywords",
                extra={"field": "keywords", "value": keywords},
            )
            raise ValidationError("keywords", keywords, "At least one keyword is required")
        if not region or not region.strip():
            raise ValidationError("region", region, "Region cannot be empty")
        if not language or not language.strip():
            raise ValidationError("language", language, "Language cannot be empty")
        if max_results <= 0:
            max_results = self._default_max_results

        logger.debug(
            "SERP lookup started",
            extra={
                "keywords": cleaned[:10],
                "keyword_count": len(cleaned),
                "region": region,
                "language": language,
            },
        )

        requested = cleaned[: self._max_keywords]
        cached = await self._read_fresh(requested, region, language)
        if cached is not None:
            results, partial = cached
            duration_ms = (time.monotonic() - start_time) * 1000
            logger.info(
                "SERP lookup served from cache",
                extra={
                    "keyword_count": len(results),
                    "partial": partial,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            return SerpAnalysisResult(
                results=results,
                source_info="cache",
                partial=partial,
                duration_ms=duration_ms,
            )

        try:
            items = await self._serp_client.search(
                requested,
                map_region_to_country(region),
                normalize_language_code(language),
                max_results,
            )
            results = self._process_items(items, requested)
            await self._persist(results, region, language)
            missing = [keyword for keyword in requested if keyword not in results]
            if missing:
                # Nothing to cache for these; the next call refetches them
                logger.warning(
                    "SERP provider returned no item for some keywords",
                    extra={"keywords": missing[:10], "missing_count": len(missing)},
                )

        except ProviderError as e:
            logger.error(
                "SERP provider request failed",
                extra={
                    "keywords": cleaned[:10],
                    "error_kind": e.kind.value,
                    "status_code": e.status_code,
                    "error_message": e.message,
                },
                exc_info=True,
            )
            return SerpAnalysisResult(
                results={},
                source_info="api",
                error=e.message,
                duration_ms=(time.monotonic() - start_time) * 1000,
            )
        except Exception as e:
            logger.error(
                "SERP lookup failed unexpectedly",
                extra={
                    "keywords": cleaned[:10],
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True,
            )
            return SerpAnalysisResult(
                results={},
                source_info="api",
                error=str(e) or type(e).__name__,
                duration_ms=(time.monotonic() - start_time) * 1000,
            )

        duration_ms = (time.monotonic() - start_time) * 1000
        if duration_ms > SLOW_OPERATION_THRESHOLD_MS:
            logger.warning(
                "Slow SERP lookup",
                extra={
                    "keyword_count": len(cleaned),
                    "duration_ms": round(duration_ms, 2),
                    "threshold_ms": SLOW_OPERATION_THRESHOLD_MS,
                },
            )
        logger.info(
            "SERP lookup served from provider",
            extra={
                "keyword_count": len(results),
                "duration_ms": round(duration_ms, 2),
            },
        )
        return SerpAnalysisResult(
            results=results,
            source_info="api",
            partial=bool(missing),
            duration_ms=duration_ms,
        )

    @staticmethod
    def _clean_keywords(keywords: list[str]) -> list[str]:
        cleaned: list[str] = []
        for keyword in keywords or []:
            stripped = keyword.strip() if isinstance(keyword, str) else ""
            if stripped and stripped not in cleaned:
                cleaned.append(stripped)
        return cleaned

    async def _read_fresh(
        self, keywords: list[str], region: str, language: str
    ) -> tuple[dict[str, KeywordSerpResult], bool] | None:
        """Return cached results if every keyword is fresh, else None."""
        results: dict[str, KeywordSerpResult] = {}
        partial = False

        # keywords[0] is the primary keyword; a stale primary skips the rest
        for keyword in keywords:
            lookup = await self._cache.get(derive_key([keyword], region, language))
            if not lookup.is_fresh or lookup.document is None:
                logger.debug(
                    "SERP cache not fresh for keyword",
                    extra={"keyword": keyword[:50], "outcome": lookup.outcome.value},
                )
                return None

            keyword_result = lookup.document.results.get(keyword)
            if keyword_result is None:
                return None
            results[keyword] = keyword_result
            partial = partial or lookup.partial

        return results, partial

    @staticmethod
    def _process_items(
        items: list[SerpProviderItem], requested: list[str]
    ) -> dict[str, KeywordSerpResult]:
        # Provider echoes queries in its own casing; key results by ours
        by_folded = {keyword.casefold(): keyword for keyword in requested}
        results: dict[str, KeywordSerpResult] = {}

        for item in items:
            term = item.term.strip()
            if not term:
                logger.debug("Skipping SERP item without a search term")
                continue
            keyword = by_folded.get(term.casefold(), term)
            results[keyword] = process_provider_item(item, keyword)
        return results

    async def _persist(
        self,
        results: dict[str, KeywordSerpResult],
        region: str,
        language: str,
    ) -> None:
        for keyword, keyword_result in results.items():
            document = SerpDocument(
                keywords=[keyword],
                region=region,
                language=language,
                results={keyword: keyword_result},
            )
            try:
                await self._cache.put(derive_key([keyword], region, language), document)
            except StoreError as e:
                if e.is_quota_exceeded:
                    logger.warning(
                        "Document store full, skipping remaining SERP cache writes",
                        extra={"keyword": keyword[:50], "error_message": e.message},
                    )
                    return
                logger.error(
                    "Failed to cache SERP result, continuing",
                    extra={"keyword": keyword[:50], "error_message": e.message},
                )

    async def analyze_html_content(self, url: str) -> HtmlAnalysis | None:
        """Fetch a page and extract title, headings and markdown content.

        Returns None on any failure.
        """
        if not url or not _is_http_url(url):
            logger.warning(
                "HTML analysis validation failed - invalid URL",
                extra={"field": "url", "value": (url or "")[:200]},
            )
            return None
        if self._page_client is None:
            logger.warning("HTML analysis skipped - no page fetch client")
            return None

        try:
            page = await self._page_client.fetch(url)
            if not page.success or not page.html:
                return None

            soup = BeautifulSoup(page.html, "html.parser")
            title = soup.title.get_text(strip=True) if soup.title else ""

            headings: list[Heading] = []
            for element in soup.find_all(HEADING_TAGS):
                text = element.get_text(" ", strip=True)
                if text:
                    headings.append(Heading(level=element.name.lower(), text=text))

            if page.markdown:
                content = page.markdown
            elif soup.body is not None:
                content = soup.body.get_text("\n", strip=True)
            else:
                content = ""
            content = strip_image_links(content).strip()

            return HtmlAnalysis(
                title=title,
                headings=headings,
                h1_consistency=check_h1_consistency(title, headings),
                content=content or None,
            )

        except Exception as e:
            logger.error(
                "HTML analysis failed",
                extra={
                    "url": url[:200],
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True,
            )
            return None

    async def get_page_content(self, content_ref: str) -> str | None:
        """Load separately stored page markdown by its content_ref."""
        if self._content_cache is None or not content_ref:
            return None
        lookup = await self._content_cache.get(content_ref)
        return lookup.document.markdown if lookup.document else None

    async def _store_content(self, url: str, analysis: HtmlAnalysis) -> HtmlAnalysis:
        """Move analysis.content to the content cache, leaving a reference."""
        if self._content_cache is None or not analysis.content:
            return analysis

        content_ref = page_content_key(url)
        try:
            await self._content_cache.put(
                content_ref, PageContent(url=url, markdown=analysis.content)
            )
        except StoreError as e:
            logger.warning(
                "Failed to store page content separately, keeping it inline",
                extra={"url": url[:200], "error_message": e.message},
            )
            return analysis

        return analysis.model_copy(update={"content": None, "content_ref": content_ref})

    async def enrich_results_html(
        self,
        keyword: str,
        region: str,
        language: str,
    ) -> HtmlEnrichmentResult:
        """Attach HTML analyses to cached results that do not have one yet."""
        start_time = time.monotonic()
        key = derive_key([keyword], region, language)
        lookup = await self._cache.get(key)
        if lookup.document is None or keyword not in lookup.document.results:
            logger.warning(
                "HTML enrichment skipped - no cached SERP for keyword",
                extra={"keyword": keyword[:50], "region": region, "language": language},
            )
            return HtmlEnrichmentResult(
                success=False, message="No cached SERP data for keyword"
            )

        outcome = HtmlEnrichmentResult(success=True)
        for entry in lookup.document.results[keyword].results:
            if entry.html_analysis is not None or not entry.url:
                outcome.skipped += 1
                continue

            analysis = await self.analyze_html_content(entry.url)
            if analysis is None:
                outcome.errors += 1
                continue

            analysis = await self._store_content(entry.url, analysis)
            merged = await self._cache.merge_result_field(
                key, keyword, entry.url, {"htmlAnalysis": analysis.to_document()}
            )
            if merged:
                outcome.processed += 1
            else:
                outcome.errors += 1

        duration_ms = (time.monotonic() - start_time) * 1000
        outcome.message = (
            f"Analyzed {outcome.processed} results, skipped {outcome.skipped}, "
            f"{outcome.errors} failed"
        )
        logger.info(
            "HTML enrichment complete",
            extra={
                "keyword": keyword[:50],
                "processed": outcome.processed,
                "skipped": outcome.skipped,
                "errors": outcome.errors,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return outcome
