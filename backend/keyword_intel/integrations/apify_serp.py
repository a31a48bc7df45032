"""Apify Google Search scraper integration client.

Runs the configured SERP actor synchronously
(``/v2/acts/{actor}/run-sync-get-dataset-items``) and returns one
SerpProviderItem per query.

Features:
- Async HTTP client using httpx with the shared retry policy
- Tolerant pydantic decoding: unknown fields are ignored and items that
  fail validation are skipped with a warning
- API token sent as a bearer header, never in URLs or logs
"""

import time
from typing import Any

import httpx
from pydantic import Field, ValidationError

from keyword_intel.core.config import get_settings
from keyword_intel.core.errors import ProviderAuthError, ProviderError
from keyword_intel.core.logging import apify_logger, get_logger
from keyword_intel.integrations.base import ProviderClient
from keyword_intel.schemas.base import CamelModel

logger = get_logger(__name__)


class ProviderOrganicResult(CamelModel):
    """Organic result as returned by the scraper."""

    title: str | None = ""
    url: str | None = ""
    displayed_url: str | None = ""
    position: int | None = None
    description: str | None = ""


class SerpProviderItem(CamelModel):
    """One dataset item (one query) from the scraper."""

    search_query: dict[str, Any] | str | None = None
    organic_results: list[ProviderOrganicResult] = Field(default_factory=list)
    results_total: int | None = 0
    related_queries: list[Any] = Field(default_factory=list)
    people_also_ask: list[Any] = Field(default_factory=list)
    ai_overview: Any | None = None

    @property
    def term(self) -> str:
        """The query this item answers ("" if the provider omitted it)."""
        if isinstance(self.search_query, dict):
            return str(self.search_query.get("term") or "")
        return self.search_query or ""


class ApifySerpClient(ProviderClient):
    """Async client for the Apify Google SERP actor."""

    provider_name = "Apify"

    def __init__(
        self,
        api_token: str | None = None,
        actor_id: str | None = None,
        api_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize Apify client.

        Args:
            api_token: Apify API token. Defaults to settings.
            actor_id: SERP actor ID (e.g. "apify~google-search-scraper").
            api_url: API base URL. Defaults to settings.
            timeout: Request timeout in seconds. Defaults to settings.
            max_retries: Maximum retry attempts. Defaults to settings.
            retry_delay: Base delay between retries. Defaults to settings.
            http_client: Pre-built httpx client (tests inject a MockTransport).
        """
        settings = get_settings()
        super().__init__(
            base_url=api_url or settings.apify_api_url,
            timeout=timeout or settings.serp_timeout,
            max_retries=max_retries or settings.serp_max_retries,
            retry_delay=(
                retry_delay if retry_delay is not None else settings.serp_retry_delay
            ),
            provider_logger=apify_logger,
            http_client=http_client,
        )
        self._api_token = api_token or settings.apify_api_token
        self._actor_id = actor_id or settings.apify_actor_id

    @property
    def available(self) -> bool:
        """Check if the actor is configured."""
        return bool(self._api_token and self._actor_id)

    def _default_headers(self) -> dict[str, str]:
        headers = super()._default_headers()
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        return headers

    async def search(
        self,
        keywords: list[str],
        country_code: str,
        language_code: str,
        results_per_page: int = 100,
    ) -> list[SerpProviderItem]:
        """Run one scrape for a list of queries.

        Args:
            keywords: Queries to run (sent newline-joined)
            country_code: Lowercase ISO country code ("" lets the actor pick)
            language_code: Normalised language code (e.g. "zh-TW")
            results_per_page: Organic results to request per query

        Returns:
            Validated dataset items; invalid items are dropped.

        Raises:
            ProviderAuthError: If the actor is not configured
            ProviderError: On non-2xx responses or a non-list payload
        """
        if not self.available:
            raise ProviderAuthError("Apify API token or actor ID not configured")

        endpoint = f"/v2/acts/{self._actor_id}/run-sync-get-dataset-items"
        request_body = {
            "queries": "\n".join(keywords),
            "countryCode": country_code,
            "languageCode": language_code,
            "resultsPerPage": results_per_page,
            "maxPagesPerQuery": 1,
            "forceExactMatch": False,
            "mobileResults": False,
            "includeUnfilteredResults": False,
            "saveHtml": False,
            "saveHtmlToKeyValueStore": False,
            "includeIcons": False,
        }

        start_time = time.monotonic()
        response = await self._request("POST", endpoint, json=request_body)
        raw_items = self._decode_json(response, self.provider_name)
        if not isinstance(raw_items, list):
            raise ProviderError(
                "Apify returned a non-list dataset",
                status_code=response.status_code,
                response_body=str(raw_items)[:500],
            )

        items: list[SerpProviderItem] = []
        for index, raw in enumerate(raw_items):
            try:
                items.append(SerpProviderItem.model_validate(raw))
            except ValidationError as e:
                logger.warning(
                    "Skipping invalid Apify dataset item",
                    extra={"item_index": index, "error_message": str(e)[:500]},
                )

        logger.info(
            "Apify SERP search completed",
            extra={
                "keyword_count": len(keywords),
                "item_count": len(items),
                "skipped_count": len(raw_items) - len(items),
                "duration_ms": round((time.monotonic() - start_time) * 1000, 2),
            },
        )
        return items
