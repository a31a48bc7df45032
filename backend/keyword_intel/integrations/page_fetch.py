"""Page fetch (scrape) service client.

The scrape service takes ``POST {"url": ...}`` and answers with the raw
page HTML and, when it can produce one, a markdown rendition:
``{"html": "...", "markdown": "..."}``.

Failures come back as an unsuccessful PageFetchResult; callers treat any
failure as "no analysis for this URL".
"""

import time
from dataclasses import dataclass

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from keyword_intel.core.config import get_settings
from keyword_intel.core.errors import ErrorKind, ProviderError
from keyword_intel.core.logging import get_logger, page_fetch_logger
from keyword_intel.integrations.base import ProviderClient

logger = get_logger(__name__)


class PagePayload(BaseModel):
    """Scrape service response body."""

    model_config = ConfigDict(extra="ignore")

    html: str | None = None
    markdown: str | None = None


@dataclass
class PageFetchResult:
    """Result of fetching one page."""

    success: bool
    url: str
    html: str | None = None
    markdown: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    status_code: int | None = None
    duration_ms: float = 0.0


class PageFetchClient(ProviderClient):
    """Async client for the page fetch service."""

    provider_name = "PageFetch"

    def __init__(
        self,
        api_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        settings = get_settings()
        super().__init__(
            base_url="",
            timeout=timeout or settings.page_fetch_timeout,
            max_retries=max_retries or settings.page_fetch_max_retries,
            retry_delay=(
                retry_delay
                if retry_delay is not None
                else settings.page_fetch_retry_delay
            ),
            provider_logger=page_fetch_logger,
            http_client=http_client,
        )
        self._api_url = api_url or settings.page_fetch_api_url

    @property
    def available(self) -> bool:
        """Check if a fetch endpoint is configured."""
        return bool(self._api_url)

    async def fetch(self, url: str) -> PageFetchResult:
        """Fetch a page's HTML (and markdown, if the service provides it)."""
        if not self._api_url:
            return PageFetchResult(
                success=False,
                url=url,
                error="Page fetch service not configured",
                error_kind=ErrorKind.VALIDATION,
            )

        start_time = time.monotonic()
        try:
            response = await self._request("POST", self._api_url, json={"url": url})
            payload = PagePayload.model_validate(
                self._decode_json(response, self.provider_name)
            )
        except ProviderError as e:
            logger.warning(
                "Page fetch failed",
                extra={
                    "url": url[:200],
                    "error_kind": e.kind.value,
                    "error_message": e.message,
                    "status_code": e.status_code,
                },
            )
            return PageFetchResult(
                success=False,
                url=url,
                error=e.message,
                error_kind=e.kind,
                status_code=e.status_code,
                duration_ms=(time.monotonic() - start_time) * 1000,
            )
        except ValidationError as e:
            logger.warning(
                "Page fetch returned an unexpected payload",
                extra={"url": url[:200], "error_message": str(e)[:500]},
            )
            return PageFetchResult(
                success=False,
                url=url,
                error="Unexpected page fetch payload",
                error_kind=ErrorKind.PROVIDER,
                duration_ms=(time.monotonic() - start_time) * 1000,
            )

        duration_ms = (time.monotonic() - start_time) * 1000
        if not payload.html:
            logger.warning(
                "Page fetch response contained no HTML",
                extra={"url": url[:200], "duration_ms": round(duration_ms, 2)},
            )
            return PageFetchResult(
                success=False,
                url=url,
                markdown=payload.markdown,
                error="No HTML in page fetch response",
                error_kind=ErrorKind.PROVIDER,
                status_code=response.status_code,
                duration_ms=duration_ms,
            )

        return PageFetchResult(
            success=True,
            url=url,
            html=payload.html,
            markdown=payload.markdown,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
