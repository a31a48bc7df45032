"""Google Ads Keyword Planner integration client.

Calls ``customers/{id}:generateKeywordIdeas`` to get search volume,
competition and bid metrics for up to 20 seed keywords per request.

Features:
- OAuth2 refresh-token exchange; access token cached until shortly
  before it expires
- Shared retry policy; 429 responses honour the "Retry in N seconds" hint
  Google puts in the error body, with a 5s default
- Exhausted quotas (RESOURCE_EXHAUSTED) surface as QuotaExceededError
- Tolerant pydantic decoding of the response (unknown fields ignored)

RAILWAY DEPLOYMENT REQUIREMENTS:
- Credentials via environment variables (GOOGLE_ADS_*)
- Never log tokens or secrets
"""

import asyncio
import time
from typing import Any

import httpx
from pydantic import Field, ValidationError

from keyword_intel.core.config import get_settings
from keyword_intel.core.errors import ProviderAuthError, ProviderError
from keyword_intel.core.logging import get_logger, google_ads_logger
from keyword_intel.integrations.base import ProviderClient
from keyword_intel.schemas.base import CamelModel

logger = get_logger(__name__)

GOOGLE_ADS_API_URL = "https://googleads.googleapis.com"
OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"

# Google Ads accepts at most 20 seed keywords per generateKeywordIdeas call
MAX_SEED_KEYWORDS = 20

# Refresh the access token this many seconds before it expires
TOKEN_EXPIRY_MARGIN_SECONDS = 60


class KeywordIdeaMetrics(CamelModel):
    """Metrics block of a keyword idea. Numbers may arrive as strings."""

    avg_monthly_searches: int | float | str | None = None
    competition: int | str | None = None
    competition_index: int | float | str | None = None
    low_top_of_page_bid_micros: int | float | str | None = None
    high_top_of_page_bid_micros: int | float | str | None = None


class KeywordIdea(CamelModel):
    """A single keyword idea."""

    text: str | None = None
    keyword_idea_metrics: KeywordIdeaMetrics | None = None


class KeywordIdeasResponse(CamelModel):
    """generateKeywordIdeas response body."""

    results: list[KeywordIdea] = Field(default_factory=list)
    next_page_token: str | None = None


class GoogleAdsClient(ProviderClient):
    """Async client for the Google Ads keyword ideas endpoint."""

    provider_name = "GoogleAds"

    def __init__(
        self,
        developer_token: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
        customer_id: str | None = None,
        login_customer_id: str | None = None,
        api_version: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        rate_limit_delay: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize Google Ads client.

        Every argument defaults to the matching GOOGLE_ADS_* setting.

        Args:
            developer_token: Google Ads developer token
            client_id: OAuth client ID
            client_secret: OAuth client secret
            refresh_token: OAuth refresh token
            customer_id: Customer account to plan against
            login_customer_id: Manager account ID, if any
            api_version: API version path segment (e.g. "v19")
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts
            retry_delay: Base delay between retries
            rate_limit_delay: Wait used on 429 when no hint is given
            http_client: Pre-built httpx client (tests inject a MockTransport)
        """
        settings = get_settings()
        super().__init__(
            base_url=GOOGLE_ADS_API_URL,
            timeout=timeout or settings.google_ads_timeout,
            max_retries=max_retries or settings.google_ads_max_retries,
            retry_delay=(
                retry_delay
                if retry_delay is not None
                else settings.google_ads_retry_delay
            ),
            provider_logger=google_ads_logger,
            http_client=http_client,
            default_rate_limit_delay=(
                rate_limit_delay
                if rate_limit_delay is not None
                else settings.google_ads_default_rate_limit_delay
            ),
        )
        self._developer_token = developer_token or settings.google_ads_developer_token
        self._client_id = client_id or settings.google_ads_client_id
        self._client_secret = client_secret or settings.google_ads_client_secret
        self._refresh_token = refresh_token or settings.google_ads_refresh_token
        self._customer_id = customer_id or settings.google_ads_customer_id
        self._login_customer_id = (
            login_customer_id or settings.google_ads_login_customer_id
        )
        self._api_version = api_version or settings.google_ads_api_version

        self._access_token: str | None = None
        self._access_token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    @property
    def available(self) -> bool:
        """Check that every credential needed for a call is configured."""
        return all(
            (
                self._developer_token,
                self._client_id,
                self._client_secret,
                self._refresh_token,
                self._customer_id,
            )
        )

    async def _get_access_token(self) -> str:
        """Return a cached access token, refreshing it when near expiry."""
        async with self._token_lock:
            now = time.monotonic()
            if self._access_token and now < self._access_token_expires_at:
                return self._access_token

            try:
                response = await self._request(
                    "POST",
                    OAUTH_TOKEN_URL,
                    data={
                        "client_id": self._client_id or "",
                        "client_secret": self._client_secret or "",
                        "refresh_token": self._refresh_token or "",
                        "grant_type": "refresh_token",
                    },
                )
            except ProviderAuthError:
                raise
            except ProviderError as e:
                if e.status_code is not None and 400 <= e.status_code < 500:
                    raise ProviderAuthError(
                        f"Google OAuth token refresh failed ({e.status_code})",
                        status_code=e.status_code,
                        response_body=e.response_body,
                        request_id=e.request_id,
                    ) from e
                raise

            token_data = self._decode_json(response, "Google OAuth")
            access_token = token_data.get("access_token")
            if not access_token:
                raise ProviderAuthError(
                    "Google OAuth response did not include an access token",
                    status_code=response.status_code,
                )

            expires_in = float(token_data.get("expires_in") or 3600)
            self._access_token = access_token
            self._access_token_expires_at = now + max(
                expires_in - TOKEN_EXPIRY_MARGIN_SECONDS, 0.0
            )
            logger.debug(
                "Google OAuth access token refreshed",
                extra={"expires_in_seconds": expires_in},
            )
            return access_token

    async def generate_keyword_ideas(
        self,
        keywords: list[str],
        location_id: int,
        language_id: int,
    ) -> KeywordIdeasResponse:
        """Fetch keyword ideas for one batch of seed keywords.

        Args:
            keywords: Seed keywords (at most 20)
            location_id: Geo target constant ID (e.g. 2158 for Taiwan)
            language_id: Language constant ID (e.g. 1018 for zh-TW)

        Returns:
            Decoded KeywordIdeasResponse

        Raises:
            ProviderAuthError: Missing credentials or OAuth failure
            QuotaExceededError: Account quota exhausted
            ProviderError: Any other failure
        """
        if not self.available:
            raise ProviderAuthError("Google Ads API credentials not configured")
        if len(keywords) > MAX_SEED_KEYWORDS:
            raise ProviderError(
                f"At most {MAX_SEED_KEYWORDS} seed keywords per request, "
                f"got {len(keywords)}"
            )

        access_token = await self._get_access_token()
        headers = {
            "Authorization": f"Bearer {access_token}",
            "developer-token": self._developer_token or "",
        }
        if self._login_customer_id:
            headers["login-customer-id"] = self._login_customer_id

        endpoint = (
            f"/{self._api_version}/customers/{self._customer_id}:generateKeywordIdeas"
        )
        request_body: dict[str, Any] = {
            "language": f"languageConstants/{language_id}",
            "geoTargetConstants": [f"geoTargetConstants/{location_id}"],
            "includeAdultKeywords": False,
            "keywordPlanNetwork": "GOOGLE_SEARCH",
            "keywordSeed": {"keywords": keywords},
        }

        response = await self._request(
            "POST", endpoint, json=request_body, headers=headers
        )
        try:
            ideas = KeywordIdeasResponse.model_validate(
                self._decode_json(response, self.provider_name)
            )
        except ValidationError as e:
            raise ProviderError(
                "Google Ads returned an unexpected keyword ideas payload",
                status_code=response.status_code,
                response_body=str(e)[:500],
            ) from e

        logger.debug(
            "Google Ads keyword ideas received",
            extra={
                "seed_count": len(keywords),
                "idea_count": len(ideas.results),
                "location_id": location_id,
                "language_id": language_id,
            },
        )
        return ideas
