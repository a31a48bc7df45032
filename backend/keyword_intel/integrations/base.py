"""Shared async HTTP plumbing for external provider clients.

Features:
- Async HTTP client using httpx (created lazily, or injected)
- Retry logic with exponential backoff for 5xx, timeouts and transport errors
- Rate limit (429) handling: honours Retry-After, or a "Retry in N seconds"
  hint in the body, up to a 60s ceiling
- Quota exhaustion is reported as QuotaExceededError (structured kind),
  decided here once so callers never inspect error text
- Handles auth failures (401/403) without retrying
- Request/response logging per requirements

ERROR LOGGING REQUIREMENTS:
- Log all outbound API calls with endpoint, method, timing
- Log request/response bodies at DEBUG level (truncate large responses)
- Log and handle: timeouts, rate limits (429), auth failures (401/403)
- Include retry attempt number in logs
- Never log API keys or tokens
"""

import asyncio
import re
import time
import uuid
from typing import Any

import httpx

from keyword_intel.core.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    QuotaExceededError,
)
from keyword_intel.core.logging import ProviderLogger, get_logger

logger = get_logger(__name__)

# Longest rate-limit wait we are willing to sit through inside one call
MAX_RATE_LIMIT_WAIT_SECONDS = 60.0

# Maximum characters of a response body carried on errors
ERROR_BODY_EXCERPT_LENGTH = 500

RETRY_HINT_PATTERN = re.compile(r"Retry in (\d+) seconds?", re.IGNORECASE)
QUOTA_MARKERS = ("RESOURCE_EXHAUSTED", "quota")


def body_excerpt(response: httpx.Response) -> str:
    """Return the first characters of a response body for diagnostics."""
    try:
        text = response.text
    except UnicodeDecodeError:
        return f"<{len(response.content)} bytes of undecodable body>"
    return text[:ERROR_BODY_EXCERPT_LENGTH]


def parse_retry_after(response: httpx.Response) -> float | None:
    """Work out how long a 429 response asks us to wait.

    Prefers the Retry-After header; falls back to a "Retry in N seconds"
    hint in the body (plus half a second of slack).
    """
    header = response.headers.get("retry-after")
    if header:
        try:
            return max(float(header), 0.0)
        except ValueError:
            pass

    match = RETRY_HINT_PATTERN.search(body_excerpt(response))
    if match:
        return int(match.group(1)) + 0.5
    return None


def is_quota_response(response: httpx.Response) -> bool:
    """Whether a 429 body reports an exhausted quota (vs. a burst limit)."""
    excerpt = body_excerpt(response).lower()
    return any(marker.lower() in excerpt for marker in QUOTA_MARKERS)


class ProviderClient:
    """Base class for provider clients sharing one request/retry policy.

    Subclasses set ``provider_name`` and build their payloads; they call
    ``_request`` and get back a successful ``httpx.Response`` or a typed
    ProviderError.
    """

    provider_name = "provider"

    def __init__(
        self,
        base_url: str,
        timeout: float,
        max_retries: int,
        retry_delay: float,
        provider_logger: ProviderLogger,
        http_client: httpx.AsyncClient | None = None,
        default_rate_limit_delay: float | None = None,
    ) -> None:
        self._base_url = base_url
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._retry_delay = retry_delay
        self._provider_logger = provider_logger
        self._client = http_client
        self._owns_client = http_client is None
        self._default_rate_limit_delay = default_rate_limit_delay

    def _default_headers(self) -> dict[str, str]:
        # Content-Type is set per request from the body (json= or data=)
        return {"Accept": "application/json"}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._default_headers(),
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None
        logger.info(f"{self.provider_name} client closed")

    async def _backoff(self, attempt: int, reason: str, request_id: str) -> None:
        delay = self._retry_delay * (2**attempt)
        logger.warning(
            f"{self.provider_name} request attempt {attempt + 1} {reason}, "
            f"retrying in {delay}s",
            extra={
                "attempt": attempt + 1,
                "max_retries": self._max_retries,
                "delay_seconds": delay,
                "request_id": request_id,
            },
        )
        await asyncio.sleep(delay)

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        json: Any = None,
        data: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Make an HTTP request with retry logic.

        Returns:
            The successful (2xx) response.

        Raises:
            ProviderTimeoutError: On timeout after all retries
            ProviderRateLimitError: On rate limit (429) after all retries
            QuotaExceededError: On 429 whose body reports an exhausted quota
            ProviderAuthError: On auth failure (401/403)
            ProviderError: On any other non-2xx status or transport error
        """
        request_id = str(uuid.uuid4())[:8]
        client = await self._get_client()
        request_headers = {**self._default_headers(), **(headers or {})}
        last_error: ProviderError | None = None
        plog = self._provider_logger

        for attempt in range(self._max_retries):
            attempt_start = time.monotonic()

            try:
                plog.api_call_start(
                    endpoint, method=method, retry_attempt=attempt, request_id=request_id
                )
                if json is not None:
                    plog.request_body(endpoint, json)

                response = await client.request(
                    method,
                    endpoint,
                    json=json,
                    data=data,
                    params=params,
                    headers=request_headers,
                )
                duration_ms = (time.monotonic() - attempt_start) * 1000

                if response.status_code == 429:
                    retry_after = parse_retry_after(response)
                    plog.rate_limit(endpoint, retry_after=retry_after, request_id=request_id)
                    wait = (
                        retry_after
                        if retry_after is not None
                        else self._default_rate_limit_delay
                    )

                    if (
                        attempt < self._max_retries - 1
                        and wait is not None
                        and wait <= MAX_RATE_LIMIT_WAIT_SECONDS
                    ):
                        await asyncio.sleep(wait)
                        continue

                    excerpt = body_excerpt(response)
                    if is_quota_response(response):
                        raise QuotaExceededError(
                            f"{self.provider_name} quota exceeded",
                            status_code=429,
                            response_body=excerpt,
                            request_id=request_id,
                        )
                    raise ProviderRateLimitError(
                        f"{self.provider_name} rate limit exceeded",
                        retry_after=retry_after,
                        response_body=excerpt,
                        request_id=request_id,
                    )

                if response.status_code in (401, 403):
                    plog.auth_failure(response.status_code)
                    plog.api_call_error(
                        endpoint,
                        duration_ms,
                        response.status_code,
                        "Authentication failed",
                        "AuthError",
                        method=method,
                        retry_attempt=attempt,
                        request_id=request_id,
                    )
                    raise ProviderAuthError(
                        f"{self.provider_name} authentication failed "
                        f"({response.status_code})",
                        status_code=response.status_code,
                        response_body=body_excerpt(response),
                        request_id=request_id,
                    )

                if response.status_code >= 500:
                    error_msg = f"Server error ({response.status_code})"
                    plog.api_call_error(
                        endpoint,
                        duration_ms,
                        response.status_code,
                        error_msg,
                        "ServerError",
                        method=method,
                        retry_attempt=attempt,
                        request_id=request_id,
                    )
                    last_error = ProviderError(
                        f"{self.provider_name} request failed: {error_msg}: "
                        f"{body_excerpt(response)}",
                        status_code=response.status_code,
                        response_body=body_excerpt(response),
                        request_id=request_id,
                    )
                    if attempt < self._max_retries - 1:
                        await self._backoff(attempt, "failed", request_id)
                        continue
                    raise last_error

                if response.status_code >= 400:
                    # Client error - don't retry
                    excerpt = body_excerpt(response)
                    plog.api_call_error(
                        endpoint,
                        duration_ms,
                        response.status_code,
                        excerpt or "Client error",
                        "ClientError",
                        method=method,
                        retry_attempt=attempt,
                        request_id=request_id,
                    )
                    raise ProviderError(
                        f"{self.provider_name} request failed "
                        f"({response.status_code}): {excerpt}",
                        status_code=response.status_code,
                        response_body=excerpt,
                        request_id=request_id,
                    )

                plog.api_call_success(
                    endpoint, duration_ms, method=method, request_id=request_id
                )
                plog.response_body(endpoint, body_excerpt(response), duration_ms)
                return response

            except httpx.TimeoutException:
                duration_ms = (time.monotonic() - attempt_start) * 1000
                plog.timeout(endpoint, self._timeout)
                plog.api_call_error(
                    endpoint,
                    duration_ms,
                    None,
                    "Request timed out",
                    "TimeoutError",
                    method=method,
                    retry_attempt=attempt,
                    request_id=request_id,
                )
                last_error = ProviderTimeoutError(
                    f"{self.provider_name} request timed out after {self._timeout}s",
                    request_id=request_id,
                )
                if attempt < self._max_retries - 1:
                    await self._backoff(attempt, "timed out", request_id)
                    continue

            except httpx.RequestError as e:
                duration_ms = (time.monotonic() - attempt_start) * 1000
                plog.api_call_error(
                    endpoint,
                    duration_ms,
                    None,
                    str(e),
                    type(e).__name__,
                    method=method,
                    retry_attempt=attempt,
                    request_id=request_id,
                )
                last_error = ProviderError(
                    f"{self.provider_name} request failed: {e}",
                    request_id=request_id,
                )
                if attempt < self._max_retries - 1:
                    await self._backoff(attempt, "failed", request_id)
                    continue

        if last_error:
            raise last_error
        raise ProviderError(
            f"{self.provider_name} request failed after all retries",
            request_id=request_id,
        )

    @staticmethod
    def _decode_json(response: httpx.Response, provider: str) -> Any:
        """Decode a JSON body, turning garbage into a ProviderError."""
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(
                f"{provider} returned a non-JSON response",
                status_code=response.status_code,
                response_body=body_excerpt(response),
            ) from e
