"""Claude/Anthropic LLM integration client used for keyword clustering.

Features:
- Async HTTP client using httpx (direct API calls)
- Retry logic with exponential backoff (shared ProviderClient policy)
- Handles timeouts, rate limits (429), auth failures (401/403)
- Never logs API keys
- Token usage logging for quota tracking

RAILWAY DEPLOYMENT REQUIREMENTS:
- All API keys via environment variables (ANTHROPIC_API_KEY)
- Never log or expose API keys
- Implement request timeouts (Railway has 5min request limit)
"""

import time
from dataclasses import dataclass
from typing import Any

import httpx

from keyword_intel.core.config import get_settings
from keyword_intel.core.errors import ErrorKind, ProviderError
from keyword_intel.core.logging import claude_logger, get_logger
from keyword_intel.integrations.base import ProviderClient

logger = get_logger(__name__)

# Anthropic API base URL
ANTHROPIC_API_URL = "https://api.anthropic.com"
ANTHROPIC_API_VERSION = "2023-06-01"
MESSAGES_ENDPOINT = "/v1/messages"


@dataclass
class CompletionResult:
    """Result of a Claude completion request."""

    success: bool
    text: str | None = None
    stop_reason: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    status_code: int | None = None
    duration_ms: float = 0.0
    request_id: str | None = None


class ClaudeClient(ProviderClient):
    """Async client for the Anthropic messages API."""

    provider_name = "Claude"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        max_tokens: int | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize Claude client.

        Args:
            api_key: Anthropic API key. Defaults to settings.
            model: Model to use. Defaults to settings (claude-3-haiku).
            timeout: Request timeout in seconds. Defaults to settings.
            max_retries: Maximum retry attempts. Defaults to settings.
            retry_delay: Base delay between retries. Defaults to settings.
            max_tokens: Maximum response tokens. Defaults to settings.
            http_client: Pre-built httpx client (tests inject a MockTransport).
        """
        settings = get_settings()

        super().__init__(
            base_url=ANTHROPIC_API_URL,
            timeout=timeout or settings.claude_timeout,
            max_retries=max_retries or settings.claude_max_retries,
            retry_delay=(
                retry_delay if retry_delay is not None else settings.claude_retry_delay
            ),
            provider_logger=claude_logger,
            http_client=http_client,
        )
        self._api_key = api_key or settings.anthropic_api_key
        self._model = model or settings.claude_model
        self._max_tokens = max_tokens or settings.claude_max_tokens
        self._available = bool(self._api_key)

        logger.info(
            "ClaudeClient instantiated",
            extra={
                "available": self._available,
                "has_api_key": bool(self._api_key),
                "model": self._model,
            },
        )

    @property
    def available(self) -> bool:
        """Check if Claude is configured and available."""
        return self._available

    @property
    def model(self) -> str:
        """Get the model being used."""
        return self._model

    def _default_headers(self) -> dict[str, str]:
        headers = super()._default_headers()
        headers["anthropic-version"] = ANTHROPIC_API_VERSION
        if self._api_key:
            headers["x-api-key"] = self._api_key
        return headers

    async def complete(
        self,
        user_prompt: str,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float = 0.0,
    ) -> CompletionResult:
        """Send a completion request to Claude.

        Args:
            user_prompt: The user message/prompt
            system_prompt: Optional system prompt
            max_tokens: Maximum response tokens (overrides default)
            temperature: Sampling temperature (0.0 = deterministic)

        Returns:
            CompletionResult with response text and metadata
        """
        if not self._available:
            return CompletionResult(
                success=False,
                error="Claude not configured (missing API key)",
                error_kind=ErrorKind.VALIDATION,
            )

        start_time = time.monotonic()
        request_body: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        if system_prompt:
            request_body["system"] = system_prompt

        try:
            response = await self._request("POST", MESSAGES_ENDPOINT, json=request_body)
            response_data = self._decode_json(response, self.provider_name)
        except ProviderError as e:
            return CompletionResult(
                success=False,
                error=e.message,
                error_kind=e.kind,
                status_code=e.status_code,
                request_id=e.request_id,
                duration_ms=(time.monotonic() - start_time) * 1000,
            )

        content = response_data.get("content") or []
        text = "".join(
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type", "text") == "text"
        )
        usage = response_data.get("usage") or {}
        input_tokens = usage.get("input_tokens")
        output_tokens = usage.get("output_tokens")
        if input_tokens is not None and output_tokens is not None:
            claude_logger.token_usage(input_tokens, output_tokens)

        return CompletionResult(
            success=True,
            text=text,
            stop_reason=response_data.get("stop_reason"),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            status_code=response.status_code,
            duration_ms=(time.monotonic() - start_time) * 1000,
            request_id=response.headers.get("request-id"),
        )
