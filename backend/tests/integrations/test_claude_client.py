"""Tests for the Claude messages client."""

import json

import httpx
import pytest

from keyword_intel.core.errors import ErrorKind
from keyword_intel.integrations.claude import MESSAGES_ENDPOINT, ClaudeClient

MESSAGE_RESPONSE = {
    "id": "msg_01",
    "type": "message",
    "role": "assistant",
    "content": [
        {"type": "text", "text": "## Cluster: Soup\n"},
        {"type": "text", "text": "- soup recipe"},
    ],
    "stop_reason": "end_turn",
    "usage": {"input_tokens": 42, "output_tokens": 7},
}


def make_client(handler, api_key: str | None = "sk-test") -> ClaudeClient:
    client = ClaudeClient(
        api_key=api_key,
        model="claude-test",
        max_retries=1,
        retry_delay=0.0,
        http_client=httpx.AsyncClient(
            base_url="https://api.anthropic.com",
            transport=httpx.MockTransport(handler),
        ),
    )
    return client


class TestClaudeClient:
    """Tests for ClaudeClient.complete."""

    @pytest.mark.asyncio
    async def test_complete_success(self) -> None:
        """Test text blocks are joined and usage is reported."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=MESSAGE_RESPONSE)

        result = await make_client(handler).complete(
            "cluster these", system_prompt="You cluster keywords."
        )

        assert result.success is True
        assert result.text == "## Cluster: Soup\n- soup recipe"
        assert result.input_tokens == 42
        assert result.output_tokens == 7
        assert result.stop_reason == "end_turn"

        request = seen[0]
        assert request.url.path == MESSAGES_ENDPOINT
        assert request.headers["x-api-key"] == "sk-test"
        assert request.headers["anthropic-version"]
        body = json.loads(request.content)
        assert body["model"] == "claude-test"
        assert body["system"] == "You cluster keywords."
        assert body["temperature"] == 0.0
        assert body["messages"] == [{"role": "user", "content": "cluster these"}]

    @pytest.mark.asyncio
    async def test_provider_error_becomes_failed_result(self) -> None:
        """Test HTTP failures are reported, not raised."""
        result = await make_client(
            lambda request: httpx.Response(401, text="invalid x-api-key")
        ).complete("hi")

        assert result.success is False
        assert result.error_kind is ErrorKind.AUTH
        assert result.status_code == 401

    @pytest.mark.asyncio
    async def test_not_configured(self) -> None:
        """Test a client without an API key fails without a request."""
        client = make_client(lambda request: httpx.Response(500), api_key=None)
        client._available = False

        result = await client.complete("hi")

        assert client.available is False
        assert result.success is False
        assert result.error_kind is ErrorKind.VALIDATION
