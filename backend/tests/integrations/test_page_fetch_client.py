"""Tests for the page fetch client."""

import json

import httpx
import pytest

from keyword_intel.core.errors import ErrorKind
from keyword_intel.integrations.page_fetch import PageFetchClient

API_URL = "http://scraper.test/api/scrape"


def make_client(handler, api_url: str | None = API_URL) -> PageFetchClient:
    client = PageFetchClient(
        api_url=api_url,
        max_retries=1,
        retry_delay=0.0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    client._api_url = api_url
    return client


class TestPageFetchClient:
    """Tests for PageFetchClient.fetch."""

    @pytest.mark.asyncio
    async def test_success(self) -> None:
        """Test HTML and markdown are returned."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"html": "<h1>Soup</h1>", "markdown": "# Soup", "extra": 1}
            )

        result = await make_client(handler).fetch("https://example.com/soup")

        assert result.success is True
        assert result.html == "<h1>Soup</h1>"
        assert result.markdown == "# Soup"
        assert result.status_code == 200
        assert str(seen[0].url) == API_URL
        assert json.loads(seen[0].content) == {"url": "https://example.com/soup"}

    @pytest.mark.asyncio
    async def test_missing_html(self) -> None:
        """Test a response without HTML is a failed fetch."""
        result = await make_client(
            lambda request: httpx.Response(200, json={"markdown": "# Soup"})
        ).fetch("https://example.com")

        assert result.success is False
        assert result.markdown == "# Soup"
        assert result.error_kind is ErrorKind.PROVIDER

    @pytest.mark.asyncio
    async def test_provider_error(self) -> None:
        """Test HTTP failures are reported, not raised."""
        result = await make_client(
            lambda request: httpx.Response(404, text="not found")
        ).fetch("https://example.com")

        assert result.success is False
        assert result.status_code == 404
        assert result.error_kind is ErrorKind.PROVIDER

    @pytest.mark.asyncio
    async def test_unexpected_payload(self) -> None:
        """Test a non-object body is a failed fetch."""
        result = await make_client(
            lambda request: httpx.Response(200, json=["html"])
        ).fetch("https://example.com")

        assert result.success is False
        assert result.error == "Unexpected page fetch payload"

    @pytest.mark.asyncio
    async def test_not_configured(self) -> None:
        """Test an unconfigured client fails without a request."""
        client = make_client(lambda request: httpx.Response(500), api_url=None)

        result = await client.fetch("https://example.com")

        assert client.available is False
        assert result.success is False
        assert result.error_kind is ErrorKind.VALIDATION
