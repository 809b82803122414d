"""Tests for the Firecrawl REST client using httpx.MockTransport."""

import asyncio
import json

import httpx
import pytest

from speaker_extractor.errors import FirecrawlError
from speaker_extractor.extractors.firecrawl import FirecrawlClient, ScrapeRequest


def client_with(handler) -> FirecrawlClient:
    return FirecrawlClient("fc-test", "https://firecrawl.test/", transport=httpx.MockTransport(handler))


async def call(client: FirecrawlClient, method: str, *args):
    async with client:
        return await getattr(client, method)(*args)


class TestFirecrawlClient:
    """Tests for map and scrape calls."""

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            FirecrawlClient("")

    def test_map(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "links": ["https://c.example.com/a", "https://c.example.com/b"]})

        result = asyncio.run(call(client_with(handler), "map_urls", "https://c.example.com"))

        assert seen == {
            "path": "/v1/map",
            "auth": "Bearer fc-test",
            "body": {"url": "https://c.example.com"},
        }
        assert result.total_links == 2
        assert result.links[1] == "https://c.example.com/b"

    def test_scrape_with_schema_and_actions(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "data": {
                "json": {"speakers": [{"name": "Ada"}]},
                "markdown": "# Speakers",
                "html": "  ",
                "metadata": {"statusCode": 200},
            }})

        request = ScrapeRequest(
            extract_schema={"type": "object"},
            extract_prompt="Extract speakers",
            only_main_content=False,
            actions=[{"type": "wait", "milliseconds": 1000}],
            timeout_ms=120000,
        )
        response = asyncio.run(call(client_with(handler), "scrape", "https://c.example.com/speakers", request))

        body = seen["body"]
        assert body["formats"] == ["json", "markdown", "html"]
        assert body["jsonOptions"] == {"prompt": "Extract speakers", "schema": {"type": "object"}}
        assert body["onlyMainContent"] is False
        assert body["timeout"] == 120000
        assert body["actions"] == [{"type": "wait", "milliseconds": 1000}]

        assert response.structured_json == {"speakers": [{"name": "Ada"}]}
        assert response.markdown == "# Speakers"
        assert response.html is None
        assert response.metadata == {"statusCode": 200}

    def test_plain_scrape_has_no_json_format(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": {}})

        asyncio.run(call(client_with(handler), "scrape", "https://c.example.com"))
        assert "jsonOptions" not in seen["body"]
        assert seen["body"]["formats"] == ["markdown", "html"]

    def test_error_status_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(402, json={"error": "Payment required"})

        with pytest.raises(FirecrawlError) as exc_info:
            asyncio.run(call(client_with(handler), "map_urls", "https://c.example.com"))
        assert exc_info.value.status_code == 402
        assert "402" in str(exc_info.value)

    def test_network_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FirecrawlError):
            asyncio.run(call(client_with(handler), "scrape", "https://c.example.com"))

    def test_invalid_json_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(FirecrawlError):
            asyncio.run(call(client_with(handler), "map_urls", "https://c.example.com"))
