"""Firecrawl client: maps a domain to URLs and scrapes pages into JSON.

Thin async wrapper around the v1 REST API:
- POST /v1/map     -> every link Firecrawl can find for a site
- POST /v1/scrape  -> page content with optional schema-driven JSON extraction
                      and browser actions (wait / scroll / run JavaScript)

Any non-2xx response raises FirecrawlError with the status in the message.
"""

from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field
from rich.console import Console

from speaker_extractor.errors import FirecrawlError
from speaker_extractor.extractors.urls import parse_mapped_urls

console = Console()

DEFAULT_BASE_URL = "https://api.firecrawl.dev"
MAP_TIMEOUT_SECONDS = 60.0
# Extra slack on top of the scrape timeout we ask Firecrawl to honor
CLIENT_TIMEOUT_SLACK_SECONDS = 15.0


class MapResult(BaseModel):
    total_links: int
    links: list[str]
    raw: Any = None


class ScrapeRequest(BaseModel):
    """Options for one scrape call."""

    extract_schema: Optional[dict[str, Any]] = None
    extract_prompt: Optional[str] = None
    only_main_content: bool = True
    actions: Optional[list[dict[str, Any]]] = None
    timeout_ms: int = 30000

    def to_payload(self, url: str) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "url": url,
            "onlyMainContent": self.only_main_content,
            "formats": ["markdown", "html"],
            "timeout": self.timeout_ms,
        }
        if self.extract_schema is not None or self.extract_prompt:
            payload["formats"] = ["json", "markdown", "html"]
            payload["jsonOptions"] = {
                "prompt": self.extract_prompt,
                "schema": self.extract_schema,
            }
        if self.actions:
            payload["actions"] = self.actions
        return payload


class ScrapeResponse(BaseModel):
    structured_json: Any = None
    markdown: Optional[str] = None
    html: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    raw: Any = None


def _text_or_none(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


class FirecrawlClient:
    """Async Firecrawl API client.

    Pass ``transport`` to swap the network layer (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("Firecrawl API key is required")
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(MAP_TIMEOUT_SECONDS, connect=10.0),
            transport=transport,
        )

    async def aclose(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "FirecrawlClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _post(self, path: str, payload: dict[str, Any], timeout: float, what: str) -> Any:
        try:
            response = await self._client.post(path, json=payload, timeout=timeout)
        except httpx.TimeoutException as e:
            raise FirecrawlError(f"Firecrawl {what} timed out: {e}") from e
        except httpx.RequestError as e:
            raise FirecrawlError(f"Firecrawl {what} request error: {e}") from e

        if response.is_error:
            raise FirecrawlError(
                f"Firecrawl {what} failed ({response.status_code}): {response.text[:500]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise FirecrawlError(f"Firecrawl {what} returned invalid JSON") from e

    async def map_urls(self, start_url: str) -> MapResult:
        """List every URL Firecrawl discovers for the site behind start_url."""
        payload = await self._post("/v1/map", {"url": start_url}, MAP_TIMEOUT_SECONDS, "map")
        links = parse_mapped_urls(payload)
        console.print(f"[dim]Firecrawl mapped {len(links)} URLs for {start_url}[/dim]")
        return MapResult(total_links=len(links), links=links, raw=payload)

    async def scrape(self, url: str, request: Optional[ScrapeRequest] = None) -> ScrapeResponse:
        """Scrape one page, optionally extracting JSON against a schema."""
        request = request or ScrapeRequest()
        timeout = request.timeout_ms / 1000 + CLIENT_TIMEOUT_SLACK_SECONDS
        payload = await self._post(
            "/v1/scrape", request.to_payload(url), timeout, f"scrape for {url}"
        )

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            data = {}
        metadata = data.get("metadata")

        return ScrapeResponse(
            structured_json=data.get("json"),
            markdown=_text_or_none(data.get("markdown")),
            html=_text_or_none(data.get("html")),
            metadata=metadata if isinstance(metadata, dict) else {},
            raw=payload,
        )
