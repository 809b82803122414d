"""Shared test fixtures and configuration."""

from typing import Optional, Union

import pytest

from speaker_extractor.errors import FirecrawlError
from speaker_extractor.extractors.firecrawl import MapResult, ScrapeRequest, ScrapeResponse
from speaker_extractor.models import Event
from speaker_extractor.storage import JsonStore


class FakeScrapeClient:
    """In-process stand-in for FirecrawlClient.

    ``responses`` maps a URL to a list of ScrapeResponse or exceptions, served
    in order; the last one repeats. Unknown URLs get an empty response.
    """

    def __init__(
        self,
        links: Optional[list[str]] = None,
        responses: Optional[dict[str, list[Union[ScrapeResponse, Exception]]]] = None,
        map_error: Optional[Exception] = None,
    ):
        self.links = links or []
        self.responses = {url: list(queue) for url, queue in (responses or {}).items()}
        self.map_error = map_error
        self.map_calls: list[str] = []
        self.scrape_calls: list[tuple[str, ScrapeRequest]] = []

    async def map_urls(self, start_url: str) -> MapResult:
        self.map_calls.append(start_url)
        if self.map_error:
            raise self.map_error
        return MapResult(total_links=len(self.links), links=list(self.links))

    async def scrape(self, url: str, request: Optional[ScrapeRequest] = None) -> ScrapeResponse:
        self.scrape_calls.append((url, request))
        queue = self.responses.get(url)
        if not queue:
            return ScrapeResponse()
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def aclose(self) -> None:
        pass


@pytest.fixture
def scrape_client_factory():
    """FakeScrapeClient constructor, for tests that script their own responses."""
    return FakeScrapeClient


@pytest.fixture
def store() -> JsonStore:
    """Memory-only store."""
    return JsonStore()


@pytest.fixture
def event(store: JsonStore) -> Event:
    return store.create_event("DevConf 2026", "https://devconf.example.com/")


@pytest.fixture
def log_lines() -> list[str]:
    return []


@pytest.fixture
def log(log_lines):
    return log_lines.append


@pytest.fixture
def map_failure() -> FirecrawlError:
    return FirecrawlError("Firecrawl map failed (503): unavailable", status_code=503)
