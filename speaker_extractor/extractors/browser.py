"""Headless browser access for the network-response probe.

The probe only needs a handful of primitives (navigate, listen for JSON
responses, run a script, wait, replay a GET), so they are expressed as a
small protocol. ``PlaywrightPage`` implements it with Chromium.
"""

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional, Protocol

from playwright.async_api import Response, async_playwright
from pydantic import BaseModel
from rich.console import Console

console = Console()

NAVIGATION_TIMEOUT_MS = 90000


class JsonCapture(BaseModel):
    """A JSON HTTP response seen by the page (or fetched on replay)."""

    url: str
    status: int
    payload: Any = None


ResponseListener = Callable[[JsonCapture], None]


class BrowserPage(Protocol):
    async def goto(self, url: str, timeout_ms: int = NAVIGATION_TIMEOUT_MS) -> None: ...

    def on_response(self, listener: ResponseListener) -> None: ...

    async def evaluate(self, script: str) -> Any: ...

    async def wait(self, milliseconds: int) -> None: ...

    async def request_get(self, url: str, timeout_ms: int = 30000) -> JsonCapture: ...


BrowserFactory = Callable[[], Any]  # returns an async context manager yielding a BrowserPage


class PlaywrightPage:
    """BrowserPage backed by a Playwright page."""

    def __init__(self, page):
        self._page = page

    async def goto(self, url: str, timeout_ms: int = NAVIGATION_TIMEOUT_MS) -> None:
        try:
            await self._page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except Exception as e:
            # Slow SPAs often time out on navigation but still fire their API calls
            console.print(f"[yellow]Navigation timeout, continuing anyway: {e}[/yellow]")

    def on_response(self, listener: ResponseListener) -> None:
        async def handle(response: Response) -> None:
            content_type = (response.headers.get("content-type") or "").lower()
            if "json" not in content_type:
                return
            try:
                payload = await response.json()
            except Exception:
                # Body already gone or not actually JSON
                return
            listener(JsonCapture(url=response.url, status=response.status, payload=payload))

        self._page.on("response", handle)

    async def evaluate(self, script: str) -> Any:
        return await self._page.evaluate(script)

    async def wait(self, milliseconds: int) -> None:
        await self._page.wait_for_timeout(milliseconds)

    async def request_get(self, url: str, timeout_ms: int = 30000) -> JsonCapture:
        response = await self._page.request.get(url, timeout=timeout_ms)
        payload: Optional[Any] = None
        if response.ok:
            try:
                payload = json.loads(await response.text())
            except (json.JSONDecodeError, UnicodeDecodeError):
                payload = None
        return JsonCapture(url=url, status=response.status, payload=payload)


def make_playwright_factory(headless: bool = True) -> BrowserFactory:
    """Build a factory opening a fresh Chromium page per probe."""

    @asynccontextmanager
    async def open_page() -> AsyncIterator[BrowserPage]:
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=headless)
            context = await browser.new_context(
                viewport={"width": 1920, "height": 1080},
                locale="en-US",
            )
            try:
                page = await context.new_page()
                yield PlaywrightPage(page)
            finally:
                await context.close()
                await browser.close()

    return open_page
