"""Network-response probe: find the site's own speaker API and replay it.

Many speaker directories are SPAs that fetch speakers from a JSON endpoint.
Instead of scraping rendered HTML we:
1. Load the page in a headless browser and capture JSON responses
2. Scroll / click "load more" a few times to trigger more requests
3. Pick the response with the most speaker-like objects
4. If its URL is paginated (page=N or offset=N), replay it directly until
   two consecutive pages add nobody new

Only the single best endpoint is replayed. Sites splitting speakers across
several unrelated endpoints will be partially covered.
"""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from rich.console import Console

from speaker_extractor.errors import ExtractionCancelled
from speaker_extractor.extractors.base import LogSink
from speaker_extractor.extractors.browser import BrowserFactory, BrowserPage, JsonCapture
from speaker_extractor.extractors.structured import (
    DIRECTORY_SESSION_TITLE,
    SCROLL_AND_CLICK_SCRIPT,
    collect_speaker_candidates,
)
from speaker_extractor.jobs import CancellationToken
from speaker_extractor.models import (
    ExtractionMode,
    PageClassification,
    ScrapeAttempt,
    SessionRecord,
    SpeakerAppearance,
    StrategyResult,
)

console = Console()

STRATEGY_NAME = "network_probe"

NAVIGATION_TIMEOUT_MS = 90000
SETTLE_WAIT_MS = 2500
INTERACTION_PASSES = 6
INTERACTION_WAIT_MS = 1800
MAX_REPLAYS = 50
MAX_STAGNANT_REPLAYS = 2
REPLAY_TIMEOUT_MS = 30000
DEFAULT_OFFSET_STEP = 20
MAX_ARTIFACTS = 30

PAGE_PARAMS = ("page", "p")
OFFSET_PARAMS = ("offset", "start", "from")
LIMIT_PARAMS = ("limit", "pageSize", "per_page", "size")


@dataclass
class Pagination:
    style: str  # "none", "page" or "offset"
    param: Optional[str] = None
    step: int = 1


def detect_pagination(url: str) -> Pagination:
    """Infer page-style or offset-style pagination from a response URL."""
    try:
        params = dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))
    except ValueError:
        return Pagination(style="none")

    for key in PAGE_PARAMS:
        if key in params:
            return Pagination(style="page", param=key, step=1)

    for key in OFFSET_PARAMS:
        if key in params:
            step = DEFAULT_OFFSET_STEP
            for limit_key in LIMIT_PARAMS:
                try:
                    value = int(params.get(limit_key, ""))
                except ValueError:
                    continue
                if value > 0:
                    step = value
                    break
            return Pagination(style="offset", param=key, step=step)

    return Pagination(style="none")


def build_replay_url(url: str, pagination: Pagination, index: int) -> str:
    """URL for replay number ``index`` (2 = the page after the captured one)."""
    parts = urlsplit(url)
    params = parse_qsl(parts.query, keep_blank_values=True)
    if pagination.style == "page":
        value = str(index)
    else:
        value = str((index - 1) * pagination.step)
    replaced = [(k, value if k == pagination.param else v) for k, v in params]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(replaced), parts.fragment))


class NetworkProbeStrategy:
    """Capture and replay the JSON API behind a speaker page."""

    name = STRATEGY_NAME

    def __init__(self, browser_factory: BrowserFactory):
        self.browser_factory = browser_factory

    def score(self, classification: PageClassification) -> int:
        if classification.mode == ExtractionMode.SPEAKER_DIRECTORY:
            return 100
        if classification.ambiguous:
            return 50
        return 20

    async def run(
        self,
        classification: PageClassification,
        token: CancellationToken,
        log: LogSink,
    ) -> Optional[StrategyResult]:
        page_url = classification.url
        captures: list[JsonCapture] = []
        hit_counts: list[int] = []
        unique: dict[str, SpeakerAppearance] = {}

        def merge(candidates: list[SpeakerAppearance]) -> int:
            before = len(unique)
            for candidate in candidates:
                # Same key -> same value, so concurrent inserts are harmless
                unique.setdefault(candidate.identity_key, candidate)
            return len(unique) - before

        def on_response(capture: JsonCapture) -> None:
            candidates = collect_speaker_candidates(capture.payload, page_url)
            if not candidates:
                return
            captures.append(capture)
            hit_counts.append(len(candidates))
            merge(candidates)

        try:
            async with self.browser_factory() as page:
                page.on_response(on_response)
                await page.goto(page_url, NAVIGATION_TIMEOUT_MS)
                await page.wait(SETTLE_WAIT_MS)

                for _ in range(INTERACTION_PASSES):
                    if token.cancelled:
                        break
                    try:
                        await page.evaluate(SCROLL_AND_CLICK_SCRIPT)
                    except Exception as e:
                        console.print(f"[dim]Probe interaction failed on {page_url}: {e}[/dim]")
                    await page.wait(INTERACTION_WAIT_MS)
                token.raise_if_cancelled()

                best: Optional[JsonCapture] = None
                if captures:
                    # First capture wins ties
                    best_index = max(range(len(captures)), key=lambda i: (hit_counts[i], -i))
                    best = captures[best_index]

                stop_reason = "network_probe_only"
                if best is not None:
                    pagination = detect_pagination(best.url)
                    if pagination.style != "none":
                        stop_reason = await self._replay(
                            page, best.url, pagination, page_url, token, captures, merge
                        )
        except ExtractionCancelled as e:
            e.artifacts = [*self._artifacts(captures, page_url, "cancelled"), *e.artifacts]
            raise

        appearances = list(unique.values())
        if not appearances:
            return None

        log(f"API probe strategy captured {len(appearances)} unique speakers.")
        return StrategyResult(
            sessions=[SessionRecord(title=DIRECTORY_SESSION_TITLE, url=page_url)],
            appearances=appearances,
            artifacts=self._artifacts(captures, page_url, stop_reason),
            stop_reason=stop_reason,
            endpoint_url=best.url if best else None,
        )

    async def _replay(
        self,
        page: BrowserPage,
        endpoint_url: str,
        pagination: Pagination,
        page_url: str,
        token: CancellationToken,
        captures: list[JsonCapture],
        merge,
    ) -> str:
        """Replay the paginated endpoint until it stops producing new speakers."""
        stagnant = 0
        index = 1
        while index <= MAX_REPLAYS and stagnant < MAX_STAGNANT_REPLAYS:
            token.raise_if_cancelled()
            index += 1
            next_url = build_replay_url(endpoint_url, pagination, index)
            try:
                capture = await page.request_get(next_url, REPLAY_TIMEOUT_MS)
            except Exception as e:
                console.print(f"[dim]Replay failed for {next_url}: {e}[/dim]")
                stagnant += 1
                continue

            if capture.status >= 400 or capture.payload is None:
                stagnant += 1
                continue

            captures.append(capture)
            added = merge(collect_speaker_candidates(capture.payload, page_url))
            stagnant = stagnant + 1 if added == 0 else 0

        if stagnant >= MAX_STAGNANT_REPLAYS:
            return "pagination_no_growth"
        return "pagination_cap_reached"

    def _artifacts(
        self, captures: list[JsonCapture], page_url: str, stop_reason: str
    ) -> list[ScrapeAttempt]:
        return [
            ScrapeAttempt(
                url=page_url,
                strategy=STRATEGY_NAME,
                success=True,
                raw_payload=capture.payload,
                structured_output=capture.payload,
                extraction_mode=ExtractionMode.SPEAKER_DIRECTORY,
                metadata={
                    "pass": "api_probe",
                    "responseUrl": capture.url,
                    "status": capture.status,
                    "stopReason": stop_reason,
                },
            )
            for capture in captures[:MAX_ARTIFACTS]
        ]
