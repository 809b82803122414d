"""Structured-content scrape: schema-driven JSON extraction through Firecrawl.

The guaranteed fallback strategy. Session pages get a single pass; speaker
directories (and ambiguous pages that mention speakers) get iterative passes,
each one scrolling further and clicking more "load more" controls before the
page is captured:

    pass 1: wait 2.2s, 2 scrolls, <=3 clicks
    pass 2: wait 1.4s, 3 scrolls, <=6 clicks
    pass 3+: wait 1.4s, 4 scrolls, <=9..15 clicks

Iteration stops on a plateau (4+ passes, last 2 found nobody new), after two
failed passes in a row, or at the pass cap.
"""

from typing import Optional, Protocol

from rich.console import Console

from speaker_extractor.errors import ExtractionCancelled, StrategyError
from speaker_extractor.extractors.base import LogSink
from speaker_extractor.extractors.firecrawl import ScrapeRequest, ScrapeResponse
from speaker_extractor.extractors.structured import (
    build_speaker_directory_actions,
    has_speaker_signals,
    parse_structured_output,
    prompt_for_mode,
    schema_for_mode,
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
from speaker_extractor.normalizers.identity import normalize_session_url

console = Console()

STRATEGY_NAME = "structured_scrape"

SESSION_TIMEOUT_MS = 30000
SPEAKER_DIRECTORY_TIMEOUT_MS = 120000
MAX_SPEAKER_PASSES = 8
PLATEAU_MIN_PASSES = 4
PLATEAU_NO_GROWTH_PASSES = 2
MAX_CONSECUTIVE_FAILURES = 2


class ScrapeClient(Protocol):
    async def scrape(self, url: str, request: Optional[ScrapeRequest] = None) -> ScrapeResponse: ...


def build_scrape_request(mode: ExtractionMode, pass_index: int = 1) -> ScrapeRequest:
    """Scrape options for one pass in the given mode."""
    if mode == ExtractionMode.SPEAKER_DIRECTORY:
        return ScrapeRequest(
            extract_schema=schema_for_mode(mode),
            extract_prompt=prompt_for_mode(mode),
            # Directory cards often live outside the "main" content block
            only_main_content=False,
            actions=build_speaker_directory_actions(pass_index),
            timeout_ms=SPEAKER_DIRECTORY_TIMEOUT_MS,
        )
    return ScrapeRequest(
        extract_schema=schema_for_mode(mode),
        extract_prompt=prompt_for_mode(mode),
        timeout_ms=SESSION_TIMEOUT_MS,
    )


class _PassState:
    """Sessions and appearances merged across passes.

    Appearances are keyed by (speaker identity, session) so one speaker on
    several sessions of the same page keeps every link.
    """

    def __init__(self):
        self.sessions: dict[str, SessionRecord] = {}
        self.appearances: dict[tuple[str, str], SpeakerAppearance] = {}
        self.artifacts: list[ScrapeAttempt] = []

    def merge(self, sessions: list[SessionRecord], appearances: list[SpeakerAppearance]) -> int:
        for session in sessions:
            self.sessions.setdefault(session.identity_key, session)
        before = len(self.appearances)
        for appearance in appearances:
            key = (appearance.identity_key, normalize_session_url(appearance.session_url))
            self.appearances.setdefault(key, appearance)
        return len(self.appearances) - before

    def result(self, stop_reason: str) -> StrategyResult:
        return StrategyResult(
            sessions=list(self.sessions.values()),
            appearances=list(self.appearances.values()),
            artifacts=list(self.artifacts),
            stop_reason=stop_reason,
        )


class StructuredScrapeStrategy:
    """Firecrawl JSON extraction with iterative passes for speaker directories."""

    name = STRATEGY_NAME

    def __init__(self, client: ScrapeClient):
        self.client = client

    def score(self, classification: PageClassification) -> int:
        return 10

    async def _scrape_pass(
        self,
        url: str,
        mode: ExtractionMode,
        pass_index: int,
        state: _PassState,
    ) -> Optional[tuple[ScrapeResponse, list[SessionRecord], list[SpeakerAppearance]]]:
        """Run one pass and record its artifact. Returns None when the pass failed."""
        metadata = {"extractionMode": mode.value, "pass": pass_index}
        try:
            response = await self.client.scrape(url, build_scrape_request(mode, pass_index))
        except ExtractionCancelled:
            raise
        except Exception as e:
            console.print(f"[yellow]Scrape pass {pass_index} failed for {url}: {e}[/yellow]")
            state.artifacts.append(ScrapeAttempt(
                url=url,
                strategy=STRATEGY_NAME,
                success=False,
                extraction_mode=mode,
                metadata={**metadata, "outcome": "error"},
                error=str(e),
            ))
            return None

        sessions, appearances = parse_structured_output(mode, response.structured_json, url)
        state.artifacts.append(ScrapeAttempt(
            url=url,
            strategy=STRATEGY_NAME,
            success=True,
            raw_payload=response.raw,
            structured_output=response.structured_json,
            extraction_mode=mode,
            markdown=response.markdown,
            html=response.html,
            metadata={
                **metadata,
                "outcome": "success" if sessions or appearances else "empty",
                "appearances": len(appearances),
            },
        ))
        return response, sessions, appearances

    async def _speaker_passes(
        self,
        url: str,
        state: _PassState,
        token: CancellationToken,
        log: LogSink,
        first_pass: int = 1,
    ) -> str:
        """Iterate speaker-directory passes until plateau, failures or the cap."""
        no_growth = 0
        failures = 0
        for pass_index in range(first_pass, MAX_SPEAKER_PASSES + 1):
            token.raise_if_cancelled()
            outcome = await self._scrape_pass(
                url, ExtractionMode.SPEAKER_DIRECTORY, pass_index, state
            )
            if outcome is None:
                failures += 1
                if failures >= MAX_CONSECUTIVE_FAILURES:
                    return "consecutive_failures"
                continue
            failures = 0

            _, sessions, appearances = outcome
            added = state.merge(sessions, appearances)
            no_growth = 0 if added else no_growth + 1
            log(
                f"Speaker pass {pass_index}: +{added} new, "
                f"{len(state.appearances)} unique so far."
            )
            if pass_index >= PLATEAU_MIN_PASSES and no_growth >= PLATEAU_NO_GROWTH_PASSES:
                return "plateau_no_growth"

        return "max_passes_reached"

    async def run(
        self,
        classification: PageClassification,
        token: CancellationToken,
        log: LogSink,
    ) -> Optional[StrategyResult]:
        state = _PassState()
        try:
            return await self._run(classification, state, token, log)
        except ExtractionCancelled as e:
            e.artifacts = [*state.artifacts, *e.artifacts]
            raise

    async def _run(
        self,
        classification: PageClassification,
        state: _PassState,
        token: CancellationToken,
        log: LogSink,
    ) -> StrategyResult:
        url = classification.url

        if classification.mode == ExtractionMode.SPEAKER_DIRECTORY:
            stop_reason = await self._speaker_passes(url, state, token, log)
            return self._finish(url, state, stop_reason)

        token.raise_if_cancelled()
        outcome = await self._scrape_pass(url, ExtractionMode.SESSION, 1, state)
        if outcome is None:
            return self._finish(url, state, "single_pass")

        response, sessions, appearances = outcome
        state.merge(sessions, appearances)
        signals = has_speaker_signals(response.markdown, response.html, response.structured_json)

        if classification.ambiguous and signals:
            log(f"Ambiguous page mentions speakers, switching to speaker passes: {url}")
            stop_reason = await self._speaker_passes(url, state, token, log, first_pass=2)
        elif signals and not appearances:
            log(f"Speaker signals but no speakers found, retrying as directory: {url}")
            token.raise_if_cancelled()
            retry = await self._scrape_pass(url, ExtractionMode.SPEAKER_DIRECTORY, 2, state)
            if retry is not None:
                state.merge(retry[1], retry[2])
            stop_reason = "speaker_signal_retry"
        else:
            stop_reason = "single_pass"

        return self._finish(url, state, stop_reason)

    def _finish(self, url: str, state: _PassState, stop_reason: str) -> StrategyResult:
        """Raise when every pass failed; otherwise return what was merged (maybe empty)."""
        if state.artifacts and not any(a.success for a in state.artifacts):
            errors = "; ".join(a.error for a in state.artifacts if a.error)
            raise StrategyError(
                f"All {len(state.artifacts)} scrape passes failed for {url}: {errors}",
                artifacts=state.artifacts,
            )
        return state.result(stop_reason)
