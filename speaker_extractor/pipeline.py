"""Main extraction run orchestration.

One run takes (event_id, start_url) through:
1. Validate input and open a new job row
2. Map the site with Firecrawl and filter to same-host page URLs
3. Pick candidate session/speaker pages
4. Extract each page sequentially through the ranked strategies
5. Resolve identities and save sessions, organizations, speakers and links
"""

from typing import Callable, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field
from rich.console import Console
from rich.table import Table

from speaker_extractor.errors import (
    EventNotFound,
    ExtractionCancelled,
    ExtractionSetupError,
    FirecrawlError,
    MappingError,
)
from speaker_extractor.extractors.base import Strategy
from speaker_extractor.extractors.browser import BrowserFactory
from speaker_extractor.extractors.firecrawl import MapResult
from speaker_extractor.extractors.pipeline import PageExtractor, default_strategies
from speaker_extractor.extractors.structured_scrape import ScrapeClient
from speaker_extractor.extractors.urls import (
    filter_mapped_urls,
    normalize_website_url,
    select_candidate_urls,
)
from speaker_extractor.jobs import CancellationToken, JobTracker
from speaker_extractor.models import JobStatus
from speaker_extractor.resolver import IdentityResolver
from speaker_extractor.storage.base import PersistenceGateway

console = Console()

DEFAULT_MAX_PAGES = 25


class MappingClient(ScrapeClient, Protocol):
    async def map_urls(self, start_url: str) -> MapResult: ...


class ExtractionSummary(BaseModel):
    """Response of a finished run, serialized with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    event_id: str = Field(alias="eventId")
    job_id: str = Field(alias="jobId")
    total_mapped_urls: int = Field(0, alias="totalMappedUrls")
    filtered_urls_count: int = Field(0, alias="filteredUrlsCount")
    targeted_session_urls_count: int = Field(0, alias="targetedSessionUrlsCount")
    processed_urls_count: int = Field(0, alias="processedUrlsCount")
    scrape_errors_count: int = Field(0, alias="scrapeErrorsCount")
    sessions_found: int = Field(0, alias="sessionsFound")
    speaker_appearances_found: int = Field(0, alias="speakerAppearancesFound")
    unique_speakers_found: int = Field(0, alias="uniqueSpeakersFound")


class ExtractionRunner:
    """Runs one extraction at a time for whichever event it is given.

    Holds no per-run state: every call to ``run`` gets a fresh job, resolver
    and dedup maps.
    """

    def __init__(
        self,
        store: PersistenceGateway,
        client: MappingClient,
        strategies: Optional[list[Strategy]] = None,
        browser_factory: Optional[BrowserFactory] = None,
        max_pages: int = DEFAULT_MAX_PAGES,
    ):
        self.store = store
        self.client = client
        self.max_pages = max_pages
        self.extractor = PageExtractor(
            strategies if strategies is not None else default_strategies(client, browser_factory)
        )

    def _validate(self, event_id: Optional[str], start_url: Optional[str]) -> tuple[str, str]:
        event_id = (event_id or "").strip()
        if not event_id:
            raise ExtractionSetupError("eventId and startUrl are required.")
        event = self.store.get_event(event_id)
        if event is None:
            raise EventNotFound(f"Event {event_id} not found.")

        raw_url = (start_url or "").strip() or event.start_url
        normalized = normalize_website_url(raw_url)
        if not normalized:
            raise ExtractionSetupError(f"Invalid startUrl: {raw_url!r}")
        return event_id, normalized

    async def run(
        self,
        event_id: Optional[str],
        start_url: Optional[str] = None,
        token: Optional[CancellationToken] = None,
        on_job: Optional[Callable[[str], None]] = None,
    ) -> ExtractionSummary:
        """Run a full extraction for one event.

        Args:
            event_id: Stored event to extract into
            start_url: Site to map; defaults to the event's start URL
            token: Cooperative cancellation flag, checked between network calls
            on_job: Called with the new job id as soon as the job row exists

        Raises:
            ExtractionSetupError: bad input or unknown event (no job is created)
            MappingError: Firecrawl could not map the site (job marked failed)
            ExtractionCancelled: token tripped mid-run (job marked failed)
        """
        event_id, start_url = self._validate(event_id, start_url)
        token = token or CancellationToken()

        tracker = JobTracker.start(self.store, event_id)
        if on_job:
            on_job(tracker.job_id)
        summary = ExtractionSummary(event_id=event_id, job_id=tracker.job_id)

        console.print(f"\n[bold cyan]Extracting speakers for {start_url}[/bold cyan]")
        try:
            await self._run(tracker, event_id, start_url, token, summary)
        except ExtractionCancelled:
            tracker.cancelled()
            console.print(f"[yellow]Extraction cancelled (job {tracker.job_id})[/yellow]")
            raise
        except Exception as e:
            tracker.fail(str(e) or e.__class__.__name__)
            console.print(f"[red]Extraction failed: {e}[/red]")
            raise

        console.print(
            f"[green]Extraction complete: {summary.sessions_found} sessions, "
            f"{summary.unique_speakers_found} unique speakers[/green]\n"
        )
        return summary

    async def _run(
        self,
        tracker: JobTracker,
        event_id: str,
        start_url: str,
        token: CancellationToken,
        summary: ExtractionSummary,
    ) -> None:
        # Step 1: Map
        token.raise_if_cancelled()
        tracker.transition(JobStatus.CRAWLING, f"Mapping {start_url}.")
        try:
            mapped = await self.client.map_urls(start_url)
        except FirecrawlError as e:
            tracker.fail(str(e), f"Mapping failed: {e}")
            raise MappingError(str(e)) from e

        filtered = filter_mapped_urls(start_url, mapped.links)
        tracker.set_mapped_urls(mapped.links, filtered)
        summary.total_mapped_urls = len(mapped.links)
        summary.filtered_urls_count = len(filtered)

        # Step 2: Candidates (the start page itself when the map found nothing usable)
        candidates = select_candidate_urls(filtered or [start_url], self.max_pages)
        summary.targeted_session_urls_count = len(candidates)
        tracker.transition(
            JobStatus.EXTRACTING,
            f"Mapped {len(mapped.links)} URLs, {len(filtered)} on-site, "
            f"{len(candidates)} targeted.",
        )

        # Step 3: Extract pages sequentially
        resolver = IdentityResolver()
        for url in candidates:
            token.raise_if_cancelled()
            try:
                outcome = await self.extractor.extract_page(url, token, tracker.log)
            except ExtractionCancelled as e:
                # Scrape attempts are audit records even when the page never finished
                if e.artifacts:
                    self.store.append_scrape_artifacts(tracker.job_id, event_id, e.artifacts)
                raise
            self.store.append_scrape_artifacts(tracker.job_id, event_id, outcome.artifacts)

            if outcome.succeeded:
                resolver.add_page(outcome.result.sessions, outcome.result.appearances)
            else:
                summary.scrape_errors_count += 1

            tracker.page_processed(
                url,
                sessions_found=resolver.session_count,
                appearances_found=resolver.appearance_count,
                unique_speakers=resolver.unique_speaker_count,
            )
            summary.processed_urls_count += 1

        # Step 4: Save
        token.raise_if_cancelled()
        tracker.transition(JobStatus.SAVING, "Saving sessions and speakers.")
        saved = resolver.persist(event_id, self.store)

        summary.sessions_found = saved.sessions_saved
        summary.speaker_appearances_found = resolver.appearance_count
        summary.unique_speakers_found = saved.unique_speakers

        counters = tracker.counters
        counters.sessions_found = saved.sessions_saved
        counters.speaker_appearances_found = resolver.appearance_count
        counters.unique_speakers_found = saved.unique_speakers
        tracker.complete(
            f"Extraction complete: {saved.sessions_saved} sessions, "
            f"{saved.unique_speakers} unique speakers, {saved.links_saved} links."
        )


def print_summary(summary: ExtractionSummary) -> None:
    """Print a run summary table."""
    table = Table(title=f"Extraction {summary.job_id[:8]}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")

    for key, value in summary.model_dump(by_alias=True).items():
        if key in ("eventId", "jobId"):
            continue
        table.add_row(key, str(value))

    console.print(table)
