"""Job progress state machine and cooperative cancellation.

A run owns exactly one JobTracker. Every status change, processed page and
URL-list update is written through to the job row, which is the only way
progress is observable from outside the run.

    queued -> crawling -> extracting -> saving -> complete
       \\________\\____________\\___________\\-----> failed
"""

from collections import deque
from datetime import datetime, timezone
from typing import Optional

from rich.console import Console
from rich.markup import escape

from speaker_extractor.errors import ExtractionCancelled, InvalidJobTransition
from speaker_extractor.models import Job, JobStatus, MAX_LOG_LINES
from speaker_extractor.storage.base import PersistenceGateway

console = Console()

CANCELLED_ERROR = "cancelled"
CANCELLED_LOG_LINE = "Extraction cancelled."

ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.QUEUED: {JobStatus.CRAWLING, JobStatus.FAILED},
    JobStatus.CRAWLING: {JobStatus.EXTRACTING, JobStatus.FAILED},
    JobStatus.EXTRACTING: {JobStatus.SAVING, JobStatus.FAILED},
    JobStatus.SAVING: {JobStatus.COMPLETE, JobStatus.FAILED},
    JobStatus.COMPLETE: set(),
    JobStatus.FAILED: set(),
}


class CancellationToken:
    """Single flag threaded through a whole run. Once tripped it stays tripped."""

    def __init__(self):
        self._cancelled = False
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancel requested") -> None:
        self._cancelled = True
        self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise ExtractionCancelled(self.reason or CANCELLED_ERROR)


class JobTracker:
    """Owns one job row for the lifetime of a run."""

    def __init__(self, store: PersistenceGateway, job: Job):
        self.store = store
        self.job = job
        self._log = deque(job.log_lines, maxlen=MAX_LOG_LINES)

    @classmethod
    def start(cls, store: PersistenceGateway, event_id: str) -> "JobTracker":
        """Create a brand-new queued job row for the event."""
        job = store.create_job(Job(event_id=event_id, log_lines=["Extraction queued."]))
        return cls(store, job)

    @property
    def job_id(self) -> str:
        return self.job.id

    @property
    def status(self) -> JobStatus:
        return self.job.status

    @property
    def counters(self):
        return self.job.counters

    def log(self, message: str) -> None:
        """Append to the bounded job log (persisted on the next snapshot)."""
        stamp = datetime.now(timezone.utc).strftime("%H:%M:%S")
        self._log.append(f"[{stamp}] {message}")
        self.job.log_lines = list(self._log)
        console.print(f"[dim]job {self.job.id[:8]}[/dim] {escape(message)}")

    def snapshot(self) -> Job:
        """Write counters, log and URL lists to the persisted job row."""
        self.job = self.store.update_job(self.job.id, {
            "status": self.job.status,
            "counters": self.job.counters.model_dump(),
            "log_lines": list(self._log),
            "mapped_urls": list(self.job.mapped_urls),
            "filtered_urls": list(self.job.filtered_urls),
            "processed_urls": list(self.job.processed_urls),
            "error": self.job.error,
        })
        return self.job

    def transition(self, status: JobStatus, message: Optional[str] = None) -> Job:
        current = self.job.status
        if status not in ALLOWED_TRANSITIONS[current]:
            raise InvalidJobTransition(f"Cannot move job from {current.value} to {status.value}")
        self.job.status = status
        self.log(message or f"Status: {status.value}.")
        return self.snapshot()

    def set_mapped_urls(self, mapped: list[str], filtered: list[str]) -> Job:
        self.job.mapped_urls = list(mapped)
        self.job.filtered_urls = list(filtered)
        self.job.counters.total_urls_mapped = len(mapped)
        self.job.counters.urls_discovered = len(filtered)
        return self.snapshot()

    def page_processed(
        self,
        url: str,
        sessions_found: int,
        appearances_found: int,
        unique_speakers: int,
    ) -> Job:
        """Record a finished page (successful or not) and snapshot."""
        self.job.processed_urls.append(url)
        counters = self.job.counters
        counters.pages_processed = len(self.job.processed_urls)
        counters.sessions_found = sessions_found
        counters.speaker_appearances_found = appearances_found
        counters.unique_speakers_found = unique_speakers
        return self.snapshot()

    def complete(self, message: str = "Extraction complete.") -> Job:
        return self.transition(JobStatus.COMPLETE, message)

    def fail(self, error: str, message: Optional[str] = None) -> Job:
        """Move to failed from any non-terminal state. No-op once terminal."""
        if self.job.status.is_terminal:
            return self.job
        self.job.error = error
        return self.transition(JobStatus.FAILED, message or f"Extraction failed: {error}")

    def cancelled(self) -> Job:
        return self.fail(CANCELLED_ERROR, CANCELLED_LOG_LINE)
