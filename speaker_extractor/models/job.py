"""Job row: the only externally observable progress of an extraction run."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from speaker_extractor.models.entities import new_id, utc_now

MAX_LOG_LINES = 20


class JobStatus(str, Enum):
    QUEUED = "queued"
    CRAWLING = "crawling"
    EXTRACTING = "extracting"
    SAVING = "saving"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.FAILED)


class JobCounters(BaseModel):
    total_urls_mapped: int = 0
    urls_discovered: int = 0
    pages_processed: int = 0
    sessions_found: int = 0
    speaker_appearances_found: int = 0
    unique_speakers_found: int = 0


class Job(BaseModel):
    """One extraction run. A new run always gets a new Job."""

    id: str = Field(default_factory=new_id)
    event_id: str
    status: JobStatus = JobStatus.QUEUED
    counters: JobCounters = Field(default_factory=JobCounters)
    log_lines: list[str] = Field(default_factory=list)  # most recent MAX_LOG_LINES
    mapped_urls: list[str] = Field(default_factory=list)
    filtered_urls: list[str] = Field(default_factory=list)
    processed_urls: list[str] = Field(default_factory=list)
    error: Optional[str] = None
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)
