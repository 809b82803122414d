"""Ephemeral extraction records produced while a run scrapes pages.

Nothing in here is persisted as-is except ``ScrapeAttempt``, which is
appended to the job's audit log.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from speaker_extractor.normalizers.identity import (
    normalize_session_url,
    speaker_identity_key,
)


class ExtractionMode(str, Enum):
    """How a page is scraped: as a session listing or a speaker directory."""

    SESSION = "session"
    SPEAKER_DIRECTORY = "speakerDirectory"


class PageClassification(BaseModel):
    """Result of classifying a candidate URL by its path and query."""

    url: str
    mode: ExtractionMode = ExtractionMode.SESSION
    ambiguous: bool = False


class SessionRecord(BaseModel):
    """A session (talk, panel, directory page) found on a page."""

    title: str
    url: str

    @property
    def identity_key(self) -> str:
        return normalize_session_url(self.url)


class SpeakerAppearance(BaseModel):
    """One sighting of a speaker on one session, before deduplication."""

    name: str
    organization: Optional[str] = None
    title: Optional[str] = None
    profile_url: Optional[str] = None
    role: Optional[str] = None
    session_url: str

    @property
    def identity_key(self) -> str:
        return speaker_identity_key(self.name, self.organization, self.profile_url)

    @property
    def completeness(self) -> int:
        """0-3: one point each for organization, title and profile URL."""
        return sum(1 for value in (self.organization, self.title, self.profile_url) if value)


class ScrapeAttempt(BaseModel):
    """Audit artifact for one strategy pass, successful or not."""

    url: str
    strategy: str
    success: bool
    raw_payload: Any = None
    structured_output: Any = None
    extraction_mode: Optional[ExtractionMode] = None
    markdown: Optional[str] = None
    html: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class StrategyResult(BaseModel):
    """Output of a strategy that found something usable."""

    sessions: list[SessionRecord] = Field(default_factory=list)
    appearances: list[SpeakerAppearance] = Field(default_factory=list)
    artifacts: list[ScrapeAttempt] = Field(default_factory=list)
    stop_reason: str
    endpoint_url: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.sessions and not self.appearances


class StrategyAttempt(BaseModel):
    """Observability record of one strategy invocation on one page."""

    url: str
    strategy: str
    score: int
    outcome: str  # "success", "empty" or "error"
    error: Optional[str] = None


class PageOutcome(BaseModel):
    """Everything the orchestrator learned about one candidate page."""

    url: str
    classification: PageClassification
    result: Optional[StrategyResult] = None
    attempts: list[StrategyAttempt] = Field(default_factory=list)
    artifacts: list[ScrapeAttempt] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None and not self.result.is_empty
