"""Data models for the speaker extractor."""

from speaker_extractor.models.extraction import (
    ExtractionMode,
    PageClassification,
    SessionRecord,
    SpeakerAppearance,
    ScrapeAttempt,
    StrategyResult,
    StrategyAttempt,
    PageOutcome,
)
from speaker_extractor.models.entities import (
    Event,
    StoredSession,
    Organization,
    Speaker,
    SpeakerCandidate,
    SessionSpeakerLink,
)
from speaker_extractor.models.job import Job, JobCounters, JobStatus, MAX_LOG_LINES

__all__ = [
    "ExtractionMode",
    "PageClassification",
    "SessionRecord",
    "SpeakerAppearance",
    "ScrapeAttempt",
    "StrategyResult",
    "StrategyAttempt",
    "PageOutcome",
    "Event",
    "StoredSession",
    "Organization",
    "Speaker",
    "SpeakerCandidate",
    "SessionSpeakerLink",
    "Job",
    "JobCounters",
    "JobStatus",
    "MAX_LOG_LINES",
]
