"""Persistence gateway contract.

Every write is an idempotent upsert keyed the same way as the in-run
resolver, so replaying the same logical input never creates duplicates.
"""

from typing import Any, Optional, Protocol

from speaker_extractor.models import (
    Event,
    Job,
    Organization,
    ScrapeAttempt,
    SessionRecord,
    SessionSpeakerLink,
    Speaker,
    SpeakerCandidate,
    StoredSession,
)


class PersistenceGateway(Protocol):
    # Events
    def create_event(self, name: str, start_url: str) -> Event: ...

    def get_event(self, event_id: str) -> Optional[Event]: ...

    def list_events(self) -> list[Event]: ...

    # Canonical entities
    def upsert_sessions(self, event_id: str, sessions: list[SessionRecord]) -> list[StoredSession]: ...

    def upsert_organizations_by_normalized_name(
        self, names: dict[str, str]
    ) -> dict[str, Organization]: ...

    def find_or_create_speaker(self, event_id: str, candidate: SpeakerCandidate) -> Speaker: ...

    def upsert_session_speaker_links(self, links: list[SessionSpeakerLink]) -> int: ...

    def list_sessions(self, event_id: str) -> list[StoredSession]: ...

    def list_speakers(self, event_id: str) -> list[Speaker]: ...

    def get_organization(self, organization_id: str) -> Optional[Organization]: ...

    # Jobs
    def create_job(self, job: Job) -> Job: ...

    def update_job(self, job_id: str, patch: dict[str, Any]) -> Job: ...

    def get_job(self, job_id: str) -> Optional[Job]: ...

    def latest_job_for_event(self, event_id: str) -> Optional[Job]: ...

    def append_scrape_artifacts(
        self, job_id: str, event_id: str, artifacts: list[ScrapeAttempt]
    ) -> int: ...

    def list_scrape_artifacts(self, job_id: str) -> list[dict[str, Any]]: ...

    def list_session_speaker_links(self, session_ids: list[str]) -> list[SessionSpeakerLink]: ...
