"""Fold speaker appearances into canonical sessions, organizations and speakers.

Two stages:
1. In memory during the run: sessions fold by URL (first title wins),
   appearances fold by identity key so each real speaker is written once.
2. At save time: organizations resolve by normalized name first, then
   speakers via the two-tier lookup (profile URL, then name + org), then
   session/speaker links.

One resolver per run. Nothing here is shared between runs.
"""

from dataclasses import dataclass, field
from typing import Optional

from rich.console import Console

from speaker_extractor.models import (
    SessionRecord,
    SessionSpeakerLink,
    SpeakerAppearance,
    SpeakerCandidate,
)
from speaker_extractor.normalizers.identity import (
    normalize_session_url,
    normalize_text,
)
from speaker_extractor.storage.base import PersistenceGateway

console = Console()


@dataclass
class FoldedSpeaker:
    """All appearances of one identity bucket within a run."""

    key: str
    best: SpeakerAppearance
    # session identity key -> role (last write wins)
    sessions: dict[str, Optional[str]] = field(default_factory=dict)
    appearance_count: int = 0

    def add(self, appearance: SpeakerAppearance) -> None:
        self.appearance_count += 1
        # Strictly higher completeness replaces the display candidate
        if appearance.completeness > self.best.completeness:
            self.best = appearance
        session_key = normalize_session_url(appearance.session_url)
        previous_role = self.sessions.get(session_key)
        self.sessions[session_key] = appearance.role or previous_role


@dataclass
class ResolutionSummary:
    sessions_saved: int = 0
    organizations_resolved: int = 0
    speakers_resolved: int = 0
    links_saved: int = 0
    dropped_appearances: int = 0
    speaker_ids: set[str] = field(default_factory=set)

    @property
    def unique_speakers(self) -> int:
        return len(self.speaker_ids)


class IdentityResolver:
    """Per-run dedup state for sessions and speaker appearances."""

    def __init__(self):
        self.sessions: dict[str, SessionRecord] = {}
        self.speakers: dict[str, FoldedSpeaker] = {}
        self.appearance_count = 0

    @property
    def session_count(self) -> int:
        return len(self.sessions)

    @property
    def unique_speaker_count(self) -> int:
        return len(self.speakers)

    def add_sessions(self, sessions: list[SessionRecord]) -> int:
        """Fold sessions by URL; returns how many were new."""
        added = 0
        for session in sessions:
            key = session.identity_key
            if key not in self.sessions:
                self.sessions[key] = session
                added += 1
        return added

    def add_appearances(self, appearances: list[SpeakerAppearance]) -> int:
        """Fold appearances by identity key; returns how many new speakers appeared."""
        added = 0
        for appearance in appearances:
            self.appearance_count += 1
            key = appearance.identity_key
            folded = self.speakers.get(key)
            if folded is None:
                folded = FoldedSpeaker(key=key, best=appearance)
                self.speakers[key] = folded
                added += 1
            folded.add(appearance)
        return added

    def add_page(self, sessions: list[SessionRecord], appearances: list[SpeakerAppearance]) -> None:
        self.add_sessions(sessions)
        self.add_appearances(appearances)

    def persist(self, event_id: str, store: PersistenceGateway) -> ResolutionSummary:
        """Write everything folded so far through the persistence gateway."""
        summary = ResolutionSummary()

        stored_sessions = store.upsert_sessions(event_id, list(self.sessions.values()))
        session_ids = {
            key: stored.id for key, stored in zip(self.sessions.keys(), stored_sessions)
        }
        summary.sessions_saved = len(stored_sessions)

        # Organizations first so speakers can reference a stable id
        org_names: dict[str, str] = {}
        for folded in self.speakers.values():
            org = folded.best.organization
            normalized = normalize_text(org)
            if normalized and normalized not in org_names:
                org_names[normalized] = org.strip()
        organizations = store.upsert_organizations_by_normalized_name(org_names)
        summary.organizations_resolved = len(organizations)

        links: dict[tuple[str, str], SessionSpeakerLink] = {}
        for folded in self.speakers.values():
            linked_sessions = {
                key: role for key, role in folded.sessions.items() if key in session_ids
            }
            if not linked_sessions:
                # Every appearance must resolve to a session; unresolved ones are dropped
                summary.dropped_appearances += len(folded.sessions)
                continue
            summary.dropped_appearances += len(folded.sessions) - len(linked_sessions)

            best = folded.best
            normalized_org = normalize_text(best.organization)
            org = organizations.get(normalized_org)
            speaker = store.find_or_create_speaker(event_id, SpeakerCandidate(
                name=best.name.strip(),
                normalized_name=normalize_text(best.name),
                organization_id=org.id if org else None,
                normalized_organization=normalized_org,
                title=best.title,
                profile_url=best.profile_url,
            ))
            summary.speaker_ids.add(speaker.id)

            for session_key, role in linked_sessions.items():
                link_key = (session_ids[session_key], speaker.id)
                previous = links.get(link_key)
                links[link_key] = SessionSpeakerLink(
                    session_id=link_key[0],
                    speaker_id=speaker.id,
                    role=role or (previous.role if previous else None),
                )

        summary.speakers_resolved = summary.unique_speakers
        summary.links_saved = store.upsert_session_speaker_links(list(links.values()))

        if summary.dropped_appearances:
            console.print(
                f"[yellow]Dropped {summary.dropped_appearances} appearances "
                f"with no matching session[/yellow]"
            )
        return summary
