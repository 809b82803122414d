"""JSON-file persistence for events, jobs and canonical speaker data.

State lives in one JSON document rewritten after every mutation; scrape
artifacts are appended to a JSONL file since they are large and never
change. With no directory the store is memory-only (tests, dry runs).
"""

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlsplit

from rich.console import Console

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
from speaker_extractor.normalizers.identity import (
    normalize_profile_url,
    normalize_session_url,
)

console = Console()

STATE_FILE = "extraction_store.json"
ARTIFACTS_FILE = "scrape_artifacts.jsonl"


class JsonStore:
    """PersistenceGateway over a JSON state file (or memory only)."""

    def __init__(self, store_dir: Optional[Path] = None):
        self.store_dir = Path(store_dir) if store_dir else None
        self._lock = threading.RLock()
        self._events: dict[str, Event] = {}
        self._jobs: dict[str, Job] = {}
        self._sessions: dict[str, StoredSession] = {}
        self._organizations: dict[str, Organization] = {}
        self._speakers: dict[str, Speaker] = {}
        self._links: dict[tuple[str, str], SessionSpeakerLink] = {}
        self._artifacts: list[dict[str, Any]] = []
        self._load()

    @property
    def state_path(self) -> Optional[Path]:
        return self.store_dir / STATE_FILE if self.store_dir else None

    @property
    def artifacts_path(self) -> Optional[Path]:
        return self.store_dir / ARTIFACTS_FILE if self.store_dir else None

    def _load(self) -> None:
        """Load state from disk."""
        path = self.state_path
        if not path or not path.exists():
            return
        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            console.print(f"[yellow]Failed to load extraction store: {e}[/yellow]")
            return

        for row in data.get("events", []):
            event = Event.model_validate(row)
            self._events[event.id] = event
        for row in data.get("jobs", []):
            job = Job.model_validate(row)
            self._jobs[job.id] = job
        for row in data.get("sessions", []):
            session = StoredSession.model_validate(row)
            self._sessions[session.id] = session
        for row in data.get("organizations", []):
            org = Organization.model_validate(row)
            self._organizations[org.id] = org
        for row in data.get("speakers", []):
            speaker = Speaker.model_validate(row)
            self._speakers[speaker.id] = speaker
        for row in data.get("session_speakers", []):
            link = SessionSpeakerLink.model_validate(row)
            self._links[(link.session_id, link.speaker_id)] = link

        console.print(
            f"[dim]Loaded {len(self._events)} events, {len(self._jobs)} jobs, "
            f"{len(self._speakers)} speakers from store[/dim]"
        )

    def _save(self) -> None:
        """Save state to disk."""
        path = self.state_path
        if not path:
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump({
                "updated_at": datetime.now(timezone.utc).isoformat(),
                "events": [e.model_dump(mode="json") for e in self._events.values()],
                "jobs": [j.model_dump(mode="json") for j in self._jobs.values()],
                "sessions": [s.model_dump(mode="json") for s in self._sessions.values()],
                "organizations": [o.model_dump(mode="json") for o in self._organizations.values()],
                "speakers": [s.model_dump(mode="json") for s in self._speakers.values()],
                "session_speakers": [link.model_dump(mode="json") for link in self._links.values()],
            }, f, indent=2)
        tmp_path.replace(path)

    # ----- events -----------------------------------------------------------

    def create_event(self, name: str, start_url: str) -> Event:
        with self._lock:
            event = Event(
                name=name.strip(),
                start_url=start_url.strip(),
                domain=urlsplit(start_url.strip()).hostname,
            )
            self._events[event.id] = event
            self._save()
            return event

    def get_event(self, event_id: str) -> Optional[Event]:
        return self._events.get(event_id)

    def list_events(self) -> list[Event]:
        return sorted(self._events.values(), key=lambda e: e.created_at, reverse=True)

    # ----- sessions ---------------------------------------------------------

    def _find_session(self, event_id: str, url: str) -> Optional[StoredSession]:
        key = normalize_session_url(url)
        for session in self._sessions.values():
            if session.event_id == event_id and normalize_session_url(session.url) == key:
                return session
        return None

    def upsert_sessions(self, event_id: str, sessions: list[SessionRecord]) -> list[StoredSession]:
        """Insert sessions missing for (event_id, url). Existing titles are kept."""
        with self._lock:
            stored: list[StoredSession] = []
            for record in sessions:
                existing = self._find_session(event_id, record.url)
                if existing is None:
                    existing = StoredSession(
                        event_id=event_id,
                        title=record.title,
                        url=normalize_session_url(record.url),
                    )
                    self._sessions[existing.id] = existing
                stored.append(existing)
            self._save()
            return stored

    def list_sessions(self, event_id: str) -> list[StoredSession]:
        return [s for s in self._sessions.values() if s.event_id == event_id]

    # ----- organizations ----------------------------------------------------

    def _find_organization(self, normalized_name: str) -> Optional[Organization]:
        for org in self._organizations.values():
            if org.normalized_name == normalized_name:
                return org
        return None

    def upsert_organizations_by_normalized_name(
        self, names: dict[str, str]
    ) -> dict[str, Organization]:
        """Resolve {normalized_name: display_name}, creating what is missing."""
        with self._lock:
            resolved: dict[str, Organization] = {}
            for normalized_name, display_name in names.items():
                if not normalized_name:
                    continue
                org = self._find_organization(normalized_name)
                if org is None:
                    org = Organization(name=display_name, normalized_name=normalized_name)
                    self._organizations[org.id] = org
                resolved[normalized_name] = org
            self._save()
            return resolved

    def get_organization(self, organization_id: str) -> Optional[Organization]:
        return self._organizations.get(organization_id)

    # ----- speakers ---------------------------------------------------------

    def _organization_key(self, organization_id: Optional[str]) -> str:
        if not organization_id:
            return ""
        org = self._organizations.get(organization_id)
        return org.normalized_name if org else ""

    def _find_speaker(self, event_id: str, candidate: SpeakerCandidate) -> Optional[Speaker]:
        event_speakers = [s for s in self._speakers.values() if s.event_id == event_id]

        profile = normalize_profile_url(candidate.profile_url)
        if profile:
            for speaker in event_speakers:
                if normalize_profile_url(speaker.profile_url) == profile:
                    return speaker

        for speaker in event_speakers:
            if speaker.normalized_name != candidate.normalized_name:
                continue
            if self._organization_key(speaker.organization_id) != candidate.normalized_organization:
                continue
            # A different profile URL means a different person
            existing_profile = normalize_profile_url(speaker.profile_url)
            if profile and existing_profile and existing_profile != profile:
                continue
            return speaker
        return None

    def find_or_create_speaker(self, event_id: str, candidate: SpeakerCandidate) -> Speaker:
        """Reuse the speaker by profile URL, then by name + organization, else insert.

        A reused row only gets blank fields filled; nothing is overwritten.
        """
        with self._lock:
            speaker = self._find_speaker(event_id, candidate)
            if speaker is None:
                speaker = Speaker(
                    event_id=event_id,
                    canonical_name=candidate.name,
                    normalized_name=candidate.normalized_name,
                    organization_id=candidate.organization_id,
                    title=candidate.title,
                    profile_url=candidate.profile_url,
                )
                self._speakers[speaker.id] = speaker
                self._save()
                return speaker

            updates: dict[str, Any] = {}
            if not speaker.title and candidate.title:
                updates["title"] = candidate.title
            if not speaker.profile_url and candidate.profile_url:
                updates["profile_url"] = candidate.profile_url
            if updates:
                speaker = speaker.model_copy(update=updates)
                self._speakers[speaker.id] = speaker
                self._save()
            return speaker

    def list_speakers(self, event_id: str) -> list[Speaker]:
        speakers = [s for s in self._speakers.values() if s.event_id == event_id]
        return sorted(speakers, key=lambda s: s.canonical_name.lower())

    # ----- session/speaker links -------------------------------------------

    def upsert_session_speaker_links(self, links: list[SessionSpeakerLink]) -> int:
        """Upsert by (session_id, speaker_id). A new non-empty role replaces the old one."""
        with self._lock:
            for link in links:
                key = (link.session_id, link.speaker_id)
                existing = self._links.get(key)
                if existing and link.role is None:
                    continue
                self._links[key] = link
            self._save()
            return len(links)

    def list_session_speaker_links(self, session_ids: list[str]) -> list[SessionSpeakerLink]:
        wanted = set(session_ids)
        return [link for link in self._links.values() if link.session_id in wanted]

    # ----- jobs -------------------------------------------------------------

    def create_job(self, job: Job) -> Job:
        with self._lock:
            self._jobs[job.id] = job
            self._save()
            return job.model_copy(deep=True)

    def update_job(self, job_id: str, patch: dict[str, Any]) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise KeyError(f"Unknown job {job_id}")
            data = job.model_dump()
            data.update(patch)
            data["updated_at"] = datetime.now(timezone.utc).isoformat()
            job = Job.model_validate(data)
            self._jobs[job_id] = job
            self._save()
            return job.model_copy(deep=True)

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def latest_job_for_event(self, event_id: str) -> Optional[Job]:
        jobs = [j for j in self._jobs.values() if j.event_id == event_id]
        if not jobs:
            return None
        return max(jobs, key=lambda j: j.created_at)

    # ----- scrape artifacts (append-only) ----------------------------------

    def append_scrape_artifacts(
        self, job_id: str, event_id: str, artifacts: list[ScrapeAttempt]
    ) -> int:
        if not artifacts:
            return 0
        rows = [
            {
                "job_id": job_id,
                "event_id": event_id,
                "created_at": datetime.now(timezone.utc).isoformat(),
                **artifact.model_dump(mode="json"),
            }
            for artifact in artifacts
        ]
        with self._lock:
            path = self.artifacts_path
            if path:
                path.parent.mkdir(parents=True, exist_ok=True)
                with open(path, "a") as f:
                    for row in rows:
                        f.write(json.dumps(row, default=str) + "\n")
            else:
                self._artifacts.extend(rows)
        return len(rows)

    def list_scrape_artifacts(self, job_id: str) -> list[dict[str, Any]]:
        path = self.artifacts_path
        if not path:
            return [row for row in self._artifacts if row["job_id"] == job_id]
        if not path.exists():
            return []
        rows = []
        with open(path) as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                row = json.loads(line)
                if row.get("job_id") == job_id:
                    rows.append(row)
        return rows
