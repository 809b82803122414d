"""Canonical rows written through the persistence gateway."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Event(BaseModel):
    """A conference whose website gets extracted."""

    id: str = Field(default_factory=new_id)
    name: str
    start_url: str
    domain: Optional[str] = None
    created_at: str = Field(default_factory=utc_now)


class StoredSession(BaseModel):
    """Session row, unique per (event_id, url)."""

    id: str = Field(default_factory=new_id)
    event_id: str
    title: str
    url: str


class Organization(BaseModel):
    """Organization row, global and unique by normalized name.

    The display ``name`` is the first spelling seen and never changes here.
    """

    id: str = Field(default_factory=new_id)
    name: str
    normalized_name: str


class Speaker(BaseModel):
    """Speaker row scoped to one event.

    Unique per event by ``profile_url`` when present, otherwise by
    (normalized_name, organization normalized name).
    """

    id: str = Field(default_factory=new_id)
    event_id: str
    canonical_name: str
    normalized_name: str
    organization_id: Optional[str] = None
    title: Optional[str] = None
    profile_url: Optional[str] = None


class SpeakerCandidate(BaseModel):
    """What the resolver hands to ``find_or_create_speaker``."""

    name: str
    normalized_name: str
    organization_id: Optional[str] = None
    normalized_organization: str = ""
    title: Optional[str] = None
    profile_url: Optional[str] = None


class SessionSpeakerLink(BaseModel):
    """Unique per (session_id, speaker_id); ``role`` is last-write-wins.

    A later ``None`` role does not clear one already recorded.
    """

    session_id: str
    speaker_id: str
    role: Optional[str] = None
