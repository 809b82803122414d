"""Identity normalization shared by in-run dedup and persisted lookups.

Every identity key in the system goes through these functions so that a
speaker folded in memory during a run lands in the same bucket as the row
already stored from an earlier run.
"""

import re
import unicodedata
from typing import Optional
from urllib.parse import urldefrag

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(value: Optional[str]) -> str:
    """Fold a name or organization for comparison.

    trim -> lowercase -> NFKD -> drop combining marks -> punctuation to
    spaces -> collapse whitespace. ``"ACME, Inc."`` and ``"acme  inc"`` both
    become ``"acme inc"``; ``"José"`` becomes ``"jose"``.
    """
    if not value:
        return ""
    folded = unicodedata.normalize("NFKD", value.strip().lower())
    folded = "".join(c for c in folded if unicodedata.category(c) != "Mn")
    folded = _NON_WORD.sub(" ", folded)
    return _WHITESPACE.sub(" ", folded).strip()


def normalize_profile_url(url: Optional[str]) -> str:
    """Profile URLs compare equal after trimming, dropping the fragment and lowercasing."""
    if not url:
        return ""
    stripped, _ = urldefrag(url.strip())
    return stripped.lower()


def normalize_session_url(url: str) -> str:
    """Session identity: the URL with its fragment removed."""
    stripped, _ = urldefrag(url.strip())
    return stripped


def speaker_identity_key(
    name: Optional[str],
    organization: Optional[str] = None,
    profile_url: Optional[str] = None,
) -> str:
    """Two-tier speaker key: profile URL when known, else name + organization."""
    profile = normalize_profile_url(profile_url)
    if profile:
        return f"profile::{profile}"
    return f"nameorg::{normalize_text(name)}::{normalize_text(organization)}"
