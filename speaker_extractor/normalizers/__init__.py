"""Normalizers for identity keys."""

from speaker_extractor.normalizers.identity import (
    normalize_text,
    normalize_profile_url,
    normalize_session_url,
    speaker_identity_key,
)

__all__ = [
    "normalize_text",
    "normalize_profile_url",
    "normalize_session_url",
    "speaker_identity_key",
]
