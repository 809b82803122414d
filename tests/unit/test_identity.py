"""Tests for identity normalization and speaker keys."""

import pytest

from speaker_extractor.models import SpeakerAppearance
from speaker_extractor.normalizers.identity import (
    normalize_profile_url,
    normalize_session_url,
    normalize_text,
    speaker_identity_key,
)


class TestNormalizeText:
    """Tests for name/organization folding."""

    @pytest.mark.parametrize("raw,expected", [
        ("ACME, Inc.", "acme inc"),
        ("  acme   inc ", "acme inc"),
        ("José Müller", "jose muller"),
        ("O'Brien-Smith", "o brien smith"),
        ("", ""),
        (None, ""),
    ])
    def test_folding(self, raw, expected: str):
        assert normalize_text(raw) == expected


class TestUrlNormalizers:
    """Tests for profile and session URL normalization."""

    def test_profile_url(self):
        """Profile URLs are trimmed, fragment-stripped and lowercased."""
        assert normalize_profile_url(" https://Example.com/People/Ada#bio ") == "https://example.com/people/ada"
        assert normalize_profile_url(None) == ""

    def test_session_url_keeps_case(self):
        """Session URLs only lose the fragment."""
        assert normalize_session_url("https://conf.example.com/Talk/1#top ") == "https://conf.example.com/Talk/1"


class TestSpeakerIdentityKey:
    """Tests for the two-tier speaker key."""

    def test_profile_wins(self):
        """A profile URL makes name and organization irrelevant."""
        a = speaker_identity_key("Ada Lovelace", "Analytical", "https://ada.example.com/#x")
        b = speaker_identity_key("A. Lovelace", None, "HTTPS://ADA.EXAMPLE.COM/")
        assert a == b == "profile::https://ada.example.com/"

    def test_name_and_org(self):
        """Without a profile, name and organization are folded."""
        assert speaker_identity_key("José  Pérez", "ACME, Inc.") == "nameorg::jose perez::acme inc"

    def test_missing_organization(self):
        assert speaker_identity_key("Grace Hopper") == "nameorg::grace hopper::"

    def test_appearance_key_and_completeness(self):
        appearance = SpeakerAppearance(
            name="Grace Hopper",
            organization="Navy",
            title="Rear Admiral",
            session_url="https://conf.example.com/s/1",
        )
        assert appearance.identity_key == "nameorg::grace hopper::navy"
        assert appearance.completeness == 2
