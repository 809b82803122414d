"""Tests for URL normalization, filtering and candidate selection."""

import pytest

from speaker_extractor.extractors.urls import (
    filter_mapped_urls,
    is_html_like_path,
    normalize_website_url,
    parse_mapped_urls,
    select_candidate_urls,
)

START = "https://conf.example.com/"


class TestNormalizeWebsiteUrl:
    """Tests for user-entered website URLs."""

    @pytest.mark.parametrize("raw,expected", [
        ("conf.example.com", "https://conf.example.com/"),
        ("  https://conf.example.com/agenda  ", "https://conf.example.com/agenda"),
        ("HTTP://conf.example.com", "http://conf.example.com/"),
    ])
    def test_normalizes(self, raw: str, expected: str):
        """Scheme is added when missing and whitespace trimmed."""
        assert normalize_website_url(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "https://"])
    def test_rejects_empty(self, raw):
        """Blank or host-less input is rejected."""
        assert normalize_website_url(raw) is None


class TestFilterMappedUrls:
    """Tests for same-host page filtering."""

    def test_keeps_same_host_pages_only(self):
        """Other hosts, non-http schemes and assets are dropped."""
        mapped = [
            "https://conf.example.com/agenda",
            "https://other.example.com/agenda",
            "mailto:team@conf.example.com",
            "ftp://conf.example.com/files",
            "https://conf.example.com/logo.PNG",
            "https://conf.example.com/static/app.js",
            "https://conf.example.com/speakers",
        ]
        assert filter_mapped_urls(START, mapped) == [
            "https://conf.example.com/agenda",
            "https://conf.example.com/speakers",
        ]

    def test_host_comparison_is_case_insensitive(self):
        """Hostnames differing only by case are the same site."""
        result = filter_mapped_urls(START, ["https://CONF.Example.com/Speakers"])
        assert result == ["https://conf.example.com/Speakers"]

    def test_strips_fragments_and_dedupes(self):
        """URLs differing only by fragment collapse into one."""
        mapped = [
            "https://conf.example.com/agenda#day-1",
            "https://conf.example.com/agenda#day-2",
            "https://conf.example.com/agenda",
        ]
        assert filter_mapped_urls(START, mapped) == ["https://conf.example.com/agenda"]

    def test_resolves_root_relative_links(self):
        """Root-relative links resolve against the start URL."""
        assert filter_mapped_urls(START, ["/schedule"]) == ["https://conf.example.com/schedule"]

    def test_skips_unparseable_entries(self):
        """Garbage entries are silently skipped."""
        mapped = ["not a url", "https://conf.example.com:badport/x", 42, "https://conf.example.com/ok"]
        assert filter_mapped_urls(START, mapped) == ["https://conf.example.com/ok"]

    def test_empty_input(self):
        assert filter_mapped_urls(START, []) == []

    @pytest.mark.parametrize("path,expected", [
        ("/agenda", True),
        ("/v1.2/agenda", True),
        ("/speakers.html", True),
        ("/brochure.pdf", False),
        ("/sitemap.xml", False),
    ])
    def test_html_like_paths(self, path: str, expected: bool):
        assert is_html_like_path(path) is expected


class TestParseMappedUrls:
    """Tests for the map response link list."""

    @pytest.mark.parametrize("payload", [
        {"links": ["https://a.example.com/x"]},
        {"data": {"links": ["https://a.example.com/x"]}},
        {"data": ["https://a.example.com/x"]},
        {"links": [{"url": "https://a.example.com/x", "title": "X"}]},
    ])
    def test_response_shapes(self, payload):
        """All known response shapes yield the same list."""
        assert parse_mapped_urls(payload) == ["https://a.example.com/x"]

    def test_unknown_shape(self):
        assert parse_mapped_urls({"success": True}) == []
        assert parse_mapped_urls(None) == []


class TestSelectCandidateUrls:
    """Tests for picking agenda/speaker pages."""

    def test_keyword_matches_win(self):
        """Only agenda-like URLs are kept when some match."""
        urls = [
            "https://conf.example.com/",
            "https://conf.example.com/about",
            "https://conf.example.com/agenda",
            "https://conf.example.com/speakers",
            "https://conf.example.com/page?view=schedule",
        ]
        assert select_candidate_urls(urls, 10) == [
            "https://conf.example.com/agenda",
            "https://conf.example.com/speakers",
            "https://conf.example.com/page?view=schedule",
        ]

    def test_cap(self):
        urls = [f"https://conf.example.com/session/{i}" for i in range(10)]
        assert len(select_candidate_urls(urls, 3)) == 3

    def test_fallback_when_nothing_matches(self):
        """Without keyword matches the first URLs are used."""
        urls = ["https://conf.example.com/", "https://conf.example.com/about", "https://conf.example.com/venue"]
        assert select_candidate_urls(urls, 2) == urls[:2]
