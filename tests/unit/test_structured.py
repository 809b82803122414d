"""Tests for structured-output parsing and speaker-like JSON detection."""

import pytest

from speaker_extractor.extractors.structured import (
    DIRECTORY_SESSION_TITLE,
    MAX_TRAVERSED_NODES,
    build_speaker_directory_actions,
    collect_speaker_candidates,
    has_speaker_signals,
    is_speaker_like,
    max_load_more_clicks,
    parse_session_output,
    parse_speaker_directory_output,
)

PAGE = "https://conf.example.com/agenda"


class TestParseSessionOutput:
    """Tests for session-with-nested-speakers payloads."""

    def test_sessions_and_speakers(self):
        payload = {"sessions": [
            {
                "title": "Scaling Postgres",
                "url": "/talks/postgres",
                "speakers": [
                    {"name": "Ada", "organization": "AE", "websiteUrl": "https://ada.example.com"},
                    {"name": "  "},
                ],
            },
            {"title": "Lunch"},
            {"url": "/no-title"},
        ]}
        sessions, appearances = parse_session_output(payload, PAGE)

        assert [s.title for s in sessions] == ["Scaling Postgres", "Lunch"]
        assert sessions[0].url == "https://conf.example.com/talks/postgres"
        assert sessions[1].url == PAGE
        assert len(appearances) == 1
        assert appearances[0].session_url == "https://conf.example.com/talks/postgres"
        assert appearances[0].profile_url == "https://ada.example.com"

    def test_profile_url_precedence(self):
        payload = {"sessions": [{"title": "T", "speakers": [{
            "name": "Ada",
            "profileUrl": "https://c.example.com",
            "websiteUrl": "https://b.example.com",
            "profileWebsiteUrl": "https://a.example.com",
        }]}]}
        _, appearances = parse_session_output(payload, PAGE)
        assert appearances[0].profile_url == "https://a.example.com"

    @pytest.mark.parametrize("payload", [None, [], {"sessions": "nope"}, {}])
    def test_malformed(self, payload):
        assert parse_session_output(payload, PAGE) == ([], [])


class TestParseSpeakerDirectoryOutput:
    """Tests for flat speaker-list payloads."""

    def test_synthetic_directory_session(self):
        sessions, appearances = parse_speaker_directory_output(
            {"speakers": [{"name": "Ada"}, {"name": "Grace", "role": "keynote"}]}, PAGE
        )
        assert len(sessions) == 1
        assert sessions[0].title == DIRECTORY_SESSION_TITLE
        assert sessions[0].url == PAGE
        assert [a.name for a in appearances] == ["Ada", "Grace"]
        assert all(a.session_url == PAGE for a in appearances)

    def test_no_speakers_no_session(self):
        assert parse_speaker_directory_output({"speakers": []}, PAGE) == ([], [])


class TestSpeakerSignals:
    """Tests for textual speaker hints."""

    def test_markdown(self):
        assert has_speaker_signals(markdown="## Our Keynote lineup")

    def test_html_visible_text_only(self):
        """Attributes do not count, only visible text."""
        assert not has_speaker_signals(html='<div class="speaker-card">Welcome</div>')
        assert has_speaker_signals(html="<p>Meet the <b>panelists</b></p>")

    def test_json(self):
        assert has_speaker_signals(structured_json={"moderator": "x"})

    def test_none(self):
        assert not has_speaker_signals(markdown="Venue and travel", html=None, structured_json=None)


class TestSpeakerLikeJson:
    """Tests for heuristic speaker detection in arbitrary JSON."""

    @pytest.mark.parametrize("value,expected", [
        ({"name": "Ada", "company": "AE"}, True),
        ({"fullName": "Ada", "id": 7}, True),
        ({"displayName": "Ada", "id": "u-7"}, True),
        ({"name": "Ada"}, False),
        ({"name": "Ada", "id": True}, False),
        ({"company": "AE", "title": "CTO"}, False),
        ("Ada", False),
    ])
    def test_is_speaker_like(self, value, expected: bool):
        assert is_speaker_like(value) is expected

    def test_collects_nested(self):
        payload = {"data": {"page": 1, "results": [
            {"id": 1, "name": "Ada", "company": "AE", "sessions": [{"id": 9, "name": "Talk", "url": "/t"}]},
            {"name": "No support"},
        ]}}
        found = collect_speaker_candidates(payload, PAGE)
        assert sorted(a.name for a in found) == ["Ada", "Talk"]
        ada = next(a for a in found if a.name == "Ada")
        assert ada.organization == "AE"
        assert ada.session_url == PAGE

    def test_traversal_is_capped(self):
        """Huge payloads stop at the node cap."""
        payload = [{"id": i, "name": f"S{i}"} for i in range(MAX_TRAVERSED_NODES * 2)]
        found = collect_speaker_candidates(payload, PAGE)
        assert 0 < len(found) < MAX_TRAVERSED_NODES


class TestSpeakerDirectoryActions:
    """Tests for per-pass interaction plans."""

    @pytest.mark.parametrize("pass_index,clicks", [(1, 3), (2, 6), (5, 15), (8, 15)])
    def test_click_budget(self, pass_index: int, clicks: int):
        assert max_load_more_clicks(pass_index) == clicks

    def test_first_pass(self):
        actions = build_speaker_directory_actions(1)
        assert actions[0] == {"type": "wait", "milliseconds": 2200}
        assert sum(1 for a in actions if a["type"] == "scroll") == 2
        assert actions[-2]["type"] == "executeJavascript"
        assert actions[-1] == {"type": "wait", "milliseconds": 1200}

    def test_scrolls_are_capped(self):
        actions = build_speaker_directory_actions(7)
        assert actions[0] == {"type": "wait", "milliseconds": 1400}
        assert sum(1 for a in actions if a["type"] == "scroll") == 4
