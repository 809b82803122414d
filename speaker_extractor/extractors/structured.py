"""Turn structured JSON (LLM extraction output or raw API payloads) into rows.

Two sources feed this module:
1. Firecrawl JSON extraction, shaped by the per-mode schemas below
2. Arbitrary JSON API responses captured by the browser probe, where
   speaker-like objects are found by walking the tree
"""

import json
from typing import Any, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from speaker_extractor.models import ExtractionMode, SessionRecord, SpeakerAppearance

DIRECTORY_SESSION_TITLE = "Speaker Directory"

# Bound the cost of walking one JSON response
MAX_TRAVERSED_NODES = 5000

# Textual hints that a page lists speakers even when extraction found none
SPEAKER_SIGNAL_KEYWORDS = [
    "speaker",
    "speakers",
    "presenter",
    "presenters",
    "panelist",
    "panelists",
    "moderator",
    "keynote",
    "faculty",
]

LOAD_MORE_SELECTORS = [
    "button[aria-label*='load more' i]",
    "button[aria-label*='show more' i]",
    "button[class*='load-more' i]",
    "a[aria-label*='load more' i]",
]

_SPEAKER_ITEM_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "organization": {"type": "string"},
        "title": {"type": "string"},
        "profileWebsiteUrl": {"type": "string"},
        "profileUrl": {"type": "string"},
        "websiteUrl": {"type": "string"},
        "role": {"type": "string"},
    },
    "required": ["name"],
}

SPEAKER_DIRECTORY_SCHEMA = {
    "type": "object",
    "properties": {
        "speakers": {"type": "array", "items": _SPEAKER_ITEM_SCHEMA},
    },
    "required": ["speakers"],
}

SESSION_SCHEMA = {
    "type": "object",
    "properties": {
        "sessions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "url": {"type": "string"},
                    "speakers": {"type": "array", "items": _SPEAKER_ITEM_SCHEMA},
                },
                "required": ["title"],
            },
        },
    },
    "required": ["sessions"],
}

SPEAKER_DIRECTORY_PROMPT = (
    "Extract all speakers visible on this page. Return an object with `speakers` array. "
    "Each speaker should include `name`, optional `organization`, optional `title`, "
    "optional `profileWebsiteUrl`, optional `profileUrl`, optional `websiteUrl`, optional `role`."
)

SESSION_PROMPT = (
    "Extract conference sessions and the speakers listed for each session on this page. "
    "Return an object with `sessions` array. Each session must contain `title`, optional `url`, "
    "and `speakers` array. Each speaker item should include `name`, optional `organization`, "
    "optional `title`, optional `profileWebsiteUrl` (speaker website/profile page URL), "
    "optional `profileUrl`, optional `websiteUrl`, optional `role`."
)


def schema_for_mode(mode: ExtractionMode) -> dict:
    if mode == ExtractionMode.SPEAKER_DIRECTORY:
        return SPEAKER_DIRECTORY_SCHEMA
    return SESSION_SCHEMA


def prompt_for_mode(mode: ExtractionMode) -> str:
    if mode == ExtractionMode.SPEAKER_DIRECTORY:
        return SPEAKER_DIRECTORY_PROMPT
    return SESSION_PROMPT


def load_more_click_script(max_clicks: int) -> str:
    """JavaScript clicking load-more-like controls until none remain or max_clicks."""
    selectors = json.dumps(LOAD_MORE_SELECTORS)
    return f"""
      const selectors = {selectors};
      let clicks = 0;
      while (clicks < {max(1, max_clicks)}) {{
        let clicked = false;
        for (const selector of selectors) {{
          const el = document.querySelector(selector);
          if (el) {{
            el.dispatchEvent(new MouseEvent("click", {{ bubbles: true }}));
            clicked = true;
            clicks += 1;
            break;
          }}
        }}
        if (!clicked) {{
          break;
        }}
      }}
    """


# One scroll to the bottom plus a best-effort load-more click, used per probe pass
SCROLL_AND_CLICK_SCRIPT = f"""
() => {{
  window.scrollTo(0, document.body.scrollHeight);
  const selectors = {json.dumps(LOAD_MORE_SELECTORS)};
  for (const selector of selectors) {{
    const element = document.querySelector(selector);
    if (element) {{
      element.click();
      break;
    }}
  }}
}}
"""


def max_load_more_clicks(pass_index: int) -> int:
    """Later passes are allowed to click more load-more controls."""
    return min(3 * max(1, pass_index), 15)


def build_speaker_directory_actions(pass_index: int) -> list[dict]:
    """Interaction plan for one speaker-directory pass.

    Each pass waits, scrolls ``min(1 + pass, 4)`` times, then clicks
    load-more controls in a bounded loop before the page is captured.
    """
    pass_index = max(1, pass_index)
    scroll_count = min(1 + pass_index, 4)
    actions: list[dict] = [{"type": "wait", "milliseconds": 2200 if pass_index == 1 else 1400}]

    for _ in range(scroll_count):
        actions.append({"type": "scroll", "direction": "down"})
        actions.append({"type": "wait", "milliseconds": 800})

    actions.append({
        "type": "executeJavascript",
        "script": load_more_click_script(max_load_more_clicks(pass_index)),
    })
    actions.append({"type": "wait", "milliseconds": 1200})
    return actions


def text_value(value: Any) -> Optional[str]:
    """Trimmed string or None."""
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _first_text(record: dict, *keys: str) -> Optional[str]:
    for key in keys:
        value = text_value(record.get(key))
        if value:
            return value
    return None


def _list_from(payload: Any, primary: str) -> list:
    """Find the row list under ``primary``, ``items`` or ``data``."""
    if not isinstance(payload, dict):
        return []
    for key in (primary, "items", "data"):
        value = payload.get(key)
        if isinstance(value, list):
            return value
    return []


def _appearance_from(record: Any, session_url: str) -> Optional[SpeakerAppearance]:
    if not isinstance(record, dict):
        return None
    name = text_value(record.get("name"))
    if not name:
        return None
    return SpeakerAppearance(
        name=name,
        organization=text_value(record.get("organization")),
        title=text_value(record.get("title")),
        # Accept common variants so speaker website URLs are kept
        profile_url=_first_text(record, "profileWebsiteUrl", "websiteUrl", "profileUrl"),
        role=text_value(record.get("role")),
        session_url=session_url,
    )


def parse_session_output(
    payload: Any, page_url: str
) -> tuple[list[SessionRecord], list[SpeakerAppearance]]:
    """Sessions with nested speakers -> session rows + appearances."""
    rows = _list_from(payload, "sessions")
    if not rows and isinstance(payload, dict) and text_value(payload.get("title")):
        # A single session page extracted as one object
        rows = [{"title": payload["title"], "url": page_url, "speakers": payload.get("speakers")}]

    sessions: list[SessionRecord] = []
    appearances: list[SpeakerAppearance] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        title = text_value(row.get("title"))
        if not title:
            continue
        raw_url = text_value(row.get("url"))
        session_url = urljoin(page_url, raw_url) if raw_url else page_url
        sessions.append(SessionRecord(title=title, url=session_url))

        speakers = row.get("speakers")
        for speaker in speakers if isinstance(speakers, list) else []:
            appearance = _appearance_from(speaker, session_url)
            if appearance:
                appearances.append(appearance)

    return sessions, appearances


def parse_speaker_directory_output(
    payload: Any, page_url: str
) -> tuple[list[SessionRecord], list[SpeakerAppearance]]:
    """Flat speaker list -> one synthetic directory session + appearances."""
    rows = _list_from(payload, "speakers")
    if not rows and isinstance(payload, dict) and text_value(payload.get("name")):
        rows = [payload]

    appearances = [a for a in (_appearance_from(row, page_url) for row in rows) if a]
    if not appearances:
        return [], []
    return [SessionRecord(title=DIRECTORY_SESSION_TITLE, url=page_url)], appearances


def parse_structured_output(
    mode: ExtractionMode, payload: Any, page_url: str
) -> tuple[list[SessionRecord], list[SpeakerAppearance]]:
    if mode == ExtractionMode.SPEAKER_DIRECTORY:
        return parse_speaker_directory_output(payload, page_url)
    return parse_session_output(payload, page_url)


def has_speaker_signals(
    markdown: Optional[str] = None,
    html: Optional[str] = None,
    structured_json: Any = None,
) -> bool:
    """Does the page talk about speakers anywhere we can see?"""
    texts: list[str] = []
    if markdown:
        texts.append(markdown)
    if html:
        texts.append(BeautifulSoup(html, "lxml").get_text(separator=" ", strip=True))
    if structured_json is not None:
        texts.append(json.dumps(structured_json, default=str))

    haystack = " ".join(texts).lower()
    return any(keyword in haystack for keyword in SPEAKER_SIGNAL_KEYWORDS)


# =============================================================================
# Speaker-like objects in arbitrary JSON (browser probe)
# =============================================================================

def is_speaker_like(value: Any) -> bool:
    """Name-like field plus at least one supporting field (org, title, url or id)."""
    if not isinstance(value, dict):
        return False
    has_name = bool(_first_text(value, "name", "fullName", "displayName"))
    if not has_name:
        return False
    has_support = bool(_first_text(
        value, "organization", "company", "title", "jobTitle",
        "profileUrl", "profileURL", "websiteUrl", "url",
    ))
    identifier = value.get("id")
    has_id = isinstance(identifier, (str, int)) and not isinstance(identifier, bool)
    return has_support or has_id


def speaker_from_json(value: dict, session_url: str) -> SpeakerAppearance:
    return SpeakerAppearance(
        name=_first_text(value, "name", "fullName", "displayName") or "Unknown",
        organization=_first_text(value, "organization", "company", "employer"),
        title=_first_text(value, "title", "jobTitle"),
        profile_url=_first_text(value, "profileUrl", "profileURL", "websiteUrl", "url", "link"),
        role=text_value(value.get("role")),
        session_url=session_url,
    )


def collect_speaker_candidates(payload: Any, session_url: str) -> list[SpeakerAppearance]:
    """Depth-first walk collecting speaker-like objects, capped at MAX_TRAVERSED_NODES."""
    found: list[SpeakerAppearance] = []
    stack: list[Any] = [payload]
    traversed = 0

    while stack and traversed < MAX_TRAVERSED_NODES:
        traversed += 1
        current = stack.pop()
        if isinstance(current, list):
            stack.extend(current)
            continue
        if not isinstance(current, dict):
            continue
        if is_speaker_like(current):
            found.append(speaker_from_json(current, session_url))
        for value in current.values():
            if isinstance(value, (dict, list)):
                stack.append(value)

    return found
