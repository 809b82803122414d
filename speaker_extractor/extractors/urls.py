"""URL normalization and filtering for mapped conference sites.

The page-discovery API returns every link it can find on a domain. Before
anything gets scraped we keep only same-host, http(s), page-like URLs and
then pick the ones that look like agendas or speaker listings.
"""

from typing import Any, Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

# Non-page assets we never scrape
ASSET_EXTENSIONS = {
    ".css", ".js", ".mjs", ".map",
    ".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".ico",
    ".pdf", ".zip", ".tar", ".gz",
    ".mp4", ".webm", ".mp3", ".wav",
    ".xml", ".json", ".txt",
}

# Coarse keywords deciding which mapped URLs are worth visiting at all
SESSION_URL_KEYWORDS = [
    "agenda",
    "schedule",
    "session",
    "sessions",
    "program",
    "speaker",
    "speakers",
]


def normalize_website_url(raw: Optional[str]) -> Optional[str]:
    """Accept user input like ``www.example.com`` by adding https when missing."""
    if not raw or not raw.strip():
        return None
    trimmed = raw.strip()
    if not trimmed.lower().startswith(("http://", "https://")):
        trimmed = f"https://{trimmed}"
    try:
        parts = urlsplit(trimmed)
    except ValueError:
        return None
    if not parts.hostname:
        return None
    return urlunsplit((parts.scheme.lower(), parts.netloc, parts.path or "/", parts.query, parts.fragment))


def strip_fragment(url: str) -> Optional[str]:
    """Parse and drop the fragment. None if the URL can't be parsed."""
    try:
        parts = urlsplit(url.strip())
        # Touch .port so malformed ports fail here, not later
        parts.port
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    path = parts.path or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def is_html_like_path(path: str) -> bool:
    """Paths without a file extension are pages; otherwise check the asset list."""
    last_dot = path.rfind(".")
    if last_dot <= path.rfind("/"):
        return True
    return path[last_dot:].lower() not in ASSET_EXTENSIONS


def filter_mapped_urls(start_url: str, mapped_urls: list[str]) -> list[str]:
    """Keep same-host, http(s), non-asset URLs, fragment-stripped and deduplicated.

    Hostnames compare case-insensitively. First-seen order is kept.
    """
    origin_host = (urlsplit(start_url.strip()).hostname or "").lower()
    seen: dict[str, None] = {}

    for raw in mapped_urls:
        if not isinstance(raw, str):
            continue
        if raw.startswith("/") and not raw.startswith("//"):
            # Root-relative links resolve against the start URL
            raw = urljoin(start_url, raw)
        normalized = strip_fragment(raw)
        if not normalized:
            continue

        parts = urlsplit(normalized)
        if parts.scheme not in ("http", "https"):
            continue
        if (parts.hostname or "").lower() != origin_host:
            continue
        if not is_html_like_path(parts.path):
            continue

        seen.setdefault(normalized, None)

    return list(seen)


def parse_mapped_urls(payload: Any) -> list[str]:
    """Pull the link list out of a map response.

    Responses vary, so check ``links``, ``data.links`` and ``data`` in order.
    """
    if not isinstance(payload, dict):
        return []

    data = payload.get("data")
    candidates = [
        payload.get("links"),
        data.get("links") if isinstance(data, dict) else None,
        data,
    ]
    for candidate in candidates:
        if isinstance(candidate, list):
            links = []
            for item in candidate:
                # Newer map responses return {"url": ..., "title": ...} objects
                if isinstance(item, dict) and isinstance(item.get("url"), str):
                    links.append(item["url"])
                elif isinstance(item, str):
                    links.append(item)
            return links
    return []


def select_candidate_urls(urls: list[str], max_pages: int) -> list[str]:
    """Pick URLs that look like agendas or speaker listings, capped at max_pages.

    Falls back to the first ``max_pages`` URLs when nothing matches.
    """
    if max_pages <= 0:
        return []

    selected: list[str] = []
    for url in urls:
        try:
            parts = urlsplit(url)
        except ValueError:
            continue
        candidate = f"{parts.path}?{parts.query}".lower() if parts.query else parts.path.lower()
        if any(keyword in candidate for keyword in SESSION_URL_KEYWORDS):
            selected.append(url)
        if len(selected) >= max_pages:
            break

    if not selected:
        return urls[:max_pages]
    return selected
