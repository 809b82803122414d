"""Classify candidate pages as session listings or speaker directories.

Pure keyword matching on path + query; no network I/O.
"""

from urllib.parse import urlsplit

from speaker_extractor.models import ExtractionMode, PageClassification

SPEAKER_KEYWORDS = ["speaker", "speakers", "presenter", "presenters", "faculty"]
SESSION_KEYWORDS = ["session", "sessions", "agenda", "schedule", "program"]


def _path_and_query(url: str) -> str:
    parts = urlsplit(url)
    parts.port  # malformed ports raise ValueError
    if parts.query:
        return f"{parts.path}?{parts.query}".lower()
    return parts.path.lower()


def classify_page(url: str) -> PageClassification:
    """Decide the extraction mode for one URL.

    Only speaker keywords -> speaker directory. Only session keywords ->
    session. Both, neither, or an unparseable URL -> session, ambiguous.
    """
    try:
        candidate = _path_and_query(url)
    except ValueError:
        return PageClassification(url=url, mode=ExtractionMode.SESSION, ambiguous=True)

    speakerish = any(keyword in candidate for keyword in SPEAKER_KEYWORDS)
    sessionish = any(keyword in candidate for keyword in SESSION_KEYWORDS)

    if speakerish and not sessionish:
        return PageClassification(url=url, mode=ExtractionMode.SPEAKER_DIRECTORY, ambiguous=False)
    if sessionish and not speakerish:
        return PageClassification(url=url, mode=ExtractionMode.SESSION, ambiguous=False)
    return PageClassification(url=url, mode=ExtractionMode.SESSION, ambiguous=True)
