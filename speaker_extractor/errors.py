"""Exception types for the extraction pipeline.

Only ``ExtractionSetupError``, ``MappingError`` and ``ExtractionCancelled``
end a run. Everything raised inside a strategy is caught per page.
"""

from typing import Optional


class ExtractionError(Exception):
    """Base class for extraction failures."""


class ExtractionSetupError(ExtractionError, ValueError):
    """Missing or invalid eventId/startUrl, or unknown event."""


class MappingError(ExtractionError):
    """The page-discovery API could not map the start URL."""


class ExtractionCancelled(ExtractionError):
    """The run's cancellation token was tripped.

    Strategies and the page extractor attach the artifacts captured before the
    trip so the runner can still persist them.
    """

    def __init__(self, message: str = "cancelled", artifacts: Optional[list] = None):
        super().__init__(message)
        self.artifacts = artifacts or []


class InvalidJobTransition(ExtractionError):
    """A job status change not allowed by the state machine."""


class FirecrawlError(ExtractionError):
    """Non-success response from the page-discovery/scrape API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StrategyError(ExtractionError):
    """A strategy failed outright. Carries the artifacts captured before failing."""

    def __init__(self, message: str, artifacts: Optional[list] = None):
        super().__init__(message)
        self.artifacts = artifacts or []


class EventNotFound(ExtractionSetupError):
    """The eventId does not name a stored event."""
