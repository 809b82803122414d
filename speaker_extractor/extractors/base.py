"""Shared contract for scrape strategies."""

from typing import Callable, Optional, Protocol

from speaker_extractor.jobs import CancellationToken
from speaker_extractor.models import PageClassification, StrategyResult

LogSink = Callable[[str], None]


class Strategy(Protocol):
    """One self-contained way of turning a URL into sessions and appearances.

    ``run`` returns None (or an empty result still carrying its artifacts)
    when it found nothing usable, and raises StrategyError when it failed
    outright. Either way the next strategy is tried. ExtractionCancelled
    always propagates.
    """

    name: str

    def score(self, classification: PageClassification) -> int: ...

    async def run(
        self,
        classification: PageClassification,
        token: CancellationToken,
        log: LogSink,
    ) -> Optional[StrategyResult]: ...
