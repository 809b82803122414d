"""Per-page strategy orchestration.

For each candidate URL:
1. Classify it (session listing vs speaker directory)
2. Score every registered strategy for that classification
3. Run strategies best-first; the first non-empty result wins
4. Record every attempt, artifacts included, even when nothing worked

A page where every strategy fails is recorded with its error and the run
moves on. Only cancellation escapes.
"""

from typing import Optional

from rich.console import Console

from speaker_extractor.errors import ExtractionCancelled, StrategyError
from speaker_extractor.extractors.base import LogSink, Strategy
from speaker_extractor.extractors.browser import BrowserFactory
from speaker_extractor.extractors.classifier import classify_page
from speaker_extractor.extractors.network_probe import NetworkProbeStrategy
from speaker_extractor.extractors.structured_scrape import ScrapeClient, StructuredScrapeStrategy
from speaker_extractor.jobs import CancellationToken
from speaker_extractor.models import PageOutcome, StrategyAttempt

console = Console()


def default_strategies(
    scrape_client: ScrapeClient,
    browser_factory: Optional[BrowserFactory] = None,
) -> list[Strategy]:
    """Probe first (when a browser is available), structured scrape as fallback."""
    strategies: list[Strategy] = []
    if browser_factory is not None:
        strategies.append(NetworkProbeStrategy(browser_factory))
    strategies.append(StructuredScrapeStrategy(scrape_client))
    return strategies


class PageExtractor:
    """Runs the registered strategies against one page at a time."""

    def __init__(self, strategies: list[Strategy]):
        if not strategies:
            raise ValueError("At least one strategy is required")
        self.strategies = list(strategies)

    def ranked(self, classification) -> list[tuple[int, Strategy]]:
        """Strategies by descending score. Ties keep registration order."""
        scored = [(strategy.score(classification), strategy) for strategy in self.strategies]
        return sorted(scored, key=lambda pair: pair[0], reverse=True)

    async def extract_page(
        self,
        url: str,
        token: CancellationToken,
        log: LogSink,
    ) -> PageOutcome:
        classification = classify_page(url)
        outcome = PageOutcome(url=url, classification=classification)

        log(
            f"Extracting {url} as {classification.mode.value}"
            f"{' (ambiguous)' if classification.ambiguous else ''}."
        )

        try:
            return await self._run_strategies(outcome, token, log)
        except ExtractionCancelled as e:
            # Earlier strategies' artifacts first, then the interrupted one's
            e.artifacts = [*outcome.artifacts, *e.artifacts]
            raise

    async def _run_strategies(
        self,
        outcome: PageOutcome,
        token: CancellationToken,
        log: LogSink,
    ) -> PageOutcome:
        url = outcome.url
        classification = outcome.classification
        errors: list[str] = []

        for score, strategy in self.ranked(classification):
            token.raise_if_cancelled()
            attempt = StrategyAttempt(url=url, strategy=strategy.name, score=score, outcome="empty")
            try:
                result = await strategy.run(classification, token, log)
            except ExtractionCancelled:
                raise
            except StrategyError as e:
                outcome.artifacts.extend(e.artifacts)
                attempt.outcome = "error"
                attempt.error = str(e)
                errors.append(f"{strategy.name}: {e}")
                outcome.attempts.append(attempt)
                log(f"Strategy {strategy.name} failed on {url}: {e}")
                continue
            except Exception as e:
                console.print(f"[red]Strategy {strategy.name} crashed on {url}: {e}[/red]")
                attempt.outcome = "error"
                attempt.error = str(e)
                errors.append(f"{strategy.name}: {e}")
                outcome.attempts.append(attempt)
                log(f"Strategy {strategy.name} failed on {url}: {e}")
                continue

            if result is not None:
                outcome.artifacts.extend(result.artifacts)

            if result is None or result.is_empty:
                outcome.attempts.append(attempt)
                log(f"Strategy {strategy.name} found nothing on {url}.")
                continue

            attempt.outcome = "success"
            outcome.attempts.append(attempt)
            outcome.result = result
            log(
                f"Strategy {strategy.name} found {len(result.sessions)} sessions and "
                f"{len(result.appearances)} speaker appearances ({result.stop_reason})."
            )
            return outcome

        outcome.error = "; ".join(errors) or "No strategy produced sessions or speakers"
        log(f"No strategy succeeded for {url}.")
        return outcome
