"""URL → sessions and speakers extraction engine.

This module provides the per-page extraction machinery:
1. Maps a conference site to candidate URLs (Firecrawl map + filtering)
2. Classifies each URL as a session listing or a speaker directory
3. Extracts sessions and speaker appearances using ranked strategies:
   - Network-response probe (headless browser, replays the site's own API)
   - Structured-content scrape (Firecrawl JSON extraction, iterative passes)
4. Records every attempt and raw artifact for audit
"""

from speaker_extractor.extractors.urls import (
    filter_mapped_urls,
    normalize_website_url,
    select_candidate_urls,
)
from speaker_extractor.extractors.classifier import classify_page
from speaker_extractor.extractors.firecrawl import FirecrawlClient, ScrapeRequest, ScrapeResponse
from speaker_extractor.extractors.network_probe import NetworkProbeStrategy
from speaker_extractor.extractors.structured_scrape import StructuredScrapeStrategy
from speaker_extractor.extractors.pipeline import PageExtractor, default_strategies

__all__ = [
    "filter_mapped_urls",
    "normalize_website_url",
    "select_candidate_urls",
    "classify_page",
    "FirecrawlClient",
    "ScrapeRequest",
    "ScrapeResponse",
    "NetworkProbeStrategy",
    "StructuredScrapeStrategy",
    "PageExtractor",
    "default_strategies",
]
