"""
Data Collection and Scraping Layer

This module provides polite web collection for official institution sites:
- Retrying HTTP fetcher with bounded timeouts and response sizes
- robots.txt policy engine and per-domain rate limiting
- Selector-cascade HTML extraction and Turkish date parsing
- RSS/Atom feed fetching (scrapers.feeds) and data-driven site scrapers
  (scrapers.sites), coordinated by scrapers.manager
"""

from .base import FetchConfig, FetchResult, HttpFetcher, RunSummary
from .dates import parse_turkish_date
from .rate_limiter import DomainRateLimiter
from .robots import CrawlDecision, RobotsPolicy, RobotsRules, origin_of
from .web import DEFAULT_PROFILE, ExtractionProfile, ScrapedFields, ScrapeResult, WebScraper, extract_fields

__all__ = [
    # HTTP
    "FetchConfig",
    "FetchResult",
    "HttpFetcher",
    "RunSummary",

    # Politeness
    "DomainRateLimiter",
    "CrawlDecision",
    "RobotsPolicy",
    "RobotsRules",
    "origin_of",

    # Extraction
    "DEFAULT_PROFILE",
    "ExtractionProfile",
    "ScrapedFields",
    "ScrapeResult",
    "WebScraper",
    "extract_fields",
    "parse_turkish_date",
]
