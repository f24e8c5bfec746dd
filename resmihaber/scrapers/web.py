"""
Generic HTML scraping engine.

Every request goes through the same gate: robots.txt check, per-origin
rate limit, then the retrying fetcher. Field extraction walks an ordered
list of selector candidates per field and keeps the first non-empty hit.
"""

import asyncio
import re
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple, Union

from bs4 import BeautifulSoup

from resmihaber.core.config import Settings
from resmihaber.core.exceptions import ErrorKind
from resmihaber.scrapers.base import FetchConfig, FetchResult, HttpFetcher
from resmihaber.scrapers.dates import parse_turkish_date
from resmihaber.scrapers.rate_limiter import DomainRateLimiter
from resmihaber.scrapers.robots import RobotsPolicy, origin_of
from resmihaber.services.logging_service import get_logger

logger = get_logger(__name__)

DESCRIPTION_MAX_LENGTH = 500

_ATTR_SUFFIX = re.compile(r'^(?P<css>.+?)::attr\((?P<attr>[\w:-]+)\)$')


@dataclass(frozen=True)
class ExtractionProfile:
    """
    Ordered selector candidates per field.

    A candidate is a CSS selector; append ``::attr(name)`` to read an
    attribute instead of the element text.
    """
    title: Tuple[str, ...] = (
        'h1.title',
        'h1.entry-title',
        'h1.post-title',
        'h1.article-title',
        '.page-title h1',
        '.content-title',
        'h1',
    )
    description: Tuple[str, ...] = (
        'meta[name="description"]::attr(content)',
        'meta[property="og:description"]::attr(content)',
        '.lead',
        '.summary',
        '.excerpt',
        '.entry-summary',
        'p',
    )
    published: Tuple[str, ...] = (
        'meta[property="article:published_time"]::attr(content)',
        'meta[name="publishdate"]::attr(content)',
        'time[datetime]::attr(datetime)',
        'time',
        '.date',
        '.published',
    )
    category: Tuple[str, ...] = (
        'meta[property="article:section"]::attr(content)',
        '.category',
        '.post-category',
        '.entry-category',
    )
    # Removed from titles, e.g. "SPK - " prefixes
    title_noise: Optional[str] = None


DEFAULT_PROFILE = ExtractionProfile()


@dataclass
class ScrapedFields:
    """Typed fields extracted from one HTML page."""
    title: str
    url: str
    description: Optional[str] = None
    published_at: Optional[datetime] = None
    category: Optional[str] = None


@dataclass
class ScrapeResult:
    """Outcome of scraping one URL."""
    url: str
    success: bool
    fields: Optional[ScrapedFields] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def failed(cls, url: str, error: str, kind: ErrorKind) -> "ScrapeResult":
        return cls(url=url, success=False, error=error, error_kind=kind)

    def as_dict(self) -> Dict:
        data = {
            "url": self.url,
            "success": self.success,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
        }
        if self.fields is not None:
            data.update({
                "title": self.fields.title,
                "description": self.fields.description,
                "published_at": self.fields.published_at.isoformat() if self.fields.published_at else None,
                "category": self.fields.category,
            })
        return data


def clean_text(text: Optional[str]) -> str:
    """Collapse whitespace and trim."""
    if not text:
        return ""
    return " ".join(text.split())


def select_first(soup: BeautifulSoup, candidates: Sequence[str]) -> str:
    """Text (or attribute) of the first candidate selector that yields something."""
    for candidate in candidates:
        match = _ATTR_SUFFIX.match(candidate)
        css, attr = (match.group('css'), match.group('attr')) if match else (candidate, None)
        for element in soup.select(css):
            value = element.get(attr) if attr else element.get_text(" ", strip=True)
            if isinstance(value, list):
                value = " ".join(value)
            value = clean_text(value)
            if value:
                return value
            if not attr:
                # Only the first element counts for text candidates
                break
    return ""


def extract_fields(html: Union[str, bytes], url: str, profile: ExtractionProfile = DEFAULT_PROFILE) -> ScrapeResult:
    """Run the selector cascade over one document."""
    soup = BeautifulSoup(html, 'html.parser')

    title = select_first(soup, profile.title)
    if not title and soup.title is not None:
        title = clean_text(soup.title.get_text())
    if title and profile.title_noise:
        title = clean_text(re.sub(profile.title_noise, "", title, flags=re.IGNORECASE))
    if not title:
        return ScrapeResult.failed(url, "No title found in page", ErrorKind.PARSE)

    description = select_first(soup, profile.description)[:DESCRIPTION_MAX_LENGTH] or None

    published_at = None
    for candidate in profile.published:
        text = select_first(soup, (candidate,))
        published_at = parse_turkish_date(text)
        if published_at:
            break

    category = select_first(soup, profile.category) or None

    return ScrapeResult(
        url=url,
        success=True,
        fields=ScrapedFields(
            title=title,
            url=url,
            description=description,
            published_at=published_at,
            category=category,
        ),
    )


class WebScraper:
    """Polite HTML fetcher plus field extraction."""

    def __init__(
        self,
        settings: Settings,
        fetcher: HttpFetcher,
        robots: RobotsPolicy,
        rate_limiter: DomainRateLimiter,
        sleep=asyncio.sleep,
    ):
        self.settings = settings
        self.fetcher = fetcher
        self.robots = robots
        self.rate_limiter = rate_limiter
        self.sleep = sleep

    async def fetch_page(self, url: str, config: Optional[FetchConfig] = None) -> FetchResult:
        """
        GET a page after the robots.txt check and the rate-limit wait.
        """
        try:
            origin = origin_of(url)
        except ValueError as e:
            return FetchResult(url=url, success=False, error=str(e), error_kind=ErrorKind.PARSE)

        decision = await self.robots.can_crawl(url)
        if not decision.allowed:
            logger.warning("Blocked by robots.txt", url=url)
            return FetchResult(url=url, success=False, error=decision.reason, error_kind=ErrorKind.POLICY_DENIED)

        await self.rate_limiter.wait(origin, decision.crawl_delay)
        return await self.fetcher.fetch_with_retry(url, config or FetchConfig.from_settings(self.settings))

    async def scrape_url(self, url: str, profile: ExtractionProfile = DEFAULT_PROFILE) -> ScrapeResult:
        """Scrape one URL; every failure comes back as success=False."""
        logger.info("Scraping", url=url)
        page = await self.fetch_page(url)
        if not page.success:
            return ScrapeResult.failed(url, page.error or "Fetch failed", page.error_kind or ErrorKind.NETWORK)

        try:
            result = extract_fields(page.markup, url, profile)
        except Exception as e:
            logger.error("HTML parse error", url=url, error=str(e))
            return ScrapeResult.failed(url, f"HTML parse error: {e}", ErrorKind.PARSE)

        if result.success:
            logger.info("Scraped", url=url, title=result.fields.title[:50])
        else:
            logger.warning("Extraction failed", url=url, error=result.error)
        return result

    async def scrape_urls(
        self,
        urls: Sequence[str],
        profile: ExtractionProfile = DEFAULT_PROFILE,
        concurrency: Optional[int] = None,
    ) -> List[ScrapeResult]:
        """
        Scrape many URLs.

        URLs are grouped by origin; origins run concurrently, and within an
        origin at most ``concurrency`` requests are in flight per batch.
        """
        concurrency = max(1, concurrency or self.settings.SCRAPE_CONCURRENCY)
        by_origin: "OrderedDict[str, List[str]]" = OrderedDict()
        invalid: List[ScrapeResult] = []
        for url in urls:
            try:
                by_origin.setdefault(origin_of(url), []).append(url)
            except ValueError:
                logger.warning("Skipping invalid URL", url=url)
                invalid.append(ScrapeResult.failed(url, "Invalid URL", ErrorKind.PARSE))

        async def run_origin(origin: str, origin_urls: List[str]) -> List[ScrapeResult]:
            logger.info("Scraping domain", origin=origin, urls=len(origin_urls))
            results: List[ScrapeResult] = []
            for start in range(0, len(origin_urls), concurrency):
                batch = origin_urls[start:start + concurrency]
                results.extend(await asyncio.gather(*(self.scrape_url(url, profile) for url in batch)))
                if start + concurrency < len(origin_urls):
                    await self.sleep(self.settings.SCRAPE_BATCH_PAUSE)
            return results

        per_origin = await asyncio.gather(*(run_origin(o, u) for o, u in by_origin.items()))
        return [result for group in per_origin for result in group] + invalid
