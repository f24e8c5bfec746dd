"""
RSS and Atom feed fetching for official institution sources.
"""

import calendar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

import feedparser
from bs4 import BeautifulSoup

from resmihaber.core.config import Settings
from resmihaber.core.exceptions import ParseError
from resmihaber.models import AcquisitionMode, Source
from resmihaber.database.repository import IngestionStore
from resmihaber.scrapers.base import FEED_ACCEPT, FetchConfig, HttpFetcher, RunSummary
from resmihaber.scrapers.rate_limiter import DomainRateLimiter
from resmihaber.scrapers.robots import origin_of
from resmihaber.services.ingestor import ArticleCandidate, ArticleIngestor
from resmihaber.services.logging_service import get_logger

logger = get_logger(__name__)


@dataclass
class FeedItem:
    """One normalized RSS/Atom entry."""
    title: str
    link: str
    description: str = ""
    content: str = ""
    published_at: Optional[datetime] = None
    author: str = ""
    categories: List[str] = field(default_factory=list)
    guid: str = ""

    def to_candidate(self) -> ArticleCandidate:
        return ArticleCandidate(
            title=self.title,
            url=self.link,
            description=self.description,
            content=self.content,
            published_at=self.published_at,
            author=self.author,
            guid=self.guid,
            tags=list(self.categories),
        )


def _strip_html(value: str) -> str:
    if not value:
        return ""
    if "<" not in value:
        return value.strip()
    return BeautifulSoup(value, 'html.parser').get_text(" ", strip=True)


def _entry_datetime(entry) -> Optional[datetime]:
    for key in ('published_parsed', 'updated_parsed', 'created_parsed'):
        parsed = entry.get(key)
        if parsed:
            # feedparser normalizes to UTC struct_time
            return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)
    return None


def parse_feed(raw: bytes) -> List[FeedItem]:
    """
    Parse RSS/Atom bytes into FeedItems.

    Raises:
        ParseError: when the document is not a feed at all
    """
    feed = feedparser.parse(raw)
    if feed.bozo and not feed.entries:
        raise ParseError(f"Malformed feed: {feed.get('bozo_exception')}")

    items = []
    for entry in feed.entries:
        title = (entry.get('title') or '').strip()
        link = (entry.get('link') or '').strip()
        if not title or not link:
            continue

        content = ''
        if entry.get('content'):
            content = entry.content[0].get('value', '')

        summary = entry.get('summary') or entry.get('description') or ''
        items.append(FeedItem(
            title=title,
            link=link,
            description=_strip_html(summary),
            content=content or summary,
            published_at=_entry_datetime(entry),
            author=entry.get('author', ''),
            categories=[tag.get('term') for tag in entry.get('tags', []) if tag.get('term')],
            guid=entry.get('id') or link,
        ))
    return items


class FeedFetcher:
    """Polls every RSS source and hands new entries to the ingestor."""

    def __init__(
        self,
        settings: Settings,
        fetcher: HttpFetcher,
        store: IngestionStore,
        ingestor: ArticleIngestor,
        rate_limiter: DomainRateLimiter,
    ):
        self.settings = settings
        self.fetcher = fetcher
        self.store = store
        self.ingestor = ingestor
        self.rate_limiter = rate_limiter
        self.config = FetchConfig.from_settings(settings, timeout=settings.FEED_TIMEOUT, accept=FEED_ACCEPT)

    async def fetch_feed(self, source: Source) -> List[FeedItem]:
        if not source.feed_url:
            raise ParseError("RSS URL is not defined for this source")

        await self.rate_limiter.wait(origin_of(source.feed_url))
        result = await self.fetcher.fetch_with_retry(source.feed_url, self.config)
        if not result.success:
            raise result.error_kind_exception()
        return parse_feed(result.content)

    async def fetch_source(self, source: Source) -> int:
        """Fetch one source and ingest its items; returns new article count."""
        logger.info("Fetching RSS feed", source=source.name, url=source.feed_url)
        items = await self.fetch_feed(source)
        outcome = self.ingestor.ingest(source.id, (item.to_candidate() for item in items))
        self.store.mark_source_success(source.id)
        logger.info("RSS feed processed", source=source.name, items=len(items), new=outcome.created)
        return outcome.created

    async def fetch_all(self) -> RunSummary:
        """
        Fetch every RSS source that is not inactive.

        One failing source is marked as error and the batch moves on.
        """
        summary = RunSummary()
        sources = self.store.list_sources(AcquisitionMode.RSS)
        logger.info("Starting RSS fetch", sources=len(sources))

        for source in sources:
            summary.processed += 1
            try:
                summary.new_articles += await self.fetch_source(source)
                summary.succeeded += 1
            except Exception as e:
                summary.failed += 1
                message = getattr(e, 'message', None) or str(e) or type(e).__name__
                summary.errors.append(f"{source.name}: {message}")
                logger.error("RSS fetch failed", source=source.name, error=message)
                self.store.mark_source_error(source.id, message)

        logger.info(
            "Completed RSS fetch",
            processed=summary.processed,
            succeeded=summary.succeeded,
            failed=summary.failed,
            new_articles=summary.new_articles,
        )
        return summary
