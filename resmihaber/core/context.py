"""
Wiring for one ingestion process.

Everything that holds state (HTTP session, robots cache, rate limiter,
financial cache) hangs off a single IngestionContext instead of module
globals, so tests build their own with fakes injected.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import aiohttp
from sqlalchemy.orm import sessionmaker

from resmihaber.core.config import Settings
from resmihaber.database.repository import IngestionStore
from resmihaber.scrapers.base import HttpFetcher
from resmihaber.scrapers.feeds import FeedFetcher
from resmihaber.scrapers.manager import ScraperManager
from resmihaber.scrapers.rate_limiter import DomainRateLimiter
from resmihaber.scrapers.robots import RobotsPolicy
from resmihaber.scrapers.sites import SiteRegistry, site_registry
from resmihaber.scrapers.web import WebScraper
from resmihaber.services.financial import FinancialDataFetcher
from resmihaber.services.ingestor import ArticleIngestor
from resmihaber.services.logging_service import get_logger

logger = get_logger(__name__)


@dataclass
class IngestionContext:
    settings: Settings
    store: IngestionStore
    fetcher: HttpFetcher
    robots: RobotsPolicy
    rate_limiter: DomainRateLimiter
    web: WebScraper
    ingestor: ArticleIngestor
    feeds: FeedFetcher
    scrapers: ScraperManager
    financial: FinancialDataFetcher

    async def close(self) -> None:
        await self.fetcher.close()
        logger.info("Ingestion context closed")


def build_context(
    settings: Settings,
    session_factory: Optional[sessionmaker] = None,
    http_session: Optional[aiohttp.ClientSession] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    registry: SiteRegistry = site_registry,
) -> IngestionContext:
    """Construct every ingestion component around one store and one HTTP session."""
    if session_factory is None:
        from resmihaber.database.connection import SessionLocal
        session_factory = SessionLocal

    store = IngestionStore(session_factory)
    fetcher = HttpFetcher(settings, session=http_session, sleep=sleep)
    robots = RobotsPolicy(settings, fetcher, clock=clock)
    rate_limiter = DomainRateLimiter(clock=clock, sleep=sleep)
    web = WebScraper(settings, fetcher, robots, rate_limiter, sleep=sleep)
    ingestor = ArticleIngestor(store)

    return IngestionContext(
        settings=settings,
        store=store,
        fetcher=fetcher,
        robots=robots,
        rate_limiter=rate_limiter,
        web=web,
        ingestor=ingestor,
        feeds=FeedFetcher(settings, fetcher, store, ingestor, rate_limiter),
        scrapers=ScraperManager(settings, store, web, ingestor, registry=registry, sleep=sleep),
        financial=FinancialDataFetcher(settings, fetcher, store, clock=clock),
    )
