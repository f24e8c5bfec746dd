"""
Scraper manager for orchestrating site scraping runs.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from resmihaber.core.config import Settings
from resmihaber.database.repository import IngestionStore
from resmihaber.models import AcquisitionMode, Source, SourceStatus
from resmihaber.scrapers.base import RunSummary
from resmihaber.scrapers.sites import SiteConfig, SiteRegistry, SiteScraper, site_registry
from resmihaber.scrapers.web import ScrapeResult, WebScraper
from resmihaber.services.ingestor import ArticleCandidate, ArticleIngestor
from resmihaber.services.logging_service import get_logger

logger = get_logger(__name__)


@dataclass
class SourceRun:
    """Results of scraping one source."""
    source: str
    results: List[ScrapeResult] = field(default_factory=list)
    new_articles: int = 0
    error: Optional[str] = None
    # Not attempted; the source status is left alone
    skipped: bool = False

    @property
    def success(self) -> bool:
        if self.error or self.skipped:
            return False
        return any(result.success for result in self.results)


def to_candidate(result: ScrapeResult) -> ArticleCandidate:
    fields = result.fields
    return ArticleCandidate(
        title=fields.title,
        url=fields.url,
        description=fields.description,
        published_at=fields.published_at,
        category=fields.category,
    )


class ScraperManager:
    """
    Runs registered site scrapers for scraping-mode sources and stores
    what they find.
    """

    def __init__(
        self,
        settings: Settings,
        store: IngestionStore,
        scraper: WebScraper,
        ingestor: ArticleIngestor,
        registry: SiteRegistry = site_registry,
        sleep=asyncio.sleep,
    ):
        self.settings = settings
        self.store = store
        self.scraper = scraper
        self.ingestor = ingestor
        self.registry = registry
        self.sleep = sleep

    def site_scraper(self, config: SiteConfig) -> SiteScraper:
        return SiteScraper(
            config,
            self.scraper,
            category_pause=self.settings.SCRAPE_CATEGORY_PAUSE,
            max_articles=self.settings.SCRAPE_MAX_ARTICLES_PER_CATEGORY,
            sleep=self.sleep,
        )

    def scraping_sources(self) -> List[Source]:
        """Scraping-mode sources that have a registered site config."""
        return [
            source for source in self.store.list_sources(AcquisitionMode.SCRAPING)
            if self.registry.get(source.name) is not None
        ]

    async def scrape_source(self, source: Source) -> SourceRun:
        """
        Scrape one source and ingest every successful page.

        The source is marked active when at least one article page was
        scraped, and error otherwise.
        """
        run = SourceRun(source=source.name)
        config = self.registry.get(source.name)
        if config is None:
            run.error = f"No site scraper registered for {source.name}"
            logger.error("No site scraper registered", source=source.name)
            self.store.mark_source_error(source.id, run.error)
            return run

        run.results = await self.site_scraper(config).scrape_all()
        scraped = [result for result in run.results if result.success and result.fields is not None]
        outcome = self.ingestor.ingest(source.id, (to_candidate(result) for result in scraped))
        run.new_articles = outcome.created

        if run.success:
            self.store.mark_source_success(source.id)
        else:
            failed = [result.error for result in run.results if result.error]
            run.error = failed[0] if failed else "No articles scraped"
            self.store.mark_source_error(source.id, run.error)

        logger.info(
            "Source scraped",
            source=source.name,
            results=len(run.results),
            succeeded=len(scraped),
            new_articles=run.new_articles,
        )
        return run

    async def run_sources(self, names: Optional[Iterable[str]] = None) -> Dict[str, SourceRun]:
        """
        Scrape the named sources (default: every scraping source).

        Names are matched case-insensitively; unknown names come back as
        failed runs. Inactive and non-scraping sources come back as skipped
        runs without being fetched or touched. A failing source never stops
        the others.
        """
        if names is None:
            sources = self.scraping_sources()
            wanted = [source.name for source in sources]
        else:
            wanted = list(names)
            sources = self.store.find_sources_by_names(wanted)

        by_name = {source.name.upper(): source for source in sources}
        runs: Dict[str, SourceRun] = {}
        for name in wanted:
            source = by_name.get(name.upper())
            if source is None:
                logger.warning("Unknown scraping source", source=name)
                runs[name] = SourceRun(source=name, error=f"Unknown source: {name}")
                continue
            if source.acquisition_mode != AcquisitionMode.SCRAPING:
                logger.warning("Not a scraping source", source=source.name, mode=source.acquisition_mode)
                runs[name] = SourceRun(source=source.name, skipped=True, error=f"{source.name} is not a scraping source")
                continue
            if source.status == SourceStatus.INACTIVE:
                logger.info("Inactive source skipped", source=source.name)
                runs[name] = SourceRun(source=source.name, skipped=True, error=f"{source.name} is inactive")
                continue
            try:
                runs[name] = await self.scrape_source(source)
            except Exception as e:
                logger.error("Scraping failed", source=source.name, error=str(e))
                self.store.mark_source_error(source.id, str(e) or type(e).__name__)
                runs[name] = SourceRun(source=source.name, error=str(e) or type(e).__name__)
        return runs

    @staticmethod
    def summarize(runs: Dict[str, SourceRun]) -> RunSummary:
        summary = RunSummary()
        for run in runs.values():
            if run.skipped:
                continue
            summary.processed += 1
            summary.new_articles += run.new_articles
            if run.success:
                summary.succeeded += 1
            else:
                summary.failed += 1
                summary.errors.append(f"{run.source}: {run.error}")
        return summary
