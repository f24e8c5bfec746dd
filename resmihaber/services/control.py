"""
Control surface for the ingestion core: manual runs, scheduler status and
financial queries.
"""

from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from resmihaber.core.context import IngestionContext
from resmihaber.scrapers.base import RunSummary
from resmihaber.scrapers.manager import SourceRun
from resmihaber.services.logging_service import get_logger
from resmihaber.services.scheduler import Scheduler

logger = get_logger(__name__)

DEFAULT_SCRAPING_SOURCES = ("SPK", "EPDK")


class IngestionController:
    """Operations exposed to operators, bound to one context and scheduler."""

    def __init__(self, context: IngestionContext, scheduler: Scheduler):
        self.context = context
        self.scheduler = scheduler

    async def _as_job(self, kind: str, runner) -> RunSummary:
        """Run through the scheduler's job of that kind when there is one."""
        if self.scheduler.has_job(kind):
            return await self.scheduler.run_exclusive(kind, runner)
        return await runner()

    async def run_rss_update(self) -> Dict[str, Any]:
        crashed: List[Exception] = []

        async def update() -> RunSummary:
            try:
                return await self.context.feeds.fetch_all()
            except Exception as e:
                crashed.append(e)
                raise

        logger.info("Manual RSS update started")
        try:
            summary = await self._as_job("rss", update)
        except Exception as e:
            crashed.append(e)
        if crashed:
            logger.error("Manual RSS update failed", error=str(crashed[0]))
            return {"success": False, "message": str(crashed[0])}
        if summary.skipped:
            return {"success": False, "message": "RSS update already running", "summary": summary.as_dict()}
        return {
            "success": True,
            "message": (
                f"{summary.succeeded}/{summary.processed} feeds updated, "
                f"{summary.new_articles} new articles"
            ),
            "summary": summary.as_dict(),
        }

    async def run_scraping(self, source_names: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        names = list(source_names or DEFAULT_SCRAPING_SOURCES)
        logger.info("Manual scraping started", sources=names)
        scrapers = self.context.scrapers
        runs: Dict[str, SourceRun] = {}

        for name in names:
            async def scrape(name: str = name) -> RunSummary:
                found = await scrapers.run_sources([name])
                runs.update(found)
                return scrapers.summarize(found)

            summary = await self._as_job(f"scrape:{name.lower()}", scrape)
            if summary.skipped:
                runs[name] = SourceRun(source=name, skipped=True, error=f"Scraping {name} already running")
            elif name not in runs:
                # The job body raised; the scheduler already logged it
                runs[name] = SourceRun(source=name, error="; ".join(summary.errors) or "Scraping failed")

        results = [result.as_dict() for run in runs.values() for result in run.results]
        summary = scrapers.summarize(runs)
        return {
            "success": summary.failed == 0 and not any(run.skipped for run in runs.values()),
            "message": f"{len(results)} results scraped, {summary.new_articles} new articles",
            "results": results,
            "sources": {
                name: {
                    "success": run.success,
                    "skipped": run.skipped,
                    "new_articles": run.new_articles,
                    "error": run.error,
                }
                for name, run in runs.items()
            },
        }

    def scheduler_status(self) -> Dict[str, Any]:
        return self.scheduler.status()

    async def trigger_job(self, kind: str) -> Dict[str, Any]:
        return await self.scheduler.trigger_job(kind)

    async def get_exchange_rates(self, day: Optional[date] = None) -> List[Dict[str, Any]]:
        return [rate.as_dict() for rate in await self.context.financial.get_exchange_rates(day)]

    async def get_gold_prices(self, day: Optional[date] = None) -> List[Dict[str, Any]]:
        return [price.as_dict() for price in await self.context.financial.get_gold_prices(day)]

    def get_historical_rates(self, code: str, days: int = 30) -> List[Dict[str, Any]]:
        return [rate.as_dict() for rate in self.context.financial.get_historical_rates(code, days)]

    async def get_financial_snapshot(self) -> Dict[str, Any]:
        return await self.context.financial.get_latest_snapshot()
