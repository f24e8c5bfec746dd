"""
In-process job scheduler.

Jobs are plain records (kind, cadence, runner) polled by one asyncio timer
loop. A job kind never runs twice at the same time: a due tick or a manual
trigger that finds it running is skipped, not queued. Errors are caught at
the job boundary so one failing job never stops the loop.
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from resmihaber.core.context import IngestionContext
from resmihaber.core.exceptions import NotFound
from resmihaber.scrapers.base import RunSummary
from resmihaber.services.logging_service import bind_job_context, clear_job_context, get_logger

logger = get_logger(__name__)

JobRunner = Callable[[], Awaitable[RunSummary]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    kind: str
    cadence: timedelta
    run: JobRunner
    next_run: Optional[datetime] = None
    last_run: Optional[datetime] = None
    running: bool = False
    last_result: Optional[Dict[str, Any]] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "cadence_seconds": int(self.cadence.total_seconds()),
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "running": self.running,
            "last_result": self.last_result,
        }


class Scheduler:
    """
    Timer loop over a fixed job list.

    Args:
        jobs: Initial jobs, keyed by kind
        tick_seconds: Longest sleep between two due-checks
        warmup_seconds: Delay before the first run of ``warmup_kind``
        warmup_kind: Job run shortly after start instead of one cadence later
    """

    def __init__(
        self,
        jobs: Iterable[Job] = (),
        tick_seconds: float = 30.0,
        warmup_seconds: float = 5.0,
        warmup_kind: Optional[str] = "rss",
        now: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.jobs: Dict[str, Job] = {}
        self.tick_seconds = tick_seconds
        self.warmup_seconds = warmup_seconds
        self.warmup_kind = warmup_kind
        self.now = now
        self.sleep = sleep
        self._loop_task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        for job in jobs:
            self.add_job(job)

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def add_job(self, job: Job) -> Job:
        self.jobs[job.kind] = job
        return job

    def start(self) -> None:
        """Start the timer loop; needs a running event loop."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        now = self.now()
        for job in self.jobs.values():
            if job.kind == self.warmup_kind:
                job.next_run = now + timedelta(seconds=self.warmup_seconds)
            elif job.next_run is None:
                job.next_run = now + job.cadence

        self._loop_task = asyncio.get_running_loop().create_task(self._loop())
        logger.info("Scheduler started", jobs=len(self.jobs), tick_seconds=self.tick_seconds)

    async def stop(self) -> None:
        """Cancel the loop and wait for jobs already in flight."""
        if self._loop_task is None:
            logger.warning("Scheduler already stopped")
            return

        self._loop_task.cancel()
        try:
            await self._loop_task
        except asyncio.CancelledError:
            pass
        self._loop_task = None

        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        logger.info("Scheduler stopped")

    def _seconds_until_due(self) -> float:
        pending = [job.next_run for job in self.jobs.values() if job.next_run is not None and not job.running]
        if not pending:
            return self.tick_seconds
        remaining = (min(pending) - self.now()).total_seconds()
        return max(0.0, min(self.tick_seconds, remaining))

    async def _loop(self) -> None:
        while True:
            try:
                self._tick()
            except Exception as e:
                logger.error("Scheduler tick failed", error=str(e))
            await self.sleep(self._seconds_until_due())

    def _tick(self) -> List[str]:
        """Launch every due job; returns the kinds launched."""
        now = self.now()
        launched = []
        for job in self.jobs.values():
            if job.next_run is None or job.next_run > now:
                continue
            if job.running:
                logger.warning("Previous run still active, skipping tick", job=job.kind)
                job.next_run = now + job.cadence
                continue
            job.next_run = now + job.cadence
            task = asyncio.get_running_loop().create_task(self._execute(job))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            launched.append(job.kind)
        return launched

    async def _execute(self, job: Job, runner: Optional[JobRunner] = None) -> RunSummary:
        if job.running:
            logger.warning("Job already running, trigger skipped", job=job.kind)
            return RunSummary(skipped=True)

        job.running = True
        bind_job_context(job.kind, uuid.uuid4().hex[:12])
        logger.info("Job started")
        try:
            summary = await (runner or job.run)()
        except Exception as e:
            logger.exception("Job failed", error=str(e))
            summary = RunSummary(processed=1, failed=1, errors=[str(e) or type(e).__name__])
            job.last_result = summary.as_dict()
        else:
            job.last_result = summary.as_dict()
            logger.info(
                "Job finished",
                processed=summary.processed,
                succeeded=summary.succeeded,
                failed=summary.failed,
            )
        finally:
            finished = self.now()
            job.running = False
            job.last_run = finished
            job.next_run = finished + job.cadence
            clear_job_context()
        return summary

    async def trigger_job(self, kind: str) -> Dict[str, Any]:
        """
        Run a job now and wait for it.

        Raises:
            NotFound: no job of that kind
        """
        job = self.jobs.get(kind)
        if job is None:
            raise NotFound(f"Unknown job: {kind}", details={'kind': kind})
        return (await self._execute(job)).as_dict()

    def has_job(self, kind: str) -> bool:
        return kind in self.jobs

    async def run_exclusive(self, kind: str, runner: JobRunner) -> RunSummary:
        """
        Run ``runner`` as the job ``kind``: same one-at-a-time guard, same
        last_run/next_run bookkeeping. Returns a skipped summary while the
        job is already running.

        Raises:
            NotFound: no job of that kind
        """
        job = self.jobs.get(kind)
        if job is None:
            raise NotFound(f"Unknown job: {kind}", details={'kind': kind})
        return await self._execute(job, runner)

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "jobs": [job.as_dict() for job in self.jobs.values()],
        }


def build_default_jobs(context: IngestionContext) -> List[Job]:
    """RSS refresh, one scraping job per scraping source, cleanup, maintenance and financial refresh."""
    settings = context.settings

    async def run_rss() -> RunSummary:
        return await context.feeds.fetch_all()

    def scrape_runner(name: str) -> JobRunner:
        async def run_scrape() -> RunSummary:
            runs = await context.scrapers.run_sources([name])
            return context.scrapers.summarize(runs)
        return run_scrape

    async def run_cleanup() -> RunSummary:
        deleted = context.store.delete_articles_older_than(settings.ARTICLE_RETENTION_DAYS)
        logger.info("Old articles deleted", deleted=deleted, retention_days=settings.ARTICLE_RETENTION_DAYS)
        return RunSummary(processed=deleted, succeeded=deleted)

    async def run_maintenance() -> RunSummary:
        robots = context.robots.purge_expired()
        limiter = context.rate_limiter.purge_idle(settings.MAINTENANCE_INTERVAL_HOURS * 3600)
        logger.info("Caches purged", robots_entries=robots, rate_limiter_entries=limiter)
        return RunSummary(processed=robots + limiter, succeeded=robots + limiter)

    async def run_financial() -> RunSummary:
        summary = RunSummary()
        for label, call in (("exchange_rates", context.financial.get_exchange_rates),
                            ("gold_prices", context.financial.get_gold_prices)):
            summary.processed += 1
            try:
                await call()
                summary.succeeded += 1
            except Exception as e:
                summary.failed += 1
                summary.errors.append(f"{label}: {getattr(e, 'message', None) or e}")
                logger.warning("Financial refresh failed", part=label, error=str(e))
        return summary

    jobs = [Job("rss", timedelta(minutes=settings.RSS_INTERVAL_MINUTES), run_rss)]
    for source in context.scrapers.scraping_sources():
        jobs.append(Job(
            f"scrape:{source.name.lower()}",
            timedelta(minutes=source.fetch_interval_minutes),
            scrape_runner(source.name),
        ))
    jobs.extend([
        Job("cleanup", timedelta(hours=settings.CLEANUP_INTERVAL_HOURS), run_cleanup),
        Job("maintenance", timedelta(hours=settings.MAINTENANCE_INTERVAL_HOURS), run_maintenance),
        Job("financial", timedelta(minutes=settings.FINANCIAL_INTERVAL_MINUTES), run_financial),
    ])
    return jobs


def build_scheduler(context: IngestionContext) -> Scheduler:
    settings = context.settings
    return Scheduler(
        build_default_jobs(context),
        tick_seconds=settings.SCHEDULER_TICK_SECONDS,
        warmup_seconds=settings.SCHEDULER_WARMUP_SECONDS,
    )
