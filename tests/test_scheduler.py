import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import structlog
from conftest import add_rss_source, add_scraping_source, run

from resmihaber.core.exceptions import NotFound
from resmihaber.scrapers.base import RunSummary
from resmihaber.services.ingestor import fingerprint
from resmihaber.services.scheduler import Job, Scheduler, build_default_jobs, build_scheduler

T0 = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


class FakeNow:
    def __init__(self, value=T0):
        self.value = value

    def __call__(self):
        return self.value


def ok_job(kind="rss", calls=None):
    async def runner():
        if calls is not None:
            calls.append(kind)
        return RunSummary(processed=2, succeeded=2)
    return Job(kind, timedelta(minutes=30), runner)


def test_trigger_returns_counts_and_updates_status():
    now = FakeNow()
    scheduler = Scheduler([ok_job()], now=now)

    result = run(scheduler.trigger_job("rss"))

    assert (result["processed"], result["succeeded"], result["failed"]) == (2, 2, 0)
    status = scheduler.status()
    assert status["running"] is False
    job = status["jobs"][0]
    assert job["kind"] == "rss"
    assert job["last_run"] == T0.isoformat()
    assert job["next_run"] == (T0 + timedelta(minutes=30)).isoformat()
    assert job["running"] is False


def test_unknown_job_kind():
    with pytest.raises(NotFound):
        run(Scheduler([ok_job()]).trigger_job("nope"))


def test_trigger_while_running_is_skipped():
    async def scenario():
        gate = asyncio.Event()
        calls = []

        async def slow():
            calls.append("slow")
            await gate.wait()
            return RunSummary(processed=1, succeeded=1)

        scheduler = Scheduler([Job("slow", timedelta(minutes=5), slow)])
        first = asyncio.ensure_future(scheduler.trigger_job("slow"))
        await asyncio.sleep(0)
        second = await scheduler.trigger_job("slow")
        gate.set()
        return await first, second, calls

    first, second, calls = run(scenario())

    assert calls == ["slow"]
    assert second["skipped"] is True
    assert (second["processed"], second["succeeded"], second["failed"]) == (0, 0, 0)
    assert first["succeeded"] == 1


def test_failing_job_is_contained():
    async def boom():
        raise RuntimeError("site down")

    scheduler = Scheduler([Job("boom", timedelta(minutes=5), boom), ok_job()])

    async def scenario():
        failed = await scheduler.trigger_job("boom")
        healthy = await scheduler.trigger_job("rss")
        return failed, healthy

    failed, healthy = run(scenario())

    assert failed["failed"] == 1
    assert failed["errors"] == ["site down"]
    assert healthy["succeeded"] == 2
    assert scheduler.jobs["boom"].running is False


def test_tick_skips_a_job_still_running():
    now = FakeNow()

    async def scenario():
        gate = asyncio.Event()
        calls = []

        async def slow():
            calls.append("slow")
            await gate.wait()
            return RunSummary()

        scheduler = Scheduler([Job("slow", timedelta(minutes=5), slow, next_run=T0)], now=now)
        launched_first = scheduler._tick()
        await asyncio.sleep(0)
        now.value = T0 + timedelta(minutes=10)
        launched_second = scheduler._tick()
        gate.set()
        await asyncio.gather(*scheduler._inflight)
        return launched_first, launched_second, calls

    launched_first, launched_second, calls = run(scenario())

    assert launched_first == ["slow"]
    assert launched_second == []
    assert calls == ["slow"]


def test_start_runs_warmup_and_stop_waits():
    calls = []

    async def scenario():
        scheduler = Scheduler(
            [ok_job("rss", calls), ok_job("cleanup", calls)],
            tick_seconds=0.01,
            warmup_seconds=0,
        )
        scheduler.start()
        scheduler.start()
        assert scheduler.running is True
        for _ in range(50):
            if calls:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()
        return scheduler

    scheduler = run(scenario())

    assert calls == ["rss"]
    assert scheduler.running is False
    assert scheduler.jobs["rss"].last_run is not None
    assert scheduler.jobs["cleanup"].last_run is None


def test_default_jobs(context, store):
    add_scraping_source(store, "SPK", "https://www.spk.gov.tr", fetch_interval_minutes=120)
    add_scraping_source(store, "TUBITAK", "https://www.tubitak.gov.tr")

    jobs = {job.kind: job for job in build_default_jobs(context)}

    assert set(jobs) == {"rss", "scrape:spk", "cleanup", "maintenance", "financial"}
    assert jobs["rss"].cadence == timedelta(minutes=30)
    assert jobs["scrape:spk"].cadence == timedelta(minutes=120)
    assert jobs["cleanup"].cadence == timedelta(hours=24)


def test_cleanup_job_deletes_expired_articles(context, store):
    source = add_rss_source(store, "Resmi Gazete", "https://www.resmigazete.gov.tr/rss.aspx")
    now = datetime.now(timezone.utc)
    for title, age in (("eski", 120), ("yeni", 10)):
        url = f"https://www.resmigazete.gov.tr/{title}"
        store.insert_article({
            "source_id": source.id,
            "title": title,
            "url": url,
            "fingerprint": fingerprint(title, url),
            "category": "other",
            "fetched_at": now - timedelta(days=age),
        })
    scheduler = build_scheduler(context)

    result = run(scheduler.trigger_job("cleanup"))

    assert result["processed"] == 1
    assert store.count_articles() == 1


def test_maintenance_job_purges_caches(context, clock):
    async def scenario():
        await context.rate_limiter.wait("https://a.gov.tr")
        await context.robots.rules_for("https://a.gov.tr")
        clock.now += 48 * 3600
        return await build_scheduler(context).trigger_job("maintenance")

    result = run(scenario())

    assert result["processed"] == 2
    assert context.robots.cached_origins() == []
    assert context.rate_limiter.last_request == {}


def test_trigger_keeps_caller_log_context():
    async def scenario():
        structlog.contextvars.bind_contextvars(request_id="req-9")
        await Scheduler([ok_job()]).trigger_job("rss")
        return structlog.contextvars.get_contextvars()

    assert run(scenario()) == {"request_id": "req-9"}
