import asyncio

import pytest
from conftest import FakeResponse, add_rss_source, add_scraping_source, run
from fastapi import FastAPI
from fastapi.testclient import TestClient

from resmihaber.core import config
from resmihaber.routers import ingestion
from resmihaber.scrapers.base import RunSummary
from resmihaber.scrapers.manager import SourceRun
from resmihaber.services.control import IngestionController
from resmihaber.services.scheduler import build_scheduler

FEED = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>T</title>
<item><title>Duyuru</title><link>https://www.tcmb.gov.tr/d/1</link></item>
</channel></rss>
"""


@pytest.fixture
def controller(context):
    return IngestionController(context, build_scheduler(context))


@pytest.fixture
def client(controller):
    app = FastAPI()
    app.include_router(ingestion.router)
    app.state.controller = controller
    return TestClient(app)


def test_run_rss_update_reports_success(controller, store, http):
    add_rss_source(store, "TCMB", "https://www.tcmb.gov.tr/rss/duyuru.xml")
    http.add("https://www.tcmb.gov.tr/rss/duyuru.xml", FakeResponse(body=FEED))

    result = run(controller.run_rss_update())

    assert result["success"] is True
    assert result["summary"]["new_articles"] == 1
    assert "1 new articles" in result["message"]


def test_run_scraping_with_unknown_sources(controller):
    result = run(controller.run_scraping(["YOK"]))

    assert result["success"] is False
    assert result["results"] == []
    assert result["sources"]["YOK"]["error"] == "Unknown source: YOK"


def test_scheduler_status_route(client):
    response = client.get("/api/v1/ingestion/scheduler")

    assert response.status_code == 200
    body = response.json()
    assert body["running"] is False
    assert {"rss", "cleanup", "maintenance", "financial"} <= {job["kind"] for job in body["jobs"]}


def test_trigger_job_route(client):
    assert client.post("/api/v1/ingestion/jobs/nope").status_code == 404

    response = client.post("/api/v1/ingestion/jobs/rss")
    assert response.status_code == 200
    assert response.json()["processed"] == 0


def test_financial_routes(client, http):
    http.add("https://www.tcmb.gov.tr/kurlar/202403/15032024.xml", FakeResponse(status=503))

    response = client.get("/api/v1/ingestion/financial/rates", params={"date": "2024-03-15"})
    assert response.status_code == 503

    history = client.get("/api/v1/ingestion/financial/history/USD", params={"days": 7})
    assert history.status_code == 200
    assert history.json() == []


def test_scrape_route_uses_requested_sources(client):
    response = client.post("/api/v1/ingestion/scrape", json={"sources": ["YOK"]})

    assert response.status_code == 200
    assert response.json()["success"] is False


def test_control_routes_require_key_when_configured(client, monkeypatch):
    monkeypatch.setattr(config.settings, "CONTROL_API_KEY", "gizli")

    assert client.post("/api/v1/ingestion/rss").status_code == 401
    assert client.post("/api/v1/ingestion/rss", headers={"X-API-Key": "yanlis"}).status_code == 401
    allowed = client.post("/api/v1/ingestion/rss", headers={"X-API-Key": "gizli"})
    assert allowed.status_code == 200
    assert allowed.json()["success"] is True
    # Read-only routes stay open
    assert client.get("/api/v1/ingestion/scheduler").status_code == 200


def test_routes_without_running_ingestion():
    app = FastAPI()
    app.include_router(ingestion.router)
    response = TestClient(app).get("/api/v1/ingestion/scheduler")
    assert response.status_code == 503


def test_health_endpoint():
    from resmihaber.main import app

    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_manual_rss_update_is_skipped_while_scheduled_run_is_active(context):
    async def scenario():
        gate = asyncio.Event()
        active = []
        peak = []

        async def slow_fetch_all():
            active.append(1)
            peak.append(len(active))
            await gate.wait()
            active.pop()
            return RunSummary(processed=1, succeeded=1)

        context.feeds.fetch_all = slow_fetch_all
        scheduler = build_scheduler(context)
        controller = IngestionController(context, scheduler)
        scheduled = asyncio.ensure_future(scheduler.trigger_job("rss"))
        await asyncio.sleep(0)
        manual = await controller.run_rss_update()
        gate.set()
        return await scheduled, manual, max(peak)

    scheduled, manual, peak = run(scenario())

    assert peak == 1
    assert scheduled["succeeded"] == 1
    assert manual["success"] is False
    assert manual["summary"]["skipped"] is True


def test_manual_scrape_is_skipped_while_source_job_runs(context, store):
    add_scraping_source(store, "SPK", "https://www.spk.gov.tr", fetch_interval_minutes=120)

    async def scenario():
        gate = asyncio.Event()
        calls = []

        async def slow_run_sources(names=None):
            calls.append(list(names))
            await gate.wait()
            return {name: SourceRun(source=name) for name in names}

        context.scrapers.run_sources = slow_run_sources
        scheduler = build_scheduler(context)
        controller = IngestionController(context, scheduler)
        scheduled = asyncio.ensure_future(scheduler.trigger_job("scrape:spk"))
        await asyncio.sleep(0)
        manual = await controller.run_scraping(["SPK"])
        gate.set()
        await scheduled
        return manual, calls

    manual, calls = run(scenario())

    assert calls == [["SPK"]]
    assert manual["success"] is False
    assert manual["sources"]["SPK"]["skipped"] is True
