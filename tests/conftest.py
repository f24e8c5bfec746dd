import asyncio
from typing import Dict, List, Optional

import pytest

from resmihaber.core.config import Settings
from resmihaber.core.context import build_context
from resmihaber.database.connection import build_engine, build_session_factory, create_db_and_tables_sync
from resmihaber.database.repository import IngestionStore
from resmihaber.models import AcquisitionMode


class FakeContent:
    def __init__(self, body: bytes):
        self.body = body

    async def iter_chunked(self, size: int):
        for start in range(0, len(self.body), size):
            yield self.body[start:start + size]


class FakeResponse:
    def __init__(self, status: int = 200, body=b"", charset: Optional[str] = "utf-8", content_length=None):
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.status = status
        self.body = body
        self.charset = charset
        self.content_length = content_length
        self.content = FakeContent(body)


class _RequestContext:
    def __init__(self, outcome):
        self.outcome = outcome

    async def __aenter__(self):
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """
    Stand-in for aiohttp.ClientSession.

    A route maps a URL to a FakeResponse, an exception instance, or a list
    of those consumed one per request. Unknown URLs answer 404.
    """

    def __init__(self, routes: Optional[Dict[str, object]] = None):
        self.routes: Dict[str, object] = dict(routes or {})
        self.requests: List[str] = []
        self.closed = False

    def add(self, url: str, outcome) -> None:
        self.routes[url] = outcome

    def get(self, url, **kwargs):
        self.requests.append(url)
        outcome = self.routes.get(url, FakeResponse(status=404))
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        return _RequestContext(outcome)

    def count(self, url: str) -> int:
        return self.requests.count(url)

    async def close(self):
        self.closed = True


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        DEBUG=False,
        SCHEDULER_ENABLED=False,
        SEED_DEFAULT_SOURCES=False,
        CONTROL_API_KEY=None,
    )


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    create_db_and_tables_sync(bind=engine)
    return build_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return IngestionStore(session_factory)


@pytest.fixture
def http():
    return FakeSession()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def context(settings, session_factory, http, clock):
    return build_context(settings, session_factory=session_factory, http_session=http, clock=clock, sleep=clock.sleep)


def add_rss_source(store, name, feed_url, **extra):
    values = {
        "name": name,
        "origin_url": feed_url.rsplit("/", 1)[0],
        "feed_url": feed_url,
        "acquisition_mode": AcquisitionMode.RSS,
    }
    values.update(extra)
    store.ensure_sources([values])
    return store.find_sources_by_names([name])[0]


def add_scraping_source(store, name, origin_url, **extra):
    values = {"name": name, "origin_url": origin_url, "acquisition_mode": AcquisitionMode.SCRAPING}
    values.update(extra)
    store.ensure_sources([values])
    return store.find_sources_by_names([name])[0]
