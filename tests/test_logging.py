from datetime import date

import orjson
import structlog

from resmihaber.core.config import Settings
from resmihaber.services.logging_service import ORJSONRenderer, bind_job_context, clear_job_context, setup_logging


def test_orjson_renderer_handles_non_json_values():
    rendered = ORJSONRenderer()(None, "info", {"event": "Fetched", "day": date(2024, 3, 15), "count": 3})

    assert orjson.loads(rendered) == {"event": "Fetched", "day": "2024-03-15", "count": 3}


def test_job_context_is_bound_and_cleared():
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id="req-1")
    bind_job_context("rss", "abc123")
    assert structlog.contextvars.get_contextvars() == {"request_id": "req-1", "job": "rss", "run_id": "abc123"}

    clear_job_context()
    assert structlog.contextvars.get_contextvars() == {"request_id": "req-1"}
    structlog.contextvars.clear_contextvars()


def test_setup_logging_is_repeatable():
    settings = Settings(_env_file=None, LOG_LEVEL="debug")
    assert settings.LOG_LEVEL == "DEBUG"

    setup_logging(settings)
    setup_logging(settings)
    structlog.get_logger("resmihaber.test").info("configured", attempt=2)
