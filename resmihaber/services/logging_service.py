"""
Structured logging service using structlog.
Provides JSON logging for production and pretty printing for development.
"""

import sys
import logging
from typing import Any, Dict, Optional

import structlog
import orjson
from rich.logging import RichHandler

from resmihaber.core.config import Settings, settings as default_settings


class ORJSONRenderer:
    """Custom JSON renderer using orjson for better performance."""

    def __call__(self, logger: Any, method_name: str, event_dict: Dict[str, Any]) -> str:
        """Render log entry as JSON using orjson."""
        return orjson.dumps(event_dict, default=str).decode('utf-8')


def setup_logging(settings: Optional[Settings] = None) -> None:
    """
    Set up structured logging configuration.

    Uses pretty printing in development (when running in a terminal)
    and JSON output in production for log aggregation.
    """
    settings = settings or default_settings
    level = logging.DEBUG if settings.DEBUG else getattr(logging, settings.LOG_LEVEL, logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.CallsiteParameterAdder(
            {
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            }
        ),
        structlog.processors.StackInfoRenderer(),
    ]

    if sys.stderr.isatty() and settings.DEBUG:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(colors=True),
        ]
        logging.basicConfig(
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(rich_tracebacks=True)],
            level=level,
        )
    else:
        processors = shared_processors + [
            structlog.processors.dict_tracebacks,
            structlog.processors.UnicodeDecoder(),
            ORJSONRenderer(),
        ]
        logging.basicConfig(
            format="%(message)s",
            stream=sys.stdout,
            level=level,
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    # aiohttp logs every dropped connection at warning level
    logging.getLogger("aiohttp").setLevel(logging.ERROR)

    logging.getLogger("resmihaber").setLevel(level)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name, defaults to the calling module's name

    Returns:
        A bound logger instance with structured logging capabilities
    """
    if name is None:
        import inspect
        frame = inspect.currentframe()
        if frame and frame.f_back:
            name = frame.f_back.f_globals.get('__name__', 'unknown')
        else:
            name = 'unknown'

    return structlog.get_logger(name)


def bind_job_context(job: str, run_id: str) -> None:
    """
    Bind scheduler job context that will be included in all log entries
    emitted while the job runs.
    """
    structlog.contextvars.bind_contextvars(job=job, run_id=run_id)


def clear_job_context() -> None:
    """Unbind the job context, leaving any other bound variables in place."""
    structlog.contextvars.unbind_contextvars("job", "run_id")
