"""
HTTP layer shared by every fetcher.

Provides the retrying, size-bounded GET used for HTML pages, RSS feeds,
robots.txt and the TCMB XML feed, plus the result types that carry
failures back to callers instead of raising them.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import aiohttp

from resmihaber.core.config import Settings
from resmihaber.core.exceptions import (
    DataUnavailable,
    ErrorKind,
    IngestionError,
    NetworkError,
    NotFound,
    ParseError,
    PolicyDenied,
)
from resmihaber.services.logging_service import get_logger

logger = get_logger(__name__)

_EXCEPTIONS_BY_KIND = {
    exc.kind: exc for exc in (NetworkError, ParseError, PolicyDenied, NotFound, DataUnavailable)
}

Sleep = Callable[[float], Awaitable[None]]

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml;q=0.9, */*;q=0.5"
XML_ACCEPT = "application/xml, text/xml;q=0.9, */*;q=0.5"


@dataclass
class FetchConfig:
    """Per-call fetch policy."""
    timeout: float = 15.0
    max_retries: int = 3
    retry_delay: float = 2.0
    max_content_length: int = 1024 * 1024
    accept: str = HTML_ACCEPT

    @classmethod
    def from_settings(cls, settings: Settings, timeout: Optional[float] = None, **overrides) -> "FetchConfig":
        values = dict(
            timeout=timeout if timeout is not None else settings.SCRAPE_TIMEOUT,
            max_retries=settings.HTTP_MAX_RETRIES,
            retry_delay=settings.HTTP_RETRY_DELAY,
            max_content_length=settings.HTTP_MAX_CONTENT_LENGTH,
        )
        values.update(overrides)
        return cls(**values)


@dataclass
class FetchResult:
    """Outcome of a fetch; failures are values, never exceptions."""
    url: str
    success: bool
    content: bytes = b""
    status_code: Optional[int] = None
    encoding: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    attempts: int = 0

    @property
    def text(self) -> str:
        return self.content.decode(self.encoding or "utf-8", errors="replace")

    @property
    def markup(self) -> Union[str, bytes]:
        """
        Document for BeautifulSoup. Raw bytes when the server sent no
        charset, so the page's own <meta charset> decides the decoding.
        """
        return self.text if self.encoding else self.content

    def error_kind_exception(self) -> IngestionError:
        """Rebuild the typed exception for callers that propagate failures."""
        exc_class = _EXCEPTIONS_BY_KIND.get(self.error_kind, NetworkError)
        return exc_class(self.error or "Fetch failed", details={'url': self.url, 'status_code': self.status_code})

    @classmethod
    def failure(cls, url: str, exc: IngestionError, attempts: int = 0) -> "FetchResult":
        return cls(
            url=url,
            success=False,
            status_code=exc.details.get("status_code"),
            error=exc.message,
            error_kind=exc.kind,
            attempts=attempts,
        )


class HttpFetcher:
    """
    Retrying GET client over one shared aiohttp session.

    Retries timeouts, connection errors, 429 and 5xx responses with a
    linearly increasing delay (retry_delay * attempt). 404 and other client
    errors fail immediately.
    """

    def __init__(self, settings: Settings, session: Optional[aiohttp.ClientSession] = None, sleep: Sleep = asyncio.sleep):
        self.settings = settings
        self.session = session
        self._owns_session = session is None
        self._sleep = sleep
        self.headers = {
            'User-Agent': settings.user_agent,
            'Accept-Language': 'tr-TR,tr;q=0.9,en;q=0.8',
            'Accept-Encoding': 'gzip, deflate',
            'Cache-Control': 'no-cache',
        }

    async def _get_session(self) -> aiohttp.ClientSession:
        """Initialize HTTP session with proper configuration."""
        if self.session is None or self.session.closed:
            connector = aiohttp.TCPConnector(
                limit=10,
                limit_per_host=self.settings.SCRAPE_CONCURRENCY,
                keepalive_timeout=300,
                enable_cleanup_closed=True,
            )
            self.session = aiohttp.ClientSession(connector=connector, headers=self.headers)
            self._owns_session = True
        return self.session

    async def close(self) -> None:
        """Close HTTP session and cleanup."""
        if self.session is not None and self._owns_session and not self.session.closed:
            await self.session.close()
            # Allow some time for connections to close
            await asyncio.sleep(0.1)
        self.session = None

    async def fetch_with_retry(self, url: str, config: Optional[FetchConfig] = None) -> FetchResult:
        """
        GET a URL with retry logic and error handling.

        Args:
            url: Target URL
            config: Fetch policy; defaults to the scraping policy from settings

        Returns:
            FetchResult with success=False and a descriptive error once the
            retries are exhausted
        """
        config = config or FetchConfig.from_settings(self.settings)
        attempts = max(1, config.max_retries)
        attempt = 0

        while True:
            attempt += 1
            try:
                logger.debug("HTTP request", url=url, attempt=attempt, max_retries=attempts)
                return await self._fetch_once(url, config, attempt)
            except (NotFound, ParseError) as e:
                logger.warning("HTTP request failed permanently", url=url, error=e.message)
                return FetchResult.failure(url, e, attempt)
            except NetworkError as e:
                if not e.details.get("retryable", True):
                    logger.warning("HTTP request failed permanently", url=url, error=e.message)
                    return FetchResult.failure(url, e, attempt)
                logger.warning("HTTP request failed", url=url, attempt=attempt, error=e.message)
                if attempt >= attempts:
                    e.message = f"Request failed after {attempts} attempts: {e.message}"
                    return FetchResult.failure(url, e, attempts)
                await self._sleep(config.retry_delay * attempt)

    async def _fetch_once(self, url: str, config: FetchConfig, attempt: int) -> FetchResult:
        session = await self._get_session()
        headers = dict(self.headers)
        headers['Accept'] = config.accept
        timeout = aiohttp.ClientTimeout(total=config.timeout)

        try:
            async with session.get(url, headers=headers, timeout=timeout, allow_redirects=True, max_redirects=5) as response:
                status = response.status
                if status in (404, 410):
                    raise NotFound(f"HTTP {status}", details={'status_code': status, 'url': url})
                if status == 429 or status >= 500:
                    raise NetworkError(f"HTTP {status}", details={'status_code': status, 'url': url})
                if status >= 400:
                    raise NetworkError(
                        f"HTTP {status}",
                        details={'status_code': status, 'url': url, 'retryable': False},
                    )

                declared = response.content_length
                if declared is not None and declared > config.max_content_length:
                    raise ParseError(
                        f"Response too large: {declared} bytes",
                        details={'status_code': status, 'url': url},
                    )

                chunks = []
                size = 0
                async for chunk in response.content.iter_chunked(64 * 1024):
                    size += len(chunk)
                    if size > config.max_content_length:
                        raise ParseError(
                            f"Response exceeded {config.max_content_length} bytes",
                            details={'status_code': status, 'url': url},
                        )
                    chunks.append(chunk)

                return FetchResult(
                    url=url,
                    success=True,
                    content=b"".join(chunks),
                    status_code=status,
                    encoding=response.charset,
                    attempts=attempt,
                )
        except asyncio.TimeoutError:
            raise NetworkError(f"Timed out after {config.timeout}s", details={'url': url})
        except aiohttp.ClientError as e:
            raise NetworkError(f"{type(e).__name__}: {e}", details={'url': url})


@dataclass
class RunSummary:
    """Aggregate counts reported by batch operations and scheduler jobs."""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    new_articles: int = 0
    errors: list = field(default_factory=list)
    skipped: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "new_articles": self.new_articles,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }
