"""
Per-origin request spacing.

The map lives for the process; a multi-process deployment would have to
move it into a shared store.
"""

import asyncio
import time
from typing import Awaitable, Callable, Dict

from resmihaber.services.logging_service import get_logger

logger = get_logger(__name__)

MIN_INTERVAL_SECONDS = 1.0


class DomainRateLimiter:
    """
    Cooperative per-origin rate limiter.

    Callers are suspended until max(crawl_delay, 1) seconds have passed
    since the previous request to the same origin; nobody is ever rejected.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.clock = clock
        self.sleep = sleep
        self.last_request: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, origin: str) -> asyncio.Lock:
        lock = self._locks.get(origin)
        if lock is None:
            lock = self._locks[origin] = asyncio.Lock()
        return lock

    async def wait(self, origin: str, crawl_delay: float = MIN_INTERVAL_SECONDS) -> float:
        """
        Wait for the origin's slot and claim it.

        Returns:
            Seconds spent waiting
        """
        min_interval = max(crawl_delay or 0, MIN_INTERVAL_SECONDS)
        # Held across the sleep so concurrent callers on one origin queue up
        async with self._lock_for(origin):
            waited = 0.0
            last = self.last_request.get(origin)
            if last is not None:
                elapsed = self.clock() - last
                if elapsed < min_interval:
                    waited = min_interval - elapsed
                    logger.debug("Rate limiting", origin=origin, wait_seconds=round(waited, 3))
                    await self.sleep(waited)
            self.last_request[origin] = self.clock()
            return waited

    def purge_idle(self, max_age_seconds: float) -> int:
        """Forget origins not contacted within max_age_seconds."""
        now = self.clock()
        idle = [origin for origin, ts in self.last_request.items() if now - ts > max_age_seconds]
        for origin in idle:
            del self.last_request[origin]
            lock = self._locks.get(origin)
            if lock is not None and not lock.locked():
                del self._locks[origin]
        return len(idle)

    def clear(self) -> None:
        self.last_request.clear()
        self._locks = {origin: lock for origin, lock in self._locks.items() if lock.locked()}
        logger.info("Rate limiter cache cleared")
