"""
robots.txt policy engine.

Fetches and parses a site's robots.txt once per origin, caches the rule set
for a fixed TTL and answers allow/deny and crawl-delay questions for our
user agent.
"""

import asyncio
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
from urllib.parse import urlsplit

from resmihaber.core.config import Settings
from resmihaber.scrapers.base import FetchConfig, HttpFetcher
from resmihaber.services.logging_service import get_logger

logger = get_logger(__name__)


def origin_of(url: str) -> str:
    """scheme://host[:port] of a URL, lowercased."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"Not an absolute URL: {url!r}")
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


def path_of(url: str) -> str:
    parts = urlsplit(url)
    path = parts.path or "/"
    if parts.query:
        path = f"{path}?{parts.query}"
    return path


@dataclass
class RuleGroup:
    """Rules declared under one or more consecutive User-agent lines."""
    user_agents: List[str] = field(default_factory=list)
    allow: List[str] = field(default_factory=list)
    disallow: List[str] = field(default_factory=list)
    crawl_delay: Optional[float] = None


def _pattern_matches(pattern: str, path: str) -> bool:
    """Prefix match with '*' wildcards and an optional trailing '$' anchor."""
    anchored = pattern.endswith("$")
    if anchored:
        pattern = pattern[:-1]
    regex = ".*".join(re.escape(part) for part in pattern.split("*"))
    regex = "^" + regex + ("$" if anchored else "")
    return re.match(regex, path) is not None


@dataclass
class RobotsRules:
    """Parsed robots.txt for one origin."""
    groups: List[RuleGroup] = field(default_factory=list)
    sitemaps: List[str] = field(default_factory=list)
    default_crawl_delay: float = 1.0
    fallback: bool = False

    @classmethod
    def permissive(cls, crawl_delay: float) -> "RobotsRules":
        """Policy used when robots.txt is unreachable or absent."""
        return cls(groups=[RuleGroup(user_agents=["*"], crawl_delay=crawl_delay)], default_crawl_delay=crawl_delay, fallback=True)

    @classmethod
    def parse(cls, content: str, default_crawl_delay: float = 1.0) -> "RobotsRules":
        groups: List[RuleGroup] = []
        sitemaps: List[str] = []
        current: Optional[RuleGroup] = None
        # Consecutive User-agent lines open one shared group
        collecting_agents = False

        for raw_line in content.splitlines():
            line = raw_line.split("#", 1)[0].strip()
            if not line or ":" not in line:
                continue
            directive, value = line.split(":", 1)
            directive = directive.strip().lower()
            value = value.strip()

            if directive == "user-agent":
                if current is None or not collecting_agents:
                    current = RuleGroup()
                    groups.append(current)
                current.user_agents.append(value)
                collecting_agents = True
                continue

            if directive == "sitemap":
                if value:
                    sitemaps.append(value)
                continue

            collecting_agents = False
            if current is None:
                continue
            if directive == "disallow":
                if value:
                    current.disallow.append(value)
            elif directive == "allow":
                if value:
                    current.allow.append(value)
            elif directive == "crawl-delay":
                try:
                    current.crawl_delay = float(value)
                except ValueError:
                    logger.debug("Ignoring invalid crawl-delay", value=value)

        return cls(groups=groups, sitemaps=sitemaps, default_crawl_delay=default_crawl_delay)

    def group_for(self, user_agent: str) -> Optional[RuleGroup]:
        """
        Most specific group for a user agent: exact product-token match,
        then a group whose name is part of the product token, then '*'.
        """
        token = user_agent.split("/")[0].split()[0].strip().lower() if user_agent.strip() else ""
        wildcard = None
        partial = None
        for group in self.groups:
            for name in group.user_agents:
                name = name.lower()
                if name == "*":
                    wildcard = wildcard or group
                elif name == token:
                    return group
                elif partial is None and token and name in token:
                    partial = group
        return partial or wildcard

    def is_allowed(self, user_agent: str, path: str) -> bool:
        group = self.group_for(user_agent)
        if group is None:
            return True
        if not path.startswith("/"):
            path = "/" + path
        if any(_pattern_matches(pattern, path) for pattern in group.allow):
            return True
        if any(_pattern_matches(pattern, path) for pattern in group.disallow):
            return False
        return True

    def crawl_delay(self, user_agent: str) -> float:
        group = self.group_for(user_agent)
        if group is not None and group.crawl_delay is not None:
            return group.crawl_delay
        return self.default_crawl_delay


@dataclass
class RobotsCacheEntry:
    origin: str
    rules: RobotsRules
    expires_at: float


@dataclass
class CrawlDecision:
    allowed: bool
    crawl_delay: float
    reason: Optional[str] = None


class RobotsPolicy:
    """Per-origin robots.txt cache with a fixed TTL."""

    def __init__(self, settings: Settings, fetcher: HttpFetcher, clock: Callable[[], float] = time.monotonic):
        self.settings = settings
        self.fetcher = fetcher
        self.clock = clock
        self.ttl = settings.ROBOTS_CACHE_TTL_HOURS * 3600
        self.user_agent = settings.user_agent
        self._cache: Dict[str, RobotsCacheEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _cached(self, origin: str) -> Optional[RobotsRules]:
        entry = self._cache.get(origin)
        if entry is not None and entry.expires_at > self.clock():
            return entry.rules
        return None

    async def rules_for(self, origin: str) -> RobotsRules:
        rules = self._cached(origin)
        if rules is not None:
            return rules

        # One fetch per origin even when several pages ask at once
        lock = self._locks.setdefault(origin, asyncio.Lock())
        async with lock:
            rules = self._cached(origin)
            if rules is None:
                rules = await self._fetch_rules(origin)
                self._cache[origin] = RobotsCacheEntry(origin=origin, rules=rules, expires_at=self.clock() + self.ttl)
        return rules

    async def _fetch_rules(self, origin: str) -> RobotsRules:
        robots_url = f"{origin}/robots.txt"
        config = FetchConfig.from_settings(
            self.settings,
            timeout=self.settings.ROBOTS_TIMEOUT,
            max_retries=1,
            accept="text/plain, */*;q=0.5",
        )
        result = await self.fetcher.fetch_with_retry(robots_url, config)
        if not result.success:
            logger.warning("robots.txt unavailable, using fallback policy", url=robots_url, error=result.error)
            return RobotsRules.permissive(self.settings.ROBOTS_FALLBACK_CRAWL_DELAY)

        rules = RobotsRules.parse(result.text, default_crawl_delay=self.settings.ROBOTS_DEFAULT_CRAWL_DELAY)
        logger.info("robots.txt parsed", url=robots_url, groups=len(rules.groups), sitemaps=len(rules.sitemaps))
        return rules

    async def is_allowed(self, url: str, user_agent: Optional[str] = None) -> bool:
        rules = await self.rules_for(origin_of(url))
        return rules.is_allowed(user_agent or self.user_agent, path_of(url))

    async def can_crawl(self, url: str, user_agent: Optional[str] = None) -> CrawlDecision:
        user_agent = user_agent or self.user_agent
        rules = await self.rules_for(origin_of(url))
        allowed = rules.is_allowed(user_agent, path_of(url))
        return CrawlDecision(
            allowed=allowed,
            crawl_delay=rules.crawl_delay(user_agent),
            reason=None if allowed else "Disallowed by robots.txt",
        )

    async def sitemaps(self, origin: str) -> List[str]:
        rules = await self.rules_for(origin)
        return list(rules.sitemaps)

    def cached_origins(self) -> List[str]:
        return list(self._cache)

    def purge_expired(self) -> int:
        now = self.clock()
        expired = [origin for origin, entry in self._cache.items() if entry.expires_at <= now]
        for origin in expired:
            del self._cache[origin]
            lock = self._locks.get(origin)
            if lock is not None and not lock.locked():
                del self._locks[origin]
        return len(expired)

    def clear(self) -> None:
        self._cache.clear()
        logger.info("robots.txt cache cleared")
