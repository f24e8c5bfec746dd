"""
Site scrapers for regulator websites.

Each site is pure configuration (list pages per category, link selectors,
an article extraction profile and a category mapping) run by one generic
SiteScraper on top of WebScraper.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup

from resmihaber.core.exceptions import ErrorKind
from resmihaber.scrapers.web import ExtractionProfile, ScrapeResult, WebScraper
from resmihaber.services.logging_service import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SiteConfig:
    """Declarative description of one regulator site."""
    name: str
    base_url: str
    # category key -> list page path
    categories: Dict[str, str]
    # Tried in order; the first selector yielding links is used
    link_selectors: Tuple[str, ...]
    article_profile: ExtractionProfile
    # Substring every detail link must contain, e.g. "/Detay/"
    link_filter: Optional[str] = None
    # category key -> article category; missing keys fall back to keyword categorization
    category_map: Dict[str, str] = field(default_factory=dict)
    default_category: Optional[str] = None
    max_articles_per_category: int = 10

    def list_url(self, category: str) -> str:
        return urljoin(self.base_url, self.categories[category])


class SiteRegistry:
    """Registry of site configurations keyed by source name."""

    def __init__(self):
        self.sites: Dict[str, SiteConfig] = {}

    def register(self, config: SiteConfig) -> SiteConfig:
        self.sites[config.name.upper()] = config
        logger.debug("Registered site", site=config.name)
        return config

    def get(self, name: str) -> Optional[SiteConfig]:
        return self.sites.get(name.upper())

    def names(self) -> List[str]:
        return [config.name for config in self.sites.values()]


# Global registry instance
site_registry = SiteRegistry()


def register_site(config: SiteConfig) -> SiteConfig:
    return site_registry.register(config)


def extract_links(html: Union[str, bytes], config: SiteConfig, page_url: str) -> List[str]:
    """Absolute, same-site, de-duplicated detail links from a list page."""
    soup = BeautifulSoup(html, 'html.parser')
    site_host = urlsplit(config.base_url).netloc.lower()

    for selector in config.link_selectors:
        urls: List[str] = []
        for element in soup.select(selector):
            href = (element.get('href') or '').strip()
            if not href or href.startswith(('#', 'javascript:', 'mailto:')):
                continue
            full_url = urljoin(page_url, href).split('#', 1)[0]
            if urlsplit(full_url).netloc.lower() != site_host:
                continue
            if config.link_filter and config.link_filter not in full_url:
                continue
            if full_url != page_url and full_url not in urls:
                urls.append(full_url)
        if urls:
            return urls
    return []


class SiteScraper:
    """Runs a SiteConfig: list pages, then a capped set of detail pages."""

    def __init__(
        self,
        config: SiteConfig,
        scraper: WebScraper,
        category_pause: float = 2.0,
        max_articles: Optional[int] = None,
        sleep=asyncio.sleep,
    ):
        self.config = config
        self.scraper = scraper
        self.max_articles = max_articles or config.max_articles_per_category
        self.category_pause = category_pause
        self.sleep = sleep

    async def scrape_all(self) -> List[ScrapeResult]:
        results: List[ScrapeResult] = []
        logger.info("Site scraping started", site=self.config.name, categories=len(self.config.categories))

        for index, category in enumerate(self.config.categories):
            try:
                results.extend(await self.scrape_category(category))
            except Exception as e:
                logger.error("Category scraping failed", site=self.config.name, category=category, error=str(e))
            if index < len(self.config.categories) - 1:
                await self.sleep(self.category_pause)

        logger.info(
            "Site scraping finished",
            site=self.config.name,
            results=len(results),
            succeeded=sum(1 for r in results if r.success),
        )
        return results

    async def scrape_category(self, category: str) -> List[ScrapeResult]:
        list_url = self.config.list_url(category)
        page = await self.scraper.fetch_page(list_url)
        if not page.success:
            logger.warning("List page unavailable", site=self.config.name, category=category, error=page.error)
            return [ScrapeResult.failed(list_url, page.error or "List page failed", page.error_kind or ErrorKind.NETWORK)]

        links = extract_links(page.markup, self.config, list_url)
        if not links:
            logger.warning("No article links matched", site=self.config.name, category=category)
            return [ScrapeResult.failed(list_url, "No article links found on list page", ErrorKind.PARSE)]

        limited = links[:self.max_articles]
        logger.info("Articles found", site=self.config.name, category=category, found=len(links), scraping=len(limited))

        results = await self.scraper.scrape_urls(limited, self.config.article_profile)
        article_category = self.config.category_map.get(category, self.config.default_category)
        if article_category:
            for result in results:
                if result.success and result.fields is not None:
                    result.fields.category = article_category
        return results


SPK = register_site(SiteConfig(
    name="SPK",
    base_url="https://www.spk.gov.tr",
    categories={
        "announcements": "/Sayfa/Dosya/1504",
        "press_releases": "/Sayfa/Dosya/1501",
        "regulations": "/Sayfa/Dosya/1502",
        "decisions": "/Sayfa/Dosya/1503",
        "weekly_bulletins": "/Sayfa/Dosya/1505",
    },
    link_selectors=(
        '.item-list .views-row a',
        '.content-list a',
        '.document-list a',
        'table tbody tr td a',
        '.list-group-item a',
    ),
    article_profile=ExtractionProfile(
        title=('.page-title', '.content-title', 'h1.title', '.field-name-title h1', 'h1'),
        description=(
            '.field-name-body .field-item',
            '.content-body',
            '.article-content',
            '.field-type-text-with-summary',
            '.node-content p',
        ),
        published=('.field-name-post-date', '.submitted', '.date-display-single', '.publication-date', 'time'),
        category=(),
        title_noise=r'SPK\s*[-–—]\s*',
    ),
    default_category="financial",
))


EPDK = register_site(SiteConfig(
    name="EPDK",
    base_url="https://www.epdk.gov.tr",
    categories={
        "announcements": "/Detay/Icerik/3-0-23-2/duyurular",
        "press_releases": "/Detay/Icerik/3-0-94/basin-aciklamalari",
        "decisions": "/Detay/Icerik/3-0-24-2/kararlar",
        "regulations": "/Detay/Icerik/3-0-17/mevzuat",
        "electricity": "/Detay/Icerik/3-0-25-3/elektrik",
        "natural_gas": "/Detay/Icerik/3-0-26-4/dogalgaz",
        "petroleum": "/Detay/Icerik/3-0-27-5/petrol",
    },
    link_selectors=(
        '.content-list .list-item a',
        '.news-list .news-item a',
        '.document-list .document-item a',
        'table.table tbody tr td a',
        '.row .col a[href*="/Detay/"]',
        'a[href*="/Detay/Icerik/"]',
    ),
    link_filter="/Detay/",
    article_profile=ExtractionProfile(
        title=('.page-header h1', '.content-header h1', '.detail-title', 'h1.title', '.main-content h1', 'h1'),
        description=(
            '.detail-content',
            '.content-body',
            '.main-content .content',
            '.article-content',
            '.news-content',
            '.page-content p',
        ),
        published=('.detail-date', '.publish-date', '.content-date', '.date-info', 'time', '.created-date'),
        category=(),
        title_noise=r'EPDK\s*[-–—|]\s*',
    ),
    category_map={
        "announcements": "announcement",
        "press_releases": "announcement",
        "decisions": "legal",
        "regulations": "legal",
    },
    default_category="regulation",
))
