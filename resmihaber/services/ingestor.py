"""
Deduplicating article ingestion.

Articles are keyed by sha256(title + "|" + url); ingesting the same item
twice is a no-op, which makes every feed and scrape run idempotent.
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from resmihaber.database.repository import IngestionStore
from resmihaber.scrapers.dates import turkish_lower
from resmihaber.services.logging_service import get_logger

logger = get_logger(__name__)

CATEGORIES = ("announcement", "regulation", "financial", "technology", "legal", "other")

# Checked in order; the first category with a matching keyword wins
CATEGORY_KEYWORDS = (
    ("announcement", ("duyuru", "announcement")),
    ("regulation", ("kanun", "yönetmelik", "tebliğ", "genelge")),
    ("financial", ("faiz", "kur", "ekonomi", "finansal")),
    ("technology", ("teknoloji", "ar-ge", "inovasyon")),
    ("legal", ("hukuk", "mevzuat", "yasal")),
)


def fingerprint(title: str, url: str) -> str:
    return hashlib.sha256(f"{title}|{url}".encode("utf-8")).hexdigest()


def categorize_article(title: str, description: Optional[str] = None) -> str:
    text = turkish_lower(f"{title} {description or ''}")
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return category
    return "other"


@dataclass
class ArticleCandidate:
    """Normalized item from a feed or a scraped page, before persistence."""
    title: str
    url: str
    description: Optional[str] = None
    content: Optional[str] = None
    published_at: Optional[datetime] = None
    author: Optional[str] = None
    guid: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class IngestResult:
    processed: int = 0
    created: int = 0
    duplicates: int = 0
    failed: int = 0


class ArticleIngestor:
    """Persists new articles and silently skips known fingerprints."""

    def __init__(self, store: IngestionStore):
        self.store = store

    def ingest(self, source_id: int, candidates: Iterable[ArticleCandidate]) -> IngestResult:
        result = IngestResult()
        for candidate in candidates:
            result.processed += 1
            title = (candidate.title or "").strip()
            url = (candidate.url or "").strip()
            if not title or not url:
                result.failed += 1
                logger.debug("Skipping item without title or url", source_id=source_id)
                continue

            key = fingerprint(title, url)
            if self.store.article_exists(key):
                result.duplicates += 1
                continue

            category = candidate.category if candidate.category in CATEGORIES else categorize_article(title, candidate.description)
            values = {
                "source_id": source_id,
                "title": title,
                "description": (candidate.description or "").strip() or None,
                "content": (candidate.content or "").strip() or None,
                "url": url,
                "author": (candidate.author or "").strip() or None,
                "guid": candidate.guid,
                "published_at": candidate.published_at,
                "fetched_at": datetime.now(timezone.utc),
                "fingerprint": key,
                "category": category,
                "tags": json.dumps(candidate.tags, ensure_ascii=False) if candidate.tags else None,
                "language": "tr",
            }
            try:
                if self.store.insert_article(values):
                    result.created += 1
                else:
                    result.duplicates += 1
            except Exception as e:
                result.failed += 1
                logger.error("Failed to store article", source_id=source_id, url=url, error=str(e))

        logger.info(
            "Ingestion finished",
            source_id=source_id,
            processed=result.processed,
            created=result.created,
            duplicates=result.duplicates,
            failed=result.failed,
        )
        return result
