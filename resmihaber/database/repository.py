"""
Persistence interface consumed by the ingestion core.

Every method opens its own short-lived session, so callers running inside
the asyncio loop never hold a session across an await.
"""

import json
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from resmihaber.models import Article, FinancialObservation, Source, SourceStatus
from resmihaber.services.logging_service import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestionStore:
    """SQLAlchemy-backed store for sources, articles and financial observations."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Get database session with proper cleanup."""
        db = self.session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # Sources

    def list_sources(self, mode: str, exclude_statuses: Iterable[str] = (SourceStatus.INACTIVE,)) -> List[Source]:
        with self.session() as db:
            return (
                db.query(Source)
                .filter(Source.acquisition_mode == mode, Source.status.notin_(list(exclude_statuses)))
                .order_by(Source.id)
                .all()
            )

    def find_sources_by_names(self, names: Iterable[str]) -> List[Source]:
        wanted = {name.upper() for name in names}
        with self.session() as db:
            return [source for source in db.query(Source).order_by(Source.id).all() if source.name.upper() in wanted]

    def mark_source_success(self, source_id: int) -> None:
        """Self-heal: a successful fetch returns an errored source to active."""
        with self.session() as db:
            source = db.get(Source, source_id)
            if source is None:
                return
            if source.status != SourceStatus.INACTIVE:
                source.status = SourceStatus.ACTIVE
            source.last_fetched_at = utcnow()
            source.last_error = None
            db.commit()

    def mark_source_error(self, source_id: int, error: str) -> None:
        with self.session() as db:
            source = db.get(Source, source_id)
            if source is None:
                return
            if source.status != SourceStatus.INACTIVE:
                source.status = SourceStatus.ERROR
            source.last_error = error[:1000]
            db.commit()

    # Articles

    def article_exists(self, fingerprint: str) -> bool:
        with self.session() as db:
            return db.query(Article.id).filter(Article.fingerprint == fingerprint).first() is not None

    def insert_article(self, values: Dict[str, Any]) -> bool:
        """
        Insert one article row.

        Returns False when the fingerprint is already stored; a concurrent
        duplicate is a no-op, not an error.
        """
        with self.session() as db:
            db.add(Article(**values))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.debug("Duplicate article ignored", fingerprint=values.get("fingerprint"))
                return False
        return True

    def count_articles(self, source_id: Optional[int] = None) -> int:
        with self.session() as db:
            query = db.query(Article)
            if source_id is not None:
                query = query.filter(Article.source_id == source_id)
            return query.count()

    def delete_articles_older_than(self, days: int) -> int:
        cutoff = utcnow() - timedelta(days=days)
        with self.session() as db:
            deleted = db.query(Article).filter(Article.fetched_at < cutoff).delete(synchronize_session=False)
            db.commit()
        return deleted

    # Financial observations

    def upsert_observation(
        self,
        obs_type: str,
        code: str,
        obs_date: date,
        value: float,
        unit: str,
        name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        source: str = "TCMB",
    ) -> None:
        with self.session() as db:
            row = (
                db.query(FinancialObservation)
                .filter(and_(
                    FinancialObservation.type == obs_type,
                    FinancialObservation.code == code,
                    FinancialObservation.date == obs_date,
                ))
                .first()
            )
            if row is None:
                row = FinancialObservation(type=obs_type, code=code, date=obs_date)
                db.add(row)
            row.value = value
            row.unit = unit
            row.name = name
            row.source = source
            row.details = json.dumps(details, ensure_ascii=False) if details else None
            db.commit()

    def observations_for_date(self, obs_type: str, obs_date: date) -> List[FinancialObservation]:
        with self.session() as db:
            return (
                db.query(FinancialObservation)
                .filter(FinancialObservation.type == obs_type, FinancialObservation.date == obs_date)
                .order_by(FinancialObservation.code)
                .all()
            )

    def observation_range(self, obs_type: str, code: str, start: date, end: date) -> List[FinancialObservation]:
        with self.session() as db:
            return (
                db.query(FinancialObservation)
                .filter(
                    FinancialObservation.type == obs_type,
                    FinancialObservation.code == code,
                    FinancialObservation.date >= start,
                    FinancialObservation.date <= end,
                )
                .order_by(FinancialObservation.date)
                .all()
            )

    def ensure_sources(self, sources: Iterable[Dict[str, Any]]) -> int:
        """Insert every source whose name is not stored yet; returns the number inserted."""
        inserted = 0
        with self.session() as db:
            existing = {name.upper() for (name,) in db.query(Source.name).all()}
            for values in sources:
                if values["name"].upper() in existing:
                    continue
                db.add(Source(**values))
                existing.add(values["name"].upper())
                inserted += 1
            db.commit()
        return inserted
