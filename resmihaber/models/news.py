from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from resmihaber.database.connection import Base


class AcquisitionMode:
    RSS = "rss"
    SCRAPING = "scraping"


class SourceStatus:
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class Source(Base):
    __tablename__ = "sources"
    __table_args__ = (
        CheckConstraint("fetch_interval_minutes >= 5", name="ck_sources_fetch_interval"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Source identification
    name = Column(String, nullable=False, unique=True)  # e.g., "SPK", "Resmi Gazete"
    origin_url = Column(String, nullable=False)  # Base URL of the institution
    feed_url = Column(String, nullable=True)  # RSS/Atom URL for rss sources

    # Source settings
    acquisition_mode = Column(String, nullable=False, default=AcquisitionMode.RSS)  # rss, scraping
    status = Column(String, nullable=False, default=SourceStatus.ACTIVE)  # active, inactive, error
    fetch_interval_minutes = Column(Integer, nullable=False, default=60)
    is_official = Column(Boolean, default=True)

    # Fetch bookkeeping, written only by the ingestion core
    last_fetched_at = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    articles = relationship("Article", back_populates="source")

    def __repr__(self):
        return f"<Source(id={self.id}, name='{self.name}', mode='{self.acquisition_mode}')>"


class Article(Base):
    __tablename__ = "articles"

    id = Column(Integer, primary_key=True, index=True)
    source_id = Column(Integer, ForeignKey("sources.id"), nullable=False, index=True)

    # Article information
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    content = Column(Text, nullable=True)
    url = Column(String, nullable=False)
    author = Column(String, nullable=True)
    guid = Column(String, nullable=True)

    # Dedup key: sha256(title + "|" + url)
    fingerprint = Column(String(64), nullable=False, unique=True, index=True)

    # Article metadata
    published_at = Column(DateTime(timezone=True), nullable=True)
    fetched_at = Column(DateTime(timezone=True), nullable=False)
    category = Column(String, nullable=False, default="other")
    tags = Column(Text, nullable=True)  # JSON array of tags
    language = Column(String, default="tr")
    view_count = Column(Integer, default=0)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    source = relationship("Source", back_populates="articles")

    def __repr__(self):
        return f"<Article(id={self.id}, source_id={self.source_id}, title='{self.title[:40]}')>"
