"""
Initial official sources.
"""

from typing import Any, Dict, List

from resmihaber.database.repository import IngestionStore
from resmihaber.models import AcquisitionMode
from resmihaber.services.logging_service import get_logger

logger = get_logger(__name__)

DEFAULT_SOURCES: List[Dict[str, Any]] = [
    {
        "name": "Resmi Gazete",
        "origin_url": "https://www.resmigazete.gov.tr",
        "feed_url": "https://www.resmigazete.gov.tr/rss.aspx",
        "acquisition_mode": AcquisitionMode.RSS,
        "fetch_interval_minutes": 30,
    },
    {
        "name": "TCMB",
        "origin_url": "https://www.tcmb.gov.tr",
        "feed_url": "https://www.tcmb.gov.tr/rss/duyuru.xml",
        "acquisition_mode": AcquisitionMode.RSS,
        "fetch_interval_minutes": 30,
    },
    {
        "name": "BDDK",
        "origin_url": "https://www.bddk.org.tr",
        "feed_url": "https://www.bddk.org.tr/Rss/RssKategori/5",
        "acquisition_mode": AcquisitionMode.RSS,
        "fetch_interval_minutes": 30,
    },
    {
        "name": "mevzuat.gov.tr",
        "origin_url": "https://www.mevzuat.gov.tr",
        "feed_url": "https://www.mevzuat.gov.tr/MevzuatMetin/RssXml.aspx",
        "acquisition_mode": AcquisitionMode.RSS,
        "fetch_interval_minutes": 30,
    },
    {
        "name": "Meteoroloji Genel Müdürlüğü",
        "origin_url": "https://www.mgm.gov.tr",
        "feed_url": "https://www.mgm.gov.tr/rss/duyuru.aspx",
        "acquisition_mode": AcquisitionMode.RSS,
        "fetch_interval_minutes": 30,
    },
    {
        "name": "SPK",
        "origin_url": "https://www.spk.gov.tr",
        "acquisition_mode": AcquisitionMode.SCRAPING,
        "fetch_interval_minutes": 120,
    },
    {
        "name": "EPDK",
        "origin_url": "https://www.epdk.gov.tr",
        "acquisition_mode": AcquisitionMode.SCRAPING,
        "fetch_interval_minutes": 180,
    },
]


def seed_default_sources(store: IngestionStore) -> int:
    inserted = store.ensure_sources(DEFAULT_SOURCES)
    if inserted:
        logger.info("Inserted initial data sources", count=inserted)
    return inserted
