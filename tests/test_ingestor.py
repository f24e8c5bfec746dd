from datetime import datetime, timezone

import pytest
from conftest import add_rss_source

from resmihaber.models import Article
from resmihaber.services.ingestor import ArticleCandidate, ArticleIngestor, categorize_article, fingerprint


@pytest.mark.parametrize("title, description, expected", [
    ("Önemli Duyuru", None, "announcement"),
    ("Yeni yönetmelik yayımlandı", None, "regulation"),
    ("Politika faizi sabit tutuldu", None, "financial"),
    ("Ar-Ge destek programı", None, "technology"),
    ("Mevzuat değişikliği", None, "legal"),
    ("Hava durumu", "Yarın yağmur bekleniyor", "other"),
    ("Basın bülteni", "Kurul duyurusu hakkında", "announcement"),
    ("TEBLİĞ", None, "regulation"),
])
def test_categorize_article(title, description, expected):
    assert categorize_article(title, description) == expected


def test_fingerprint_is_sha256_of_title_and_url():
    first = fingerprint("Başlık", "https://example.gov.tr/a")
    assert len(first) == 64
    assert first == fingerprint("Başlık", "https://example.gov.tr/a")
    assert first != fingerprint("Başlık", "https://example.gov.tr/b")


def test_ingest_is_idempotent(store):
    source = add_rss_source(store, "Resmi Gazete", "https://www.resmigazete.gov.tr/rss.aspx")
    ingestor = ArticleIngestor(store)
    items = [
        ArticleCandidate(title="  Yeni yönetmelik  ", url="https://www.resmigazete.gov.tr/1"),
        ArticleCandidate(title="Duyuru", url="https://www.resmigazete.gov.tr/2", tags=["genel"]),
    ]

    first = ingestor.ingest(source.id, items)
    second = ingestor.ingest(source.id, items)

    assert (first.created, first.duplicates) == (2, 0)
    assert (second.created, second.duplicates) == (0, 2)
    assert store.count_articles(source.id) == 2

    with store.session() as db:
        article = db.query(Article).filter(Article.url == "https://www.resmigazete.gov.tr/1").one()
        assert article.title == "Yeni yönetmelik"
        assert article.category == "regulation"
        assert article.fingerprint == fingerprint("Yeni yönetmelik", "https://www.resmigazete.gov.tr/1")


def test_supplied_category_wins_over_keywords(store):
    source = add_rss_source(store, "TCMB", "https://www.tcmb.gov.tr/rss/duyuru.xml")
    ArticleIngestor(store).ingest(source.id, [
        ArticleCandidate(title="Faiz kararı", url="https://www.tcmb.gov.tr/x", category="legal"),
        ArticleCandidate(title="Faiz kararı 2", url="https://www.tcmb.gov.tr/y", category="not-a-category"),
    ])

    with store.session() as db:
        categories = {a.url: a.category for a in db.query(Article).all()}
    assert categories == {"https://www.tcmb.gov.tr/x": "legal", "https://www.tcmb.gov.tr/y": "financial"}


def test_items_without_title_are_counted_as_failed(store):
    source = add_rss_source(store, "BDDK", "https://www.bddk.org.tr/Rss/RssKategori/5")

    result = ArticleIngestor(store).ingest(source.id, [ArticleCandidate(title="   ", url="https://www.bddk.org.tr/1")])

    assert result.failed == 1
    assert store.count_articles() == 0


def test_insert_duplicate_fingerprint_is_a_no_op(store):
    source = add_rss_source(store, "MGM", "https://www.mgm.gov.tr/rss/duyuru.aspx")
    values = {
        "source_id": source.id,
        "title": "Uyarı",
        "url": "https://www.mgm.gov.tr/1",
        "fingerprint": fingerprint("Uyarı", "https://www.mgm.gov.tr/1"),
        "category": "other",
        "fetched_at": datetime.now(timezone.utc),
    }

    assert store.insert_article(dict(values)) is True
    assert store.insert_article(dict(values)) is False
    assert store.count_articles() == 1
