import asyncio

import pytest
from conftest import FakeResponse, add_rss_source, run

from resmihaber.core.exceptions import ParseError
from resmihaber.models import Source, SourceStatus
from resmihaber.scrapers.feeds import parse_feed

GOOD_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Resmi Gazete</title>
    <link>https://www.resmigazete.gov.tr</link>
    <item>
      <title>Yeni yönetmelik yayımlandı</title>
      <link>https://www.resmigazete.gov.tr/eskiler/2024/03/1.htm</link>
      <description>&lt;p&gt;Enerji &lt;b&gt;piyasası&lt;/b&gt; hakkında&lt;/p&gt;</description>
      <pubDate>Fri, 15 Mar 2024 09:00:00 +0300</pubDate>
      <author>editor@resmigazete.gov.tr</author>
      <category>Mevzuat</category>
      <guid>rg-2024-03-1</guid>
    </item>
    <item>
      <title>Önemli duyuru</title>
      <link>https://www.resmigazete.gov.tr/eskiler/2024/03/2.htm</link>
      <description>Kısa açıklama</description>
    </item>
    <item>
      <title></title>
      <link>https://www.resmigazete.gov.tr/eskiler/2024/03/3.htm</link>
    </item>
  </channel>
</rss>
"""

GOOD_URL = "https://www.resmigazete.gov.tr/rss.aspx"
SLOW_URL = "https://www.slow.gov.tr/rss.xml"


def test_parse_feed_normalizes_items():
    items = parse_feed(GOOD_FEED.encode("utf-8"))

    assert [item.title for item in items] == ["Yeni yönetmelik yayımlandı", "Önemli duyuru"]
    first = items[0]
    assert first.description == "Enerji piyasası hakkında"
    assert first.published_at.isoformat() == "2024-03-15T06:00:00+00:00"
    assert first.categories == ["Mevzuat"]
    assert first.guid == "rg-2024-03-1"
    assert items[1].guid == items[1].link


def test_parse_feed_rejects_non_feed():
    with pytest.raises(ParseError):
        parse_feed(b"<<<not xml at all")


def test_failing_source_is_isolated_and_marked(context, store, http):
    http.add(GOOD_URL, FakeResponse(body=GOOD_FEED))
    http.add(SLOW_URL, asyncio.TimeoutError())
    good = add_rss_source(store, "Resmi Gazete", GOOD_URL)
    slow = add_rss_source(store, "Yavaş Kurum", SLOW_URL)

    summary = run(context.feeds.fetch_all())

    assert (summary.processed, summary.succeeded, summary.failed) == (2, 1, 1)
    assert summary.new_articles == 2
    assert store.count_articles(good.id) == 2
    assert http.count(SLOW_URL) == context.settings.HTTP_MAX_RETRIES

    with store.session() as db:
        slow_row = db.get(Source, slow.id)
        good_row = db.get(Source, good.id)
    assert slow_row.status == SourceStatus.ERROR
    assert "Timed out" in slow_row.last_error
    assert good_row.status == SourceStatus.ACTIVE
    assert good_row.last_fetched_at is not None


def test_second_run_creates_nothing_and_errored_source_self_heals(context, store, http):
    http.add(GOOD_URL, FakeResponse(body=GOOD_FEED))
    http.add(SLOW_URL, asyncio.TimeoutError())
    add_rss_source(store, "Resmi Gazete", GOOD_URL)
    slow = add_rss_source(store, "Yavaş Kurum", SLOW_URL)

    async def scenario():
        first = await context.feeds.fetch_all()
        http.add(SLOW_URL, FakeResponse(body=GOOD_FEED.replace("eskiler", "arsiv")))
        second = await context.feeds.fetch_all()
        return first, second

    first, second = run(scenario())

    assert first.new_articles == 2
    assert second.failed == 0
    # Only the recovered source contributes new rows
    assert second.new_articles == 2
    with store.session() as db:
        row = db.get(Source, slow.id)
    assert row.status == SourceStatus.ACTIVE
    assert row.last_error is None


def test_inactive_sources_are_not_polled(context, store, http):
    add_rss_source(store, "Kapalı", GOOD_URL, status=SourceStatus.INACTIVE)

    summary = run(context.feeds.fetch_all())

    assert summary.processed == 0
    assert http.requests == []
