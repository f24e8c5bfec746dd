from resmihaber.core.config import Settings


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.HTTP_MAX_RETRIES == 3
    assert settings.HTTP_MAX_CONTENT_LENGTH == 1024 * 1024
    assert settings.ROBOTS_FALLBACK_CRAWL_DELAY == 5.0
    assert settings.ARTICLE_RETENTION_DAYS == 90
    assert settings.FINANCIAL_CACHE_SECONDS == 300
    assert settings.gold_codes_list == ["XAU"]


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("GOLD_CODES", "xau, xag")
    monkeypatch.setenv("SCRAPE_CONCURRENCY", "4")

    settings = Settings(_env_file=None)

    assert settings.gold_codes_list == ["XAU", "XAG"]
    assert settings.SCRAPE_CONCURRENCY == 4
