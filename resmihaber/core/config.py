from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List, Optional


class Settings(BaseSettings):
    # Application settings
    APP_NAME: str = Field(default="Resmi Haber Ingestion", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    DEBUG: bool = Field(default=False, description="Debug mode")
    ENVIRONMENT: str = Field(default="production", description="Environment")

    # Database
    DATABASE_URL: str = "sqlite:///./resmihaber.db"
    SEED_DEFAULT_SOURCES: bool = Field(default=True, description="Insert the built-in official sources at startup")

    # Bot identity sent with every outbound request
    BOT_NAME: str = Field(default="TurkiyeResmiHaber-Bot/1.0", description="Bot product token")
    BOT_CONTACT_URL: str = Field(default="https://turkiyeresmihaber.com/robots", description="Contact URL for site operators")

    # HTTP fetching
    HTTP_MAX_RETRIES: int = Field(default=3, ge=1, description="Attempts per request")
    HTTP_RETRY_DELAY: float = Field(default=2.0, ge=0, description="Base retry delay in seconds, multiplied by attempt")
    HTTP_MAX_CONTENT_LENGTH: int = Field(default=1024 * 1024, description="Maximum response size in bytes")
    SCRAPE_TIMEOUT: float = Field(default=15.0, description="Per-attempt timeout for HTML pages")
    FEED_TIMEOUT: float = Field(default=30.0, description="Per-attempt timeout for RSS feeds")
    ROBOTS_TIMEOUT: float = Field(default=10.0, description="Timeout for robots.txt retrieval")
    FINANCIAL_TIMEOUT: float = Field(default=10.0, description="Timeout for the TCMB XML feed")

    # robots.txt policy
    ROBOTS_CACHE_TTL_HOURS: int = Field(default=24, description="robots.txt cache lifetime")
    ROBOTS_FALLBACK_CRAWL_DELAY: float = Field(default=5.0, description="Crawl delay when robots.txt is unreachable")
    ROBOTS_DEFAULT_CRAWL_DELAY: float = Field(default=1.0, description="Crawl delay when robots.txt sets none")

    # Scraping
    SCRAPE_CONCURRENCY: int = Field(default=2, ge=1, description="Concurrent requests per domain")
    SCRAPE_BATCH_PAUSE: float = Field(default=1.0, description="Pause between batches inside one domain")
    SCRAPE_MAX_ARTICLES_PER_CATEGORY: int = Field(default=10, description="Detail pages fetched per category per run")
    SCRAPE_CATEGORY_PAUSE: float = Field(default=2.0, description="Pause between site categories")

    # Scheduler
    SCHEDULER_ENABLED: bool = Field(default=True, description="Start the scheduler with the app")
    SCHEDULER_TICK_SECONDS: float = Field(default=30.0, description="Timer loop resolution")
    SCHEDULER_WARMUP_SECONDS: float = Field(default=5.0, description="Delay before the first RSS run")
    RSS_INTERVAL_MINUTES: int = Field(default=30, description="RSS refresh cadence")
    FINANCIAL_INTERVAL_MINUTES: int = Field(default=60, description="Financial refresh cadence")
    MAINTENANCE_INTERVAL_HOURS: int = Field(default=24, description="Cache maintenance cadence")
    CLEANUP_INTERVAL_HOURS: int = Field(default=24, description="Retention cleanup cadence")
    ARTICLE_RETENTION_DAYS: int = Field(default=90, description="Articles older than this are deleted")

    # Financial data (TCMB)
    TCMB_BASE_URL: str = Field(default="https://www.tcmb.gov.tr/kurlar", description="TCMB rates base URL")
    FINANCIAL_CACHE_SECONDS: int = Field(default=300, description="Window in which a date is not refetched")
    FINANCIAL_TIMEZONE: str = Field(default="Europe/Istanbul", description="Calendar used for 'today'")
    GOLD_CODES: str = Field(default="XAU", description="Currency codes treated as gold prices")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # Server Configuration
    HOST: str = Field(default="0.0.0.0", description="Server host")
    PORT: int = Field(default=8000, description="Server port")
    CONTROL_API_KEY: Optional[str] = Field(default=None, description="Key required by the control routes, if set")

    @field_validator("LOG_LEVEL")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @property
    def user_agent(self) -> str:
        """Descriptive User-Agent naming the bot and a contact URL"""
        return f"{self.BOT_NAME} (+{self.BOT_CONTACT_URL})"

    @property
    def bot_token(self) -> str:
        """Product token matched against robots.txt User-agent lines"""
        return self.BOT_NAME.split("/")[0]

    @property
    def gold_codes_list(self) -> List[str]:
        """Get GOLD_CODES as a list"""
        return [code.strip().upper() for code in self.GOLD_CODES.split(',') if code.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra environment variables


# Create settings instance
settings = Settings()
