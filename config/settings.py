from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./listing_sync.db"

    # Server
    DASHBOARD_PORT: int = 8001
    LOG_LEVEL: str = "INFO"

    # Sources started at boot
    ENABLED_SOURCES: str = "hackernews"
    AUTO_START_SOURCES: bool = True

    # Crawl strategy for scheduled runs
    SCRAPE_MODE: str = "latest"
    SCRAPE_MAX_PAGES: int = 10
    STOP_ON_DUPLICATES: bool = False

    # Inter-page delays, in seconds
    SINCE_LAST_PAGE_DELAY: float = 1.0
    UNTIL_EXISTING_PAGE_DELAY: float = 1.0
    FULL_ARCHIVE_PAGE_DELAY: float = 2.0

    # HTTP
    FETCH_TIMEOUT_SECONDS: float = 30.0
    USER_AGENT: str = "ListingSync/1.0 (research project; github.com)"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def enabled_sources(self) -> list[str]:
        return [s.strip() for s in self.ENABLED_SOURCES.split(",") if s.strip()]


settings = Settings()
