"""
Configuration Management

Uses Pydantic Settings for environment-based configuration.
Loads from .env file automatically.

Settings are read once at the edge of the process and then handed to the
gateway, poller, cache and quota constructors as plain config objects.
"""

from typing import Optional
from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # DataForSEO (validated lazily by the gateway client, not at startup)
    DATAFORSEO_LOGIN: Optional[str] = None
    DATAFORSEO_PASSWORD: Optional[str] = None
    DATAFORSEO_BASE_URL: str = "https://api.dataforseo.com/v3"

    # Database
    DATABASE_URL: Optional[str] = None

    # Application Settings
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Gateway
    API_TIMEOUT: float = 60.0
    MAX_CONNECTIONS: int = 50
    MAX_RETRIES: int = 3
    RETRY_BASE_DELAY_MS: int = 1000
    MAX_RETRY_AFTER_SECONDS: int = 60

    # On-page task polling
    ONPAGE_MAX_POLLS: int = 6
    ONPAGE_POLL_DELAY: float = 10.0
    ONPAGE_MAX_CRAWL_PAGES: int = 50

    # Cache and quota
    CACHE_TTL_HOURS: int = 24
    FREE_REPORT_LIMIT: int = 3
    QUOTA_WINDOW_DAYS: int = 30
    SERP_MONTHLY_LIMIT: int = -1
    SEARCH_VOLUME_MONTHLY_LIMIT: int = -1

    # Per-request deadline for upstream work (covers on-page polling)
    REQUEST_DEADLINE_SECONDS: float = 150.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields in .env file
        case_sensitive = False  # Allow both UPPERCASE and lowercase


@lru_cache
def get_settings() -> Settings:
    """Get or create cached settings instance."""
    return Settings()
