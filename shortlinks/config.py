"""Configuration management for the short-link engine.

Every tunable of the engine lives on one pydantic-settings model. Values come
from the environment (or a local .env file) and are read once per process.

Setting Groups
==============
::
    Settings
    ├─ service      APP_NAME, APP_ENV, LOG_LEVEL, SHORT_URL_DOMAIN
    ├─ store        DATABASE_URL, REAPER_DATABASE_URL, CREATE_TABLES
    ├─ cache        REDIS_URL, LINK_CACHE_TTL_SECONDS, STATS_CACHE_TTL_SECONDS
    ├─ identity     SUPABASE_URL, SUPABASE_ANON_KEY
    ├─ secrets      URL_ENCRYPTION_SECRET, PASSWORD_HASH_ROUNDS
    ├─ allocation   SHORT_CODE_LENGTH, MAX_ALLOCATION_ATTEMPTS, LINK_TTL_SECONDS
    ├─ deadlines    *_TIMEOUT_SECONDS (store, cache read/write, clicks, geo, identity)
    ├─ clicks       GEOIP_URL
    └─ reaper       REAPER_ENABLED, REAPER_INTERVAL_SECONDS, REAPER_BATCH_SIZE

How to Use
===========
**Step 1 — Import**::
    from shortlinks.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    db_url = settings.DATABASE_URL

**Step 3 — Build settings explicitly (tests, scripts)**::
    settings = Settings(DATABASE_URL="sqlite+aiosqlite://", REAPER_ENABLED=False)

Key Behaviours
===============
- get_settings() is lru_cached; build Settings(...) directly to bypass it.
- LINK_TTL_SECONDS of 0 means newly allocated links never expire.
- REAPER_DATABASE_URL falls back to DATABASE_URL when unset.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "shortlinks"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    SHORT_URL_DOMAIN: str = "http://localhost:8080"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://shortlinks:shortlinks@db:5432/shortlinks"
    # Privileged DSN for the expiry reaper (deletes outside any request's authorization)
    REAPER_DATABASE_URL: str | None = None
    CREATE_TABLES: bool = True

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # Identity verification (Supabase Auth)
    SUPABASE_URL: str = "http://supabase:8000"
    SUPABASE_ANON_KEY: str = ""
    IDENTITY_TIMEOUT_SECONDS: float = 3.0

    # Secrets
    URL_ENCRYPTION_SECRET: str = "development-only-secret-change-me"
    PASSWORD_HASH_ROUNDS: int = 10

    # Short code allocation
    SHORT_CODE_LENGTH: int = 6
    MAX_ALLOCATION_ATTEMPTS: int = 5
    LINK_TTL_SECONDS: int = 30 * 24 * 3600

    # Cache lifetimes
    LINK_CACHE_TTL_SECONDS: int = 24 * 3600
    STATS_CACHE_TTL_SECONDS: int = 300

    # Deadlines
    STORE_TIMEOUT_SECONDS: float = 2.0
    CACHE_READ_TIMEOUT_SECONDS: float = 0.25
    CACHE_WRITE_TIMEOUT_SECONDS: float = 0.5

    # Click capture
    CLICK_RECORD_TIMEOUT_SECONDS: float = 5.0
    GEOIP_URL: str = "http://ip-api.com/json/{ip}"
    GEOIP_TIMEOUT_SECONDS: float = 1.5

    # Expiry reaper
    REAPER_ENABLED: bool = True
    REAPER_INTERVAL_SECONDS: float = 60.0
    REAPER_BATCH_SIZE: int = 100
    REAPER_STORE_TIMEOUT_SECONDS: float = 10.0

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    @property
    def reaper_database_url(self) -> str:
        return self.REAPER_DATABASE_URL or self.DATABASE_URL


@lru_cache()
def get_settings() -> Settings:
    return Settings()
