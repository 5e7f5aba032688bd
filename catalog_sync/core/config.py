# catalog_sync/core/config.py

import os
from functools import lru_cache
from typing import Dict, List, Tuple
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


def _parse_vendor_pairs(value: str) -> List[Tuple[str, str]]:
    pairs = []
    for chunk in (value or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        slug, _, name = chunk.partition("=")
        slug = slug.strip().lower()
        if slug:
            pairs.append((slug, name.strip() or slug))
    return pairs


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = ""
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Vendors
    DEFAULT_VENDOR_SLUG: str = "moscot"
    CATALOG_VENDORS: str = "acme=Acme Optical"  # generic catalog vendors, "slug=Name,slug=Name"
    DEFAULT_STORE_ID: str = "main"

    # Apply engine
    APPLY_MAX_ATTEMPTS: int = 3
    APPLY_RETRY_BASE_DELAY: float = 0.2

    # Catalog sources
    SOURCE_FETCH_TIMEOUT: float = 30.0
    SOURCE_MAX_ITEMS: int = 5000  # larger sources are rejected, never truncated

    # Service tokens: {"<token>": ["catalog:sync:read", ...]}. Empty disables auth.
    SERVICE_TOKENS: Dict[str, List[str]] = {}

    REGISTRY_TEST_CONCURRENCY: int = 4

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def catalog_vendor_pairs(self) -> List[Tuple[str, str]]:
        return _parse_vendor_pairs(self.CATALOG_VENDORS)


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()

def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()
