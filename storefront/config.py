"""
storefront/config.py – application settings loaded from environment variables.
"""
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Remote catalog API ────────────────────────────────────────────────────
    catalog_api_base_url: str = "http://localhost:5000/api"
    catalog_api_timeout: float = 10.0
    catalog_api_health_timeout: float = 3.0

    # ── Retry ─────────────────────────────────────────────────────────────────
    catalog_api_retry_attempts: int = 3
    catalog_api_retry_min_wait: float = 0.5
    catalog_api_retry_max_wait: float = 5.0

    # ── Cache (seconds) ───────────────────────────────────────────────────────
    cache_categories_ttl: float = 300.0
    cache_products_ttl: float = 180.0
    cache_category_products_ttl: float = 120.0
    cache_metadata_ttl: float = 120.0
    cache_sweep_interval: float = 60.0
    cache_preload_fanout: int = 3
    cache_preload_delay: float = 1.0
    preload_on_startup: bool = True

    # ── Rate limiting ─────────────────────────────────────────────────────────
    rate_limit_per_minute: int = 120

    # ── App ───────────────────────────────────────────────────────────────────
    app_name: str = "Storefront Catalog API"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"


settings = Settings()
