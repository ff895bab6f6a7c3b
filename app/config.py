"""
Configuration management for the ML seller sync service
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "ML Seller Sync"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_to_file: bool = True

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Database
    database_url: str = "sqlite:///./ml_seller_sync.db"

    # Mercado Livre application credentials
    ml_app_id: str = ""
    ml_secret_key: str = ""
    ml_redirect_uri: Optional[str] = None
    ml_api_base_url: str = "https://api.mercadolibre.com"
    ml_site_id: str = "MLB"
    ml_request_timeout_seconds: float = 30.0

    # Retry policy for transient upstream failures (429 / 5xx / network)
    ml_retry_max_attempts: int = 3
    ml_retry_base_delay: float = 1.0
    ml_retry_max_delay: float = 30.0

    # Token lifecycle
    token_refresh_skew_seconds: int = 3600  # Refresh when expiring within the hour

    # Listings
    products_page_size: int = 50
    products_max_items: int = 500
    item_request_delay_seconds: float = 0.1
    low_quality_photo_min_px: int = 1200
    description_min_chars: int = 50

    # Orders
    orders_lookback_days: int = 30
    orders_page_size: int = 100
    orders_max_records: int = 1000
    orders_max_pages: int = 10

    # Product Ads
    ads_lookback_days: int = 30
    ads_max_items: int = 100
    ads_item_delay_seconds: float = 0.2

    # Per-account sync
    sync_timeout_seconds: Optional[float] = 120.0

    # Auto sync of every active account
    auto_sync_schedule: str = "0 */6 * * *"
    auto_sync_account_timeout_seconds: float = 30.0
    auto_sync_delay_between_accounts: float = 1.0
    auto_sync_circuit_breaker_failures: int = 3
    auto_sync_circuit_breaker_pause: float = 5.0
    auto_sync_token_priority_hours: int = 24

    # Feature Flags
    enable_scheduler: bool = True
    enable_product_ads_sync: bool = True
    enable_seller_recovery_check: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
