"""Application configuration using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./pricewise.db"
    database_echo: bool = False

    # App Settings
    debug: bool = False
    log_level: str = "INFO"
    log_dir: str = ""  # Empty = current working directory
    metrics_enabled: bool = True

    # ==========================================================================
    # Comparison Engine Settings
    # ==========================================================================
    comparison_cache_enabled: bool = True
    comparison_cache_ttl_seconds: int = 300  # 5 minutes
    comparison_cache_max_size: int = 100  # Max cached item/config pairs

    default_max_results: int = 50
    default_min_confidence: float = 0.5
    default_sort_direction: str = "asc"

    # Offers older than this lose confidence in comparator scoring
    stale_offer_days: int = 30

    # ==========================================================================
    # Historical Price Settings
    # ==========================================================================
    historical_retention_days: int = 730  # Observations older than this are cleaned up
    price_alert_threshold_percent: float = 10.0
    price_alert_period: str = "7d"
    default_trend_period: str = "30d"
    offer_price_confidence: float = 0.8  # Confidence recorded for offer-sourced prices
    aggregated_price_confidence: float = 0.6

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PRICEWISE_",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
