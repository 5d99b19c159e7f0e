from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )

    db_path: Path = Field(default=Path("data/alerts.db"), validation_alias="DB_PATH")
    feeds_dir: Path = Field(default=Path("feeds"), validation_alias="FEEDS_DIR")

    user_agent: str = Field(
        default="Security-Intelligence-Platform/1.0", validation_alias="USER_AGENT"
    )
    alert_ready_url: str = Field(
        default="https://rss.naad-adna.pelmorex.com/",
        validation_alias="ALERT_READY_URL",
    )

    fetch_max_retries: int = Field(default=3, validation_alias="FETCH_MAX_RETRIES")
    fetch_backoff_base_ms: int = Field(
        default=1000, validation_alias="FETCH_BACKOFF_BASE_MS"
    )
    source_deadline_seconds: float = Field(
        default=120.0, validation_alias="SOURCE_DEADLINE_SECONDS"
    )

    correlation_threshold: float = Field(
        default=0.7, validation_alias="CORRELATION_THRESHOLD"
    )
    correlation_window_hours: int = Field(
        default=24, validation_alias="CORRELATION_WINDOW_HOURS"
    )

    cache_ttl_minutes: float = Field(default=5.0, validation_alias="CACHE_TTL_MINUTES")
    staleness_threshold_minutes: float = Field(
        default=30.0, validation_alias="STALENESS_THRESHOLD_MINUTES"
    )
    weather_expiry_grace_hours: float = Field(
        default=2.0, validation_alias="WEATHER_EXPIRY_GRACE_HOURS"
    )
    default_expiry_grace_hours: float = Field(
        default=24.0, validation_alias="DEFAULT_EXPIRY_GRACE_HOURS"
    )
    background_ingest_delay_seconds: float = Field(
        default=1.0, validation_alias="BACKGROUND_INGEST_DELAY_SECONDS"
    )

    weather_read_limit: int = Field(default=100, validation_alias="WEATHER_READ_LIMIT")
    security_read_limit: int = Field(default=50, validation_alias="SECURITY_READ_LIMIT")
    immigration_read_limit: int = Field(
        default=50, validation_alias="IMMIGRATION_READ_LIMIT"
    )

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="console", validation_alias="LOG_FORMAT")
