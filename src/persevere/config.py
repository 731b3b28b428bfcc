"""
Configuration settings for persevere.

All settings are loaded from environment variables prefixed with
``PERSEVERE_`` (e.g. ``PERSEVERE_LOG_LEVEL=DEBUG``), with sensible defaults.
Use a .env file for local development.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Library settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PERSEVERE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Application ===
    APP_NAME: str = "persevere"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"  # "production" switches logs to JSON

    # === Retry Engine ===
    DEFAULT_MAX_RETRIES: int = Field(default=0, ge=0)  # Engines start with a single attempt

    # === Backoff ===
    BACKOFF_BASE: float = Field(default=2.0, ge=1.0)  # Exponent base for delay_retry / exponential_backoff
    BACKOFF_MAX_JITTER: float = Field(default=1.0, ge=0.0)  # seconds
    BACKOFF_MAX_DELAY: Optional[float] = Field(default=None, ge=0.0)  # Cap per wait, None = uncapped

    # === HTTP Runner ===
    HTTP_TIMEOUT: float = Field(default=30.0, gt=0.0)  # seconds
    HTTP_FOLLOW_REDIRECTS: bool = True

    # === Monitoring ===
    PROMETHEUS_ENABLED: bool = True


# Global settings instance
settings = Settings()
