"""Centralized settings for the notification engine.

Uses pydantic-settings to load from environment variables (prefixed NOTIFY_)
with defaults suitable for local development.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Notification engine settings loaded from environment variables."""

    # --- Database ---
    database_url: str = "sqlite:///notification_engine.db"
    database_echo: bool = False

    # --- Store calls ---
    store_timeout_seconds: float = 10.0
    store_max_workers: int = 4

    # --- Escalation ---
    escalation_max_workers: int = 1
    slow_run_threshold_ms: float = 1000.0

    # --- Routing defaults ---
    default_timezone: str = "Europe/Amsterdam"
    quiet_hours_start: str = "20:00"
    quiet_hours_end: str = "08:00"

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "json"
    service_name: str = "notification-engine"

    model_config = {
        "env_prefix": "NOTIFY_",
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()
