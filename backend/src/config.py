"""
Configuration management for the League Lifecycle Service.

Loads configuration from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return float(raw)


@dataclass
class Config:
    """Application configuration."""

    # Environment
    environment: str = os.getenv("ENVIRONMENT", "development")

    # Supabase Configuration
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_key: str = os.getenv("SUPABASE_KEY", "")
    supabase_service_key: Optional[str] = os.getenv("SUPABASE_SERVICE_KEY", None)

    # Scheduler: one tick every N seconds; countdowns are decremented by this amount
    tick_interval_seconds: int = int(os.getenv("TICK_INTERVAL_SECONDS", "10"))

    # Refresh gate: readers re-check the lock every N seconds
    lock_poll_interval_seconds: float = float(os.getenv("LOCK_POLL_INTERVAL_SECONDS", "0.5"))
    # Force-release a lock held longer than this (unset = hold indefinitely)
    lock_max_hold_seconds: Optional[float] = _optional_float("LOCK_MAX_HOLD_SECONDS")

    # Data provider rate limiting
    max_requests_per_minute: int = int(os.getenv("MAX_REQUESTS_PER_MINUTE", "30"))
    min_request_interval: float = float(os.getenv("MIN_REQUEST_INTERVAL", "1.0"))
    provider_timeout: float = float(os.getenv("PROVIDER_TIMEOUT", "30.0"))

    # Retry Configuration
    max_retries: int = int(os.getenv("MAX_RETRIES", "3"))
    retry_backoff_base: float = float(os.getenv("RETRY_BACKOFF_BASE", "1.0"))
    max_retry_delay: int = int(os.getenv("MAX_RETRY_DELAY", "60"))

    # Staleness windows (seconds). "min" allows a reader-triggered refresh,
    # "max" forces one from the scheduler.
    min_time_game: int = int(os.getenv("MIN_TIME_GAME", "120"))
    max_time_game: int = int(os.getenv("MAX_TIME_GAME", "1200"))
    min_time_transfer: int = int(os.getenv("MIN_TIME_TRANSFER", "3600"))
    max_time_transfer: int = int(os.getenv("MAX_TIME_TRANSFER", "86400"))

    # API
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv("LOG_FORMAT", "json")  # json or text

    def validate(self):
        """Validate configuration."""
        errors = []

        if self.tick_interval_seconds <= 0:
            errors.append("TICK_INTERVAL_SECONDS must be positive")
        if self.lock_poll_interval_seconds <= 0:
            errors.append("LOCK_POLL_INTERVAL_SECONDS must be positive")
        if self.lock_max_hold_seconds is not None and self.lock_max_hold_seconds <= 0:
            errors.append("LOCK_MAX_HOLD_SECONDS must be positive when set")
        if self.min_time_game > self.max_time_game:
            errors.append("MIN_TIME_GAME must not exceed MAX_TIME_GAME")
        if self.min_time_transfer > self.max_time_transfer:
            errors.append("MIN_TIME_TRANSFER must not exceed MAX_TIME_TRANSFER")
        if self.log_format not in ("json", "text"):
            errors.append("LOG_FORMAT must be 'json' or 'text'")

        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

        return True

    def __post_init__(self):
        """Validate after initialization."""
        self.validate()
