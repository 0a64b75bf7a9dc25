"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    return AppSettings()


def _build_redis_settings() -> "RedisSettings":
    return RedisSettings()


def _build_limit_settings() -> "LimitSettings":
    return LimitSettings()


def _build_quota_settings() -> "QuotaSettings":
    return QuotaSettings()


def _build_log_settings() -> "LogSettings":
    return LogSettings()


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    api_key_required: bool = Field(
        True,
        description="Whether admin endpoints (stats, reset) require an API key",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid admin API keys",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Shared counter store connection."""

    enabled: bool = Field(
        True,
        description="Use Redis for shared sliding-window counters",
    )
    url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL",
    )
    timeout_ms: int = Field(
        250,
        description="Upper bound for a single store call before falling back",
        ge=1,
    )
    max_connections: int = Field(
        50,
        description="Connection pool size",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class LimitSettings(BaseSettings):
    """Window sizes and quotas for the named limiter classes."""

    api_window_ms: int = Field(15 * 60 * 1000, ge=1)
    api_max_requests: int = Field(100, ge=1)
    auth_window_ms: int = Field(15 * 60 * 1000, ge=1)
    auth_max_requests: int = Field(5, ge=1)
    strict_window_ms: int = Field(60 * 1000, ge=1)
    strict_max_requests: int = Field(10, ge=1)
    image_window_ms: int = Field(15 * 60 * 1000, ge=1)
    image_max_requests: int = Field(20, ge=1)
    analytics_window_ms: int = Field(60 * 1000, ge=1)
    analytics_max_requests: int = Field(60, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="LIMIT_",
        case_sensitive=False,
    )


class QuotaSettings(BaseSettings):
    """Per-API-key quotas for external API consumers."""

    requests_per_hour: int = Field(100, ge=1, description="Requests per key in a rolling hour")
    requests_per_day: int = Field(1000, ge=1, description="Requests per key in a rolling day")
    concurrent_jobs: int = Field(5, ge=1, description="Jobs a key may have in flight at once")
    job_ttl_seconds: int = Field(
        600,
        ge=1,
        description="Expiry of the in-flight job counter, in case a release is missed",
    )

    model_config = SettingsConfigDict(
        env_prefix="QUOTA_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="json or plain")
    output: str = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10 * 1024 * 1024, description="Rotate after this many bytes (0 disables)")
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field("X-Request-ID", description="Correlation header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    redis: RedisSettings = Field(default_factory=_build_redis_settings)
    limits: LimitSettings = Field(default_factory=_build_limit_settings)
    quotas: QuotaSettings = Field(default_factory=_build_quota_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
