"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Nothing here is instantiated at import time. The HTTP entry point builds a
``Settings`` instance, derives a ``CoreConfig`` from it and hands both to the
components it constructs.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}


def load_env_file(app_env: str | None = None) -> str | None:
    """Load the .env file for the selected environment into os.environ.

    Pydantic nested BaseSettings don't inherit env_file, so the file is loaded
    up front and every section reads plain environment variables.

    Args:
        app_env: Environment name; defaults to the APP_ENV variable.

    Returns:
        Path of the loaded file, or None when no file exists.
    """

    env_name = app_env or os.getenv("APP_ENV", "development")
    env_path = PROJECT_ROOT / ENV_FILE_MAP.get(env_name, ".env.development")

    # Production might inject via env vars only
    if not env_path.is_file():
        return None

    from dotenv import load_dotenv

    load_dotenv(env_path, override=True)
    return str(env_path)


class CacheSettings(BaseSettings):
    """Flat-file content cache configuration."""

    dir: Path = Field(
        Path("./data/cache"),
        description="Directory holding one file per cache key",
    )

    model_config = SettingsConfigDict(env_prefix="CACHE_", case_sensitive=False)


class RateLimitSettings(BaseSettings):
    """Sliding-window rate limiting for public write-amplifying endpoints."""

    enabled: bool = Field(True, description="Enable per-IP rate limiting")
    dir: Path = Field(
        Path("./data/rate-limits"),
        description="Directory holding one window file per (identifier, action)",
    )
    max_attempts: int = Field(
        100,
        description="Maximum attempts allowed inside the trailing window",
        ge=1,
    )
    window_seconds: int = Field(
        60,
        description="Length of the trailing window in seconds",
        ge=1,
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )

    model_config = SettingsConfigDict(env_prefix="RATE_LIMIT_", case_sensitive=False)


class SecuritySettings(BaseSettings):
    """Secrets and admin access configuration."""

    public_id_secret: str = Field(
        "",
        description="HMAC secret used to sign visitor id cookies",
    )
    id_secret: str = Field(
        "",
        description="Fallback secret when public_id_secret is not set",
    )
    admin_api_key_required: bool = Field(
        True,
        description="Whether admin endpoints require an X-API-Key header",
    )
    admin_api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid admin API keys",
    )

    model_config = SettingsConfigDict(env_prefix="SECURITY_", case_sensitive=False)

    @property
    def visitor_secret(self) -> str:
        """Secret used for visitor cookies, empty in degraded mode."""
        return self.public_id_secret or self.id_secret


class CounterSettings(BaseSettings):
    """View counter behaviour."""

    dedup_window_seconds: int = Field(
        60,
        description="Repeat views by the same visitor inside this window are not counted",
        ge=0,
    )

    model_config = SettingsConfigDict(env_prefix="COUNTERS_", case_sensitive=False)


class DatabaseSettings(BaseSettings):
    """Content store and counters store locations."""

    url: str = Field(
        "sqlite:///./data/gallery.db",
        description="SQLAlchemy URL of the content store",
    )
    counters_url: str | None = Field(
        None,
        description=(
            "SQLAlchemy URL of the counters store. Defaults to a sibling "
            "counters.db for SQLite, otherwise the content store itself."
        ),
    )
    echo: bool = Field(False, description="Echo SQL statements")

    model_config = SettingsConfigDict(env_prefix="DATABASE_", case_sensitive=False)


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(0, description="Rotate log file after this many bytes (0 disables)")
    backup_count: int = Field(3, description="Rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header carrying the request correlation id",
    )

    model_config = SettingsConfigDict(env_prefix="LOG_", case_sensitive=False)


class Settings(BaseSettings):
    """Main application settings container.

    Raises validation errors on construction if settings are invalid.
    """

    app_env: str = Field(default_factory=lambda: os.getenv("APP_ENV", "development"))
    cache: CacheSettings = Field(default_factory=CacheSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    counters: CounterSettings = Field(default_factory=CounterSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(case_sensitive=False)


@dataclass(frozen=True)
class CoreConfig:
    """Configuration consumed by the cache, limiter, identity and counter layers.

    Attributes:
        max_attempts: Attempts allowed per (identifier, action) window.
        window_seconds: Rate limit window length.
        dedup_window_seconds: View dedup window length.
        cache_dir: Root directory of the flat-file cache.
        secret: Visitor cookie signing secret (empty means degraded mode).
    """

    max_attempts: int
    window_seconds: int
    dedup_window_seconds: int
    cache_dir: Path
    secret: str = ""

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")
        if self.dedup_window_seconds < 0:
            raise ValueError("dedup_window_seconds must be >= 0")

    @classmethod
    def from_settings(cls, settings: Settings) -> "CoreConfig":
        return cls(
            max_attempts=settings.rate_limit.max_attempts,
            window_seconds=settings.rate_limit.window_seconds,
            dedup_window_seconds=settings.counters.dedup_window_seconds,
            cache_dir=Path(settings.cache.dir),
            secret=settings.security.visitor_secret,
        )


def build_settings(app_env: str | None = None) -> Settings:
    """Load the environment file and build a fresh Settings instance."""

    load_env_file(app_env)
    return Settings()
