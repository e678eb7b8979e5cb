"""Pytest configuration and fixtures shared across all test modules.

Every app built here gets its own temporary cache directory, rate limit
directory and SQLite stores, so tests never touch ./data or a .env file.
"""

import os
from pathlib import Path
from unittest.mock import Mock

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ["APP_ENV"] = "testing"

import pytest
from fastapi.testclient import TestClient

from gallery.core.app_factory import create_app
from gallery.core.config import (
    CacheSettings,
    CounterSettings,
    DatabaseSettings,
    LogSettings,
    RateLimitSettings,
    SecuritySettings,
    Settings,
)
from gallery.db.session import Database

ADMIN_KEY = "test-admin-key-123"


def make_settings(tmp_path: Path, **overrides) -> Settings:
    """Build isolated settings rooted at ``tmp_path``.

    Keyword overrides replace whole sections, e.g.
    ``rate_limit=RateLimitSettings(max_attempts=3, dir=...)``.
    """
    sections = {
        "app_env": "testing",
        "cache": CacheSettings(dir=tmp_path / "cache"),
        "rate_limit": RateLimitSettings(dir=tmp_path / "rate-limits", max_attempts=100, window_seconds=60),
        "security": SecuritySettings(
            public_id_secret="test-visitor-secret",
            admin_api_keys=ADMIN_KEY,
            admin_api_key_required=True,
        ),
        "counters": CounterSettings(dedup_window_seconds=60),
        "database": DatabaseSettings(url=f"sqlite:///{tmp_path / 'db' / 'gallery.db'}"),
        "log": LogSettings(level="WARNING"),
    }
    sections.update(overrides)
    return Settings(**sections)


@pytest.fixture
def clock() -> Mock:
    """Controllable UNIX clock shared by the limiter and the view counter."""
    return Mock(return_value=1_700_000_000.0)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def app(settings: Settings, clock: Mock):
    application = create_app(settings, clock=clock)
    yield application
    application.state.context.close()


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def context(app):
    return app.state.context


@pytest.fixture
def build_app(tmp_path: Path, clock: Mock):
    """Factory for apps with overridden settings sections."""
    built = []

    def _build(**overrides):
        application = create_app(make_settings(tmp_path, **overrides), clock=clock)
        built.append(application)
        return application

    yield _build
    for application in built:
        application.state.context.close()


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-API-Key": ADMIN_KEY}


@pytest.fixture
def database(tmp_path: Path):
    db = Database(f"sqlite:///{tmp_path / 'store' / 'gallery.db'}")
    db.create_tables()
    yield db
    db.dispose()
