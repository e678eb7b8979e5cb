"""Tests for environment-driven settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from gallery.core.config import CoreConfig, RateLimitSettings, SecuritySettings, Settings


def test_sections_read_prefixed_env_vars(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("RATE_LIMIT_MAX_ATTEMPTS", "7")
    monkeypatch.setenv("RATE_LIMIT_WINDOW_SECONDS", "30")
    monkeypatch.setenv("CACHE_DIR", str(tmp_path / "c"))
    monkeypatch.setenv("COUNTERS_DEDUP_WINDOW_SECONDS", "0")
    monkeypatch.setenv("DATABASE_URL", "postgresql://gallery@db/gallery")

    settings = Settings()

    assert settings.rate_limit.max_attempts == 7
    assert settings.rate_limit.window_seconds == 30
    assert settings.cache.dir == tmp_path / "c"
    assert settings.counters.dedup_window_seconds == 0
    assert settings.database.url == "postgresql://gallery@db/gallery"


def test_invalid_rate_limit_values_are_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RATE_LIMIT_MAX_ATTEMPTS", "0")

    with pytest.raises(ValidationError):
        RateLimitSettings()


def test_visitor_secret_falls_back_to_id_secret() -> None:
    assert SecuritySettings(public_id_secret="a", id_secret="b").visitor_secret == "a"
    assert SecuritySettings(public_id_secret="", id_secret="b").visitor_secret == "b"
    assert SecuritySettings(public_id_secret="", id_secret="").visitor_secret == ""


def test_core_config_from_settings(tmp_path: Path) -> None:
    settings = Settings(
        rate_limit=RateLimitSettings(max_attempts=5, window_seconds=10, dir=tmp_path),
        security=SecuritySettings(public_id_secret="s3cret"),
    )

    config = CoreConfig.from_settings(settings)

    assert (config.max_attempts, config.window_seconds) == (5, 10)
    assert config.secret == "s3cret"
    assert config.cache_dir == Path(settings.cache.dir)


@pytest.mark.parametrize(
    "overrides",
    [{"max_attempts": 0}, {"window_seconds": 0}, {"dedup_window_seconds": -1}],
)
def test_core_config_validation(overrides: dict) -> None:
    values = {"max_attempts": 1, "window_seconds": 1, "dedup_window_seconds": 0, "cache_dir": Path(".")}
    values.update(overrides)

    with pytest.raises(ValueError):
        CoreConfig(**values)
