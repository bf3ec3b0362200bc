"""Tests for application configuration and settings.

This module contains unit tests for the Settings Pydantic model in
tilefolder.core.config. It ensures that default values, environment
overrides, validation and get_settings caching work as expected.
"""

from __future__ import annotations

import pathlib

import pydantic
import pytest

from tilefolder.core import config


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that Settings has expected default values."""
    monkeypatch.delenv("DATA_FOLDER", raising=False)
    monkeypatch.delenv("PORT", raising=False)
    settings = config.Settings(_env_file=None)  # type: ignore[call-arg]
    assert settings.data_folder == pathlib.Path("data")
    assert settings.host == "0.0.0.0"
    assert settings.port == 8000
    assert settings.tile_size == 256
    assert settings.scan_workers == 4
    assert settings.handle_pool_size == 4
    assert settings.approximate_statistics is False
    assert settings.metadata_cache is True
    assert settings.allow_origins == ["*"]
    assert settings.log_level == "INFO"


def test_settings_from_environment(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: pathlib.Path,
) -> None:
    """Test that environment variables override defaults."""
    monkeypatch.setenv("DATA_FOLDER", str(tmp_path))
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("approximate_statistics", "true")
    monkeypatch.setenv("ALLOW_ORIGINS", '["http://localhost:3000"]')
    settings = config.Settings(_env_file=None)  # type: ignore[call-arg]
    assert settings.data_folder == tmp_path
    assert settings.port == 9000
    assert settings.approximate_statistics is True
    assert settings.allow_origins == ["http://localhost:3000"]


@pytest.mark.parametrize(
    "overrides",
    [{"port": 0}, {"tile_size": 0}, {"scan_workers": 0}, {"handle_pool_size": 0}],
)
def test_settings_validation(overrides: dict[str, int]) -> None:
    """Test that out-of-range values are rejected."""
    with pytest.raises(pydantic.ValidationError):
        config.Settings(**overrides)


def test_settings_do_not_create_data_folder(tmp_path: pathlib.Path) -> None:
    """Test that building settings has no filesystem side effects."""
    settings = config.Settings(data_folder=tmp_path / "rasters")
    assert not settings.data_folder.exists()


def test_get_settings_cached() -> None:
    """Test that get_settings returns cached instance."""
    config.get_settings.cache_clear()
    settings1 = config.get_settings()
    settings2 = config.get_settings()
    assert settings1 is settings2
    config.get_settings.cache_clear()
