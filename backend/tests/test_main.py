"""Tests for the FastAPI application factory and the process entry point.

This module validates that:
    - the FastAPI app is correctly instantiated via main.create_app,
    - OpenAPI metadata (title, version) matches the project contract,
    - the tile, layer, style and viewer routers are registered,
    - the /health endpoint returns the expected response,
    - ``python -m tilefolder`` exits with status 1 when no registry can be
      built and otherwise hands the app to uvicorn.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from fastapi import testclient

from tilefolder import __main__ as entry
from tilefolder import main
from tilefolder.core import config

if TYPE_CHECKING:
    import pathlib

    import pytest


def test_create_app() -> None:
    """Test that create_app returns a configured FastAPI instance."""
    app = main.create_app()
    assert app is not None
    assert app.title == "Tile Folder"
    assert app.version == "0.1.0"


def test_health_endpoint() -> None:
    """Test the health check endpoint returns ok status."""
    app = main.create_app()
    client = testclient.TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_app_includes_routers() -> None:
    """Test that all API routers are included in the app."""
    app = main.create_app()
    routes: list[str] = [
        cast(str, getattr(route, "path", ""))
        for route in app.routes  # type: ignore[attr-defined]
        if hasattr(route, "path")
    ]
    assert "/health" in routes
    assert "/map" in routes
    assert "/api/layers" in routes
    assert "/api/layers/{name}/bbox" in routes
    assert "/api/styles" in routes
    assert "/tiles/{layer}/{z}/{x}/{y}" in routes
    assert "/tiles/{layer}/{z}/{x}/{y}.png" in routes


def test_cors_headers(tmp_path: pathlib.Path) -> None:
    """Test that configured origins are allowed."""
    settings = config.Settings(
        data_folder=tmp_path,
        allow_origins=["http://viewer.example"],
    )
    client = testclient.TestClient(main.create_app(settings))
    response = client.get("/health", headers={"Origin": "http://viewer.example"})
    assert response.headers["access-control-allow-origin"] == "http://viewer.example"


def _use_data_folder(
    monkeypatch: pytest.MonkeyPatch,
    folder: pathlib.Path,
) -> None:
    monkeypatch.setenv("DATA_FOLDER", str(folder))
    monkeypatch.setenv("METADATA_CACHE", "false")
    config.get_settings.cache_clear()
    monkeypatch.setattr(entry.logging_setup, "setup_logging", lambda level: None)


def test_entry_point_missing_folder(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: pathlib.Path,
) -> None:
    """Test exit status 1 for a missing data folder."""
    _use_data_folder(monkeypatch, tmp_path / "missing")
    try:
        assert entry.main() == 1
    finally:
        config.get_settings.cache_clear()


def test_entry_point_empty_folder(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: pathlib.Path,
) -> None:
    """Test exit status 1 when no layer can be loaded."""
    _use_data_folder(monkeypatch, tmp_path)
    try:
        assert entry.main() == 1
    finally:
        config.get_settings.cache_clear()


def test_entry_point_serves_registry(
    monkeypatch: pytest.MonkeyPatch,
    world_folder: pathlib.Path,
) -> None:
    """Test that a successful scan is handed to uvicorn."""
    _use_data_folder(monkeypatch, world_folder)
    monkeypatch.setenv("PORT", "9123")
    served: dict[str, Any] = {}

    def fake_run(app: Any, **kwargs: Any) -> None:
        served["app"] = app
        served.update(kwargs)

    monkeypatch.setattr(entry.uvicorn, "run", fake_run)
    try:
        assert entry.main() == 0
    finally:
        config.get_settings.cache_clear()

    assert served["port"] == 9123
    assert served["log_level"] == "info"
    assert "world" in served["app"].state.registry
