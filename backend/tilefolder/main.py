"""FastAPI application entrypoint and configuration.

This module provides the application factory that sets up CORS
middleware, includes the tile, layer, style and viewer routers, and
exposes a health check endpoint for monitoring.

The layer registry is built once, before the first request is served:
either handed to create_app() by the caller (see ``python -m tilefolder``)
or scanned from the configured data folder during application startup.
The registry and the tile renderer live on ``app.state``.

Example:
    The application can be run with uvicorn:
        $ DATA_FOLDER=/srv/rasters uvicorn tilefolder.main:app

    Or built around an existing registry:
        >>> from tilefolder import main
        >>> app = main.create_app(registry=registry)
"""

from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator

import fastapi
from fastapi.middleware import cors
from starlette import concurrency

from tilefolder.api import layers, styles, tiles, viewer
from tilefolder.catalog import registry as catalog_registry
from tilefolder.core import config
from tilefolder.services import render, reporting, scanner


def load_registry(
    settings: config.Settings,
    ansi: bool = False,
) -> catalog_registry.LayerRegistry:
    """Scan the data folder with a progress bar and log the outcome.

    Args:
        settings: Application settings.
        ansi: Draw the colour column of the style summary with ANSI
            escapes.

    Returns:
        The layer registry.

    Raises:
        NotADirectoryError: if the data folder does not exist.
        EmptyRegistryError: if no layer could be loaded.
    """
    with reporting.ScanProgress() as progress:
        registry = scanner.scan_data_folder(
            settings.data_folder,
            workers=settings.scan_workers,
            approximate=settings.approximate_statistics,
            use_cache=settings.metadata_cache,
            on_progress=progress,
        )
    reporting.log_registry_report(registry, ansi=ansi)
    return registry


def install_registry(
    app: fastapi.FastAPI,
    registry: catalog_registry.LayerRegistry,
    settings: config.Settings,
) -> None:
    """Attach a registry and a renderer over it to the application."""
    app.state.registry = registry
    app.state.renderer = render.TileRenderer(
        registry,
        tile_size=settings.tile_size,
        pool_size=settings.handle_pool_size,
    )


def create_app(
    settings: config.Settings | None = None,
    registry: catalog_registry.LayerRegistry | None = None,
) -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings, get_settings() when omitted.
        registry: Prebuilt layer registry. When omitted, the data folder is
            scanned at startup and startup fails if that scan does.

    Returns:
        Configured FastAPI application instance ready for ASGI server.

    Example:
        The app can be used with uvicorn or other ASGI servers:
            >>> app = create_app()
            >>> # Or use the module-level app instance:
            >>> from tilefolder.main import app
    """
    settings = settings or config.get_settings()

    @contextlib.asynccontextmanager
    async def lifespan(app: fastapi.FastAPI) -> AsyncIterator[None]:
        if app.state.registry is None:
            loaded = await concurrency.run_in_threadpool(load_registry, settings)
            install_registry(app, loaded, settings)
        try:
            yield
        finally:
            if app.state.renderer is not None:
                app.state.renderer.close()

    app = fastapi.FastAPI(title="Tile Folder", version="0.1.0", lifespan=lifespan)
    app.state.registry = None
    app.state.renderer = None
    if registry is not None:
        install_registry(app, registry, settings)

    app.include_router(tiles.router)
    app.include_router(layers.router)
    app.include_router(styles.router)
    app.include_router(viewer.router)

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:  # type: ignore[misc]
        """Health check endpoint for monitoring and load balancers.

        Returns:
            Dictionary with status "ok" if the service is running.
        """
        return {"status": "ok"}

    return app


app = create_app()
