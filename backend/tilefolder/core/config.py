"""Application settings and configuration management.

This module provides Pydantic-based settings management that loads
configuration from environment variables or a .env file. Settings cover
the data folder to scan, the address the server binds to, tile size,
scan and rendering concurrency, statistics and metadata cache behaviour,
CORS origins and the log level.

Example:
    Settings can be accessed via the cached get_settings() function:
        >>> from tilefolder.core.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.data_folder)

    Environment variables can override defaults:
        >>> DATA_FOLDER=/srv/rasters
        >>> PORT=9000
        >>> SCAN_WORKERS=8
        >>> APPROXIMATE_STATISTICS=true
"""

import functools
import pathlib

import pydantic
import pydantic_settings


class Settings(pydantic_settings.BaseSettings):
    """Runtime configuration pulled from environment variables or defaults.

    All settings can be overridden via environment variables or .env file.
    The data folder is not created: scanning a missing folder is a startup
    error.

    Attributes:
        data_folder: Root folder holding one subfolder per style group.
        host: Interface the HTTP server binds to.
        port: Port the HTTP server listens on.
        tile_size: Edge length of rendered tiles in pixels.
        scan_workers: Threads used to scan rasters at startup.
        handle_pool_size: Open raster handles kept per layer.
        approximate_statistics: Compute min/max from a decimated read
            instead of a full scan (faster, approximate).
        metadata_cache: Reuse raster metadata cached in the data folder.
        allow_origins: List of allowed CORS origins (["*"] allows all).
        log_level: Root log level name.

    Example:
        Create settings with custom values:
            >>> settings = Settings(
            ...     data_folder=Path("/srv/rasters"),
            ...     scan_workers=8,
            ... )
    """

    data_folder: pathlib.Path = pathlib.Path("data")
    host: str = "0.0.0.0"  # noqa: S104
    port: int = pydantic.Field(default=8000, ge=1, le=65535)
    tile_size: int = pydantic.Field(default=256, ge=1)
    scan_workers: int = pydantic.Field(default=4, ge=1)
    handle_pool_size: int = pydantic.Field(default=4, ge=1)
    approximate_statistics: bool = False
    metadata_cache: bool = True
    allow_origins: list[str] = ["*"]
    log_level: str = "INFO"

    model_config = pydantic_settings.SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


@functools.lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are loaded from environment variables or .env file and cached
    for the lifetime of the application. Subsequent calls return the same
    cached instance.

    Returns:
        Settings instance with all configuration values populated.
    """
    return Settings()
