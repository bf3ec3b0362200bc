"""Shared fixtures: small GeoTIFFs written on the fly into tmp_path.

Every raster is single-band. Bounds are given in the raster's own CRS and
turned into a north-up geotransform. ``crs=None`` writes a raster without
any coordinate reference system.
"""

from __future__ import annotations

import pathlib
from collections.abc import Callable
from typing import Any

import numpy
import pytest
import rasterio
import rasterio.transform

WORLD_LONLAT = (-180.0, -90.0, 180.0, 90.0)
MERCATOR_SQUARE = (0.0, 0.0, 1_000_000.0, 1_000_000.0)

RasterWriter = Callable[..., pathlib.Path]


def _write_raster(
    path: pathlib.Path,
    data: Any,
    *,
    crs: str | None = "EPSG:3857",
    bounds: tuple[float, float, float, float] = MERCATOR_SQUARE,
    nodata: float | None = None,
    dtype: str = "float64",
) -> pathlib.Path:
    array = numpy.asarray(data, dtype=dtype)
    height, width = array.shape
    path.parent.mkdir(parents=True, exist_ok=True)
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        width=width,
        height=height,
        count=1,
        dtype=dtype,
        crs=crs,
        transform=rasterio.transform.from_bounds(*bounds, width, height),
        nodata=nodata,
    ) as dataset:
        dataset.write(array, 1)
    return path


@pytest.fixture
def write_raster() -> RasterWriter:
    """Factory writing a GeoTIFF and returning its path."""
    return _write_raster


@pytest.fixture
def write_style() -> Callable[[pathlib.Path, str], pathlib.Path]:
    """Factory writing a ``style.txt`` colour-stop file into a folder."""

    def _write(folder: pathlib.Path, text: str) -> pathlib.Path:
        folder.mkdir(parents=True, exist_ok=True)
        path = folder / "style.txt"
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def world_folder(tmp_path: pathlib.Path, write_raster: RasterWriter) -> pathlib.Path:
    """Data folder with ``viridis/world.tif``: EPSG:4326, values 0..100."""
    root = tmp_path / "data"
    write_raster(
        root / "viridis" / "world.tif",
        numpy.linspace(0.0, 100.0, 18 * 36).reshape(18, 36),
        crs="EPSG:4326",
        bounds=WORLD_LONLAT,
    )
    return root
