"""Tests for the on-disk raster metadata cache.

The cache must give back exactly what was stored (so a rescan over an
unchanged folder builds an identical registry), reject records whose
file changed or whose statistics mode differs, and never fail the scan
when the cache file is damaged.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from tilefolder.catalog import models
from tilefolder.services import metadata_cache

if TYPE_CHECKING:
    import pathlib

WKT = (
    'PROJCS["unnamed",GEOGCS["WGS 84",DATUM["WGS_1984",'
    'SPHEROID["WGS 84",6378137,298.257223563]]],PROJECTION["Mollweide"]]'
)


def _record(
    root: pathlib.Path,
    key: str,
    *,
    crs: str = "EPSG:3857",
    nodata: float | None = -9999.0,
    data_range: models.DataRange | None = models.DataRange(-80.59, 22613972.0),
    approximate: bool = False,
) -> models.RasterMetadata:
    return models.RasterMetadata(
        path=str(root / key),
        crs=crs,
        transform=(0.1, 0.0, -180.0, 0.0, -0.1, 90.0),
        width=3600,
        height=1800,
        nodata=nodata,
        data_range=data_range,
        bbox=(-20037508.342789244, -20037508.342789244, 1.0 / 3.0, 2.0 / 3.0),
        lonlat_bbox=(-180.0, -90.0, 180.0, 90.0),
        size_bytes=123456,
        mtime_ns=1_700_000_000_123_456_789,
        approximate=approximate,
    )


def test_save_and_load(tmp_path: pathlib.Path) -> None:
    """Test that records come back identical, including None fields."""
    cache_path = tmp_path / metadata_cache.CACHE_FILENAME
    records = {
        "viridis/world.tif": _record(tmp_path, "viridis/world.tif"),
        "empty.tif": _record(tmp_path, "empty.tif", nodata=None, data_range=None),
        "moll/a.tif": _record(tmp_path, "moll/a.tif", crs=WKT),
        "fast.tif": _record(tmp_path, "fast.tif", approximate=True),
    }
    metadata_cache.save_cache(cache_path, records)
    assert metadata_cache.load_cache(cache_path, tmp_path) == records


def test_load_missing_cache(tmp_path: pathlib.Path) -> None:
    """Test that a missing cache file is an empty cache."""
    assert metadata_cache.load_cache(tmp_path / "none.csv", tmp_path) == {}


@pytest.mark.parametrize(
    "text",
    [
        "key,size_bytes\nviridis/world.tif,12\n",
        ",".join(metadata_cache.FIELDS)
        + "\n"
        + ",".join(["x"] * len(metadata_cache.FIELDS))
        + "\n",
    ],
)
def test_load_corrupt_cache(
    tmp_path: pathlib.Path,
    caplog: pytest.LogCaptureFixture,
    text: str,
) -> None:
    """Test that a damaged cache is logged and ignored."""
    cache_path = tmp_path / metadata_cache.CACHE_FILENAME
    cache_path.write_text(text, encoding="utf-8")
    assert metadata_cache.load_cache(cache_path, tmp_path) == {}
    assert "Ignoring unreadable metadata cache" in caplog.text


def test_lookup_checks_size_and_mtime(tmp_path: pathlib.Path) -> None:
    """Test that only unchanged files reuse their record."""
    record = _record(tmp_path, "a.tif")
    records = {"a.tif": record}
    assert metadata_cache.lookup(records, "a.tif", 123456, record.mtime_ns) is record
    assert metadata_cache.lookup(records, "a.tif", 1, record.mtime_ns) is None
    assert metadata_cache.lookup(records, "a.tif", 123456, 0) is None
    assert metadata_cache.lookup(records, "b.tif", 123456, record.mtime_ns) is None


def test_save_to_unwritable_location(
    tmp_path: pathlib.Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Test that a failed write is logged, not raised."""
    cache_path = tmp_path / "missing" / metadata_cache.CACHE_FILENAME
    metadata_cache.save_cache(cache_path, {"a.tif": _record(tmp_path, "a.tif")})
    assert not cache_path.exists()
    assert "Could not write metadata cache" in caplog.text


def test_lookup_checks_statistics_mode(tmp_path: pathlib.Path) -> None:
    """Test that exact and approximate statistics are never mixed."""
    exact = _record(tmp_path, "a.tif")
    decimated = _record(tmp_path, "b.tif", approximate=True)
    records = {"a.tif": exact, "b.tif": decimated}
    mtime_ns = exact.mtime_ns
    assert metadata_cache.lookup(records, "a.tif", 123456, mtime_ns) is exact
    assert metadata_cache.lookup(records, "a.tif", 123456, mtime_ns, True) is None
    assert metadata_cache.lookup(records, "b.tif", 123456, mtime_ns) is None
    assert (
        metadata_cache.lookup(records, "b.tif", 123456, mtime_ns, True) is decimated
    )
