"""On-disk cache of raster metadata.

Computing exact band statistics means reading every pixel of every raster,
which dominates startup time for large collections. The scanner therefore
keeps a CSV file (``.metadata_cache.csv``) in the data folder with one
record per successfully scanned raster. On the next start, a record whose
file size and modification time still match, and whose statistics were
computed in the same mode (exact or approximate), is reused instead of
opening the raster again.

Cache problems are never fatal: an unreadable or corrupt cache file is
logged and treated as empty, and a cache that cannot be written is logged
and skipped.
"""

from __future__ import annotations

import csv
import logging
from typing import TYPE_CHECKING, Any

from tilefolder.catalog import models

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

CACHE_FILENAME = ".metadata_cache.csv"

FIELDS = (
    "key",
    "size_bytes",
    "mtime_ns",
    "crs",
    "a",
    "b",
    "c",
    "d",
    "e",
    "f",
    "width",
    "height",
    "nodata",
    "minimum",
    "maximum",
    "minx",
    "miny",
    "maxx",
    "maxy",
    "west",
    "south",
    "east",
    "north",
    "approximate",
)


def _optional_float(value: str) -> float | None:
    return None if value == "" else float(value)


def _to_row(key: str, record: models.RasterMetadata) -> dict[str, Any]:
    data_range = record.data_range
    return {
        "key": key,
        "size_bytes": record.size_bytes,
        "mtime_ns": record.mtime_ns,
        "crs": record.crs,
        **dict(zip("abcdef", record.transform)),
        "width": record.width,
        "height": record.height,
        "nodata": "" if record.nodata is None else record.nodata,
        "minimum": "" if data_range is None else data_range.minimum,
        "maximum": "" if data_range is None else data_range.maximum,
        **dict(zip(("minx", "miny", "maxx", "maxy"), record.bbox)),
        **dict(zip(("west", "south", "east", "north"), record.lonlat_bbox)),
        "approximate": int(record.approximate),
    }


def _from_row(row: dict[str, str], root: pathlib.Path) -> models.RasterMetadata:
    minimum = _optional_float(row["minimum"])
    maximum = _optional_float(row["maximum"])
    data_range = (
        None
        if minimum is None or maximum is None
        else models.DataRange(minimum, maximum)
    )
    a, b, c, d, e, f = (float(row[name]) for name in "abcdef")
    return models.RasterMetadata(
        path=str(root / row["key"]),
        crs=row["crs"],
        transform=(a, b, c, d, e, f),
        width=int(row["width"]),
        height=int(row["height"]),
        nodata=_optional_float(row["nodata"]),
        data_range=data_range,
        bbox=(
            float(row["minx"]),
            float(row["miny"]),
            float(row["maxx"]),
            float(row["maxy"]),
        ),
        lonlat_bbox=(
            float(row["west"]),
            float(row["south"]),
            float(row["east"]),
            float(row["north"]),
        ),
        size_bytes=int(row["size_bytes"]),
        mtime_ns=int(row["mtime_ns"]),
        approximate=bool(int(row["approximate"])),
    )


def load_cache(
    cache_path: pathlib.Path,
    root: pathlib.Path,
) -> dict[str, models.RasterMetadata]:
    """Load cached records keyed by path relative to ``root``.

    Args:
        cache_path: Location of the CSV cache file.
        root: Data folder the keys are relative to.

    Returns:
        Mapping of relative POSIX path to metadata; empty if the cache is
        missing or cannot be parsed.
    """
    if not cache_path.is_file():
        return {}
    records: dict[str, models.RasterMetadata] = {}
    try:
        with cache_path.open(newline="", encoding="utf-8") as handle:
            for row in csv.DictReader(handle):
                records[row["key"]] = _from_row(row, root)
    except (OSError, csv.Error, KeyError, TypeError, ValueError) as exc:
        logger.warning("Ignoring unreadable metadata cache %s: %s", cache_path, exc)
        return {}
    return records


def lookup(
    records: Mapping[str, models.RasterMetadata],
    key: str,
    size_bytes: int,
    mtime_ns: int,
    approximate: bool = False,
) -> models.RasterMetadata | None:
    """Return the cached record for ``key`` if it is still valid.

    A record is valid when the file size and modification time match and
    its statistics were computed in the requested mode, so a full scan
    never reuses decimated statistics.
    """
    record = records.get(key)
    if record is None:
        return None
    if record.size_bytes != size_bytes or record.mtime_ns != mtime_ns:
        return None
    if record.approximate != approximate:
        return None
    return record


def save_cache(
    cache_path: pathlib.Path,
    records: Mapping[str, models.RasterMetadata],
) -> None:
    """Write ``records`` (keyed by relative path) to the cache file."""
    try:
        with cache_path.open("w", newline="", encoding="utf-8") as handle:
            writer = csv.DictWriter(handle, fieldnames=FIELDS)
            writer.writeheader()
            for key in sorted(records):
                writer.writerow(_to_row(key, records[key]))
    except OSError as exc:
        logger.warning("Could not write metadata cache %s: %s", cache_path, exc)
