"""Startup scanner that builds the layer registry from a data folder.

The data folder is organised by style group::

    data/
      viridis/            # folder name selects a built-in gradient
        world.tif
      depth/
        style.txt         # explicit colour stops for every raster here
        bathymetry.tif
        survey/2024.tif   # nested files belong to the top-level group
      loose.tif           # files at the root form the "default" group

Every raster is opened once to capture its CRS, geotransform, size, nodata
value and band-1 min/max. Files are scanned in parallel on a bounded thread
pool. As soon as the last member of a group is done, that group's style is
resolved against the group's aggregate data range, independently of the
other groups still being scanned.

Layer names are file names without extension. When several files share a
name, the first one in sorted relative-path order that loads keeps it and
the others are left out with a warning. A group whose member shares a name
with a file sorting before it also waits for that file.

Problems with individual files (unreadable file, missing CRS, duplicate
layer name) and with colour-stop files are recorded as warnings and never
abort the scan. Only an empty result is fatal.

Example:
    Build the registry for a data folder:
        >>> import pathlib
        >>> from tilefolder.services import scanner
        >>> registry = scanner.scan_data_folder(pathlib.Path("data"), workers=4)
        >>> [layer.name for layer in registry.all()]
        ['bathymetry', 'world']
"""

from __future__ import annotations

import concurrent.futures
import dataclasses
import logging
import pathlib
from typing import TYPE_CHECKING

from tilefolder.catalog import models
from tilefolder.catalog import registry as catalog_registry
from tilefolder.services import metadata_cache, styles
from tilefolder.utils import raster_io

if TYPE_CHECKING:
    from collections.abc import Callable, Container, Mapping

logger = logging.getLogger(__name__)

RASTER_SUFFIXES = frozenset({".tif", ".tiff", ".geotif", ".geotiff"})
DEFAULT_GROUP = "default"


class EmptyRegistryError(RuntimeError):
    """Raised when a scan completes without a single usable layer."""


@dataclasses.dataclass
class StyleGroup:
    """Rasters sharing the style of one folder."""

    name: str
    folder: pathlib.Path
    files: list[pathlib.Path] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class _ScanResult:
    path: pathlib.Path
    key: str
    metadata: models.RasterMetadata | None = None
    warning: models.ScanWarning | None = None


_GroupResult = tuple[
    models.Style | None,
    list[models.Layer],
    list[models.ScanWarning],
]


def is_raster_file(path: pathlib.Path) -> bool:
    return path.is_file() and path.suffix.lower() in RASTER_SUFFIXES


def _is_hidden(path: pathlib.Path, root: pathlib.Path) -> bool:
    return any(part.startswith(".") for part in path.relative_to(root).parts)


def discover_groups(root: pathlib.Path) -> list[StyleGroup]:
    """Group the rasters under ``root`` by top-level folder.

    Immediate subfolders are groups named after the folder; rasters
    anywhere below a subfolder belong to it. Rasters directly in ``root``
    join the ``default`` group, whose style folder is ``root/default`` if
    such a subfolder exists and ``root`` otherwise. Hidden files and
    folders are skipped. Groups and files are sorted.

    Args:
        root: The data folder.

    Returns:
        Non-empty style groups, sorted by name.
    """
    groups: dict[str, StyleGroup] = {}
    for folder in sorted(path for path in root.iterdir() if path.is_dir()):
        if folder.name.startswith("."):
            continue
        files = sorted(
            path
            for path in folder.rglob("*")
            if is_raster_file(path) and not _is_hidden(path, root)
        )
        groups[folder.name] = StyleGroup(folder.name, folder, files)

    loose = sorted(
        path
        for path in root.iterdir()
        if is_raster_file(path) and not path.name.startswith(".")
    )
    if loose:
        group = groups.setdefault(DEFAULT_GROUP, StyleGroup(DEFAULT_GROUP, root))
        group.files = sorted([*group.files, *loose])

    return [group for _, group in sorted(groups.items()) if group.files]


def claimants_by_name(
    paths: list[pathlib.Path],
    root: pathlib.Path,
) -> dict[str, list[pathlib.Path]]:
    """Files competing for each layer name, in sorted relative-path order."""
    claimants: dict[str, list[pathlib.Path]] = {}
    for path in sorted(paths, key=lambda path: path.relative_to(root).as_posix()):
        claimants.setdefault(path.stem, []).append(path)
    return claimants


def assign_names(
    paths: list[pathlib.Path],
    loaded: Container[pathlib.Path],
    root: pathlib.Path,
) -> tuple[dict[pathlib.Path, str], dict[pathlib.Path, models.ScanWarning]]:
    """Give every loaded raster its layer name, rejecting duplicates.

    The first loaded file in sorted relative-path order keeps a name. Files
    that failed to scan never claim one, so they cannot push a readable
    file with the same name out of the registry.

    Args:
        paths: Candidate rasters.
        loaded: Candidates that were scanned successfully.
        root: The data folder, used to order files by relative path.

    Returns:
        Mapping of path to layer name for the retained files, and the
        ``name_collision`` warning of every rejected loaded file.
    """
    names: dict[pathlib.Path, str] = {}
    rejected: dict[pathlib.Path, models.ScanWarning] = {}
    for name, claimants in claimants_by_name(paths, root).items():
        owner = None
        for path in claimants:
            if path not in loaded:
                continue
            if owner is None:
                owner = path
                names[path] = name
                continue
            message = (
                f"layer name '{name}' is already used by "
                f"{owner.relative_to(root).as_posix()}"
            )
            rejected[path] = models.ScanWarning(
                "name_collision",
                str(path),
                message,
                name,
            )
    return names, rejected


def read_raster_metadata(
    path: pathlib.Path,
    approximate: bool = False,
) -> models.RasterMetadata:
    """Open one raster and collect everything the registry needs.

    Args:
        path: Raster file.
        approximate: Use decimated statistics instead of a full scan.

    Returns:
        Metadata of the raster.

    Raises:
        MissingCRSError: if the raster has no CRS.
        RasterReadError: if the raster cannot be opened, read or located.
    """
    stat = path.stat()
    with raster_io.open_raster(path) as handle:
        crs = handle.crs_string
        try:
            bbox, lonlat_bbox = raster_io.extent_bounds(crs, handle.bounds)
        except Exception as exc:  # noqa: BLE001
            raise raster_io.RasterReadError(
                f"{path}: cannot reproject extent: {exc}",
            ) from exc
        statistics = handle.statistics(approximate=approximate)
        transform = handle.transform
        return models.RasterMetadata(
            path=str(path),
            crs=crs,
            transform=(
                transform.a,
                transform.b,
                transform.c,
                transform.d,
                transform.e,
                transform.f,
            ),
            width=handle.width,
            height=handle.height,
            nodata=handle.nodata,
            data_range=(
                None if statistics is None else models.DataRange(*statistics)
            ),
            bbox=bbox,
            lonlat_bbox=lonlat_bbox,
            size_bytes=stat.st_size,
            mtime_ns=stat.st_mtime_ns,
            approximate=approximate,
        )


def _scan_file(
    path: pathlib.Path,
    key: str,
    cached: Mapping[str, models.RasterMetadata],
    approximate: bool,
) -> _ScanResult:
    try:
        stat = path.stat()
        record = metadata_cache.lookup(
            cached,
            key,
            stat.st_size,
            stat.st_mtime_ns,
            approximate,
        )
        if record is None:
            record = read_raster_metadata(path, approximate)
    except raster_io.MissingCRSError as exc:
        return _ScanResult(
            path,
            key,
            warning=models.ScanWarning("missing_crs", str(path), str(exc)),
        )
    except (raster_io.RasterReadError, OSError) as exc:
        return _ScanResult(
            path,
            key,
            warning=models.ScanWarning("unreadable", str(path), str(exc)),
        )
    return _ScanResult(path, key, metadata=record)


def build_group(
    group: StyleGroup,
    records: list[tuple[str, models.RasterMetadata]],
) -> tuple[models.Style, list[models.Layer], list[models.ScanWarning]]:
    """Resolve a finished group's style and turn its records into layers.

    Args:
        group: The style group.
        records: (layer name, metadata) of every member scanned
            successfully, in file order. Must not be empty.

    Returns:
        The group's style, its layers and the style/coverage warnings.
    """
    data_range = models.DataRange.aggregate(
        [record.data_range for _, record in records],
    )
    style, warnings = styles.resolve_style(group.folder, group.name, data_range)

    layers = [
        models.Layer(
            name=name,
            group=group.name,
            path=record.path,
            crs=record.crs,
            transform=record.transform,
            width=record.width,
            height=record.height,
            nodata=record.nodata,
            data_range=record.data_range,
            bbox=record.bbox,
            lonlat_bbox=record.lonlat_bbox,
            size_bytes=record.size_bytes,
            style=style,
        )
        for name, record in records
    ]

    if data_range is not None and not styles.covers(style, data_range):
        stop_range = style.stop_range
        message = (
            f"colour stops [{stop_range.minimum:g}, {stop_range.maximum:g}] "
            f"do not cover data range "
            f"[{data_range.minimum:g}, {data_range.maximum:g}]"
        )
        logger.warning("Style '%s': %s", group.name, message)
        warnings.extend(
            models.ScanWarning("coverage", layer.path, message, layer.name)
            for layer in layers
        )
    return style, layers, warnings


def _finish_group(
    group: StyleGroup,
    candidates: set[pathlib.Path],
    scanned: Mapping[pathlib.Path, _ScanResult],
    root: pathlib.Path,
) -> _GroupResult:
    loaded = {path for path in candidates if scanned[path].metadata is not None}
    names, rejected = assign_names(list(candidates), loaded, root)

    records: list[tuple[str, models.RasterMetadata]] = []
    collisions: list[models.ScanWarning] = []
    for path in sorted(group.files, key=lambda path: scanned[path].key):
        metadata = scanned[path].metadata
        if path in rejected:
            logger.warning("Skipping %s: %s", path, rejected[path].message)
            collisions.append(rejected[path])
        elif metadata is not None:
            records.append((names[path], metadata))

    if not records:
        return None, [], collisions
    style, layers, warnings = build_group(group, records)
    return style, layers, [*collisions, *warnings]


def scan_data_folder(
    root: pathlib.Path,
    *,
    workers: int = 4,
    approximate: bool = False,
    use_cache: bool = True,
    on_progress: Callable[[pathlib.Path, bool], None] | None = None,
) -> catalog_registry.LayerRegistry:
    """Scan ``root`` and build the layer registry.

    Args:
        root: The data folder.
        workers: Size of the thread pool scanning files.
        approximate: Use decimated (approximate) statistics.
        use_cache: Reuse and refresh the on-disk metadata cache.
        on_progress: Called with (path, succeeded) after each file, from
            the calling thread.

    Returns:
        The complete, immutable registry.

    Raises:
        NotADirectoryError: if ``root`` is not a directory.
        EmptyRegistryError: if no layer could be loaded.
    """
    root = pathlib.Path(root)
    if not root.is_dir():
        raise NotADirectoryError(f"data folder not found: {root}")

    groups = discover_groups(root)
    paths = [path for group in groups for path in group.files]
    claimants = claimants_by_name(paths, root)
    # A group can be built once its members and every file sorting before
    # them under the same name are done.
    needed = {
        group.name: {
            other
            for path in group.files
            for other in claimants[path.stem][
                : claimants[path.stem].index(path) + 1
            ]
        }
        for group in groups
    }
    cache_path = root / metadata_cache.CACHE_FILENAME
    cached = metadata_cache.load_cache(cache_path, root) if use_cache else {}
    logger.info(
        "Scanning %d raster(s) in %d style group(s) under %s",
        len(paths),
        len(groups),
        root,
    )

    scanned: dict[pathlib.Path, _ScanResult] = {}
    built: dict[str, _GroupResult] = {}

    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [
            executor.submit(
                _scan_file,
                path,
                path.relative_to(root).as_posix(),
                cached,
                approximate,
            )
            for path in paths
        ]
        for future in concurrent.futures.as_completed(futures):
            result = future.result()
            scanned[result.path] = result
            if result.warning is not None:
                logger.warning("Skipping %s: %s", result.path, result.warning.message)
            if on_progress is not None:
                on_progress(result.path, result.warning is None)

            for group in groups:
                if group.name in built or not needed[group.name] <= scanned.keys():
                    continue
                built[group.name] = _finish_group(
                    group,
                    needed[group.name],
                    scanned,
                    root,
                )

    warnings: list[models.ScanWarning] = []
    layers: list[models.Layer] = []
    resolved: dict[str, models.Style] = {}
    fresh: dict[str, models.RasterMetadata] = {}
    for group in groups:
        for result in sorted(
            (scanned[path] for path in group.files),
            key=lambda result: result.key,
        ):
            if result.warning is not None:
                warnings.append(result.warning)
            if result.metadata is not None:
                fresh[result.key] = result.metadata
        style, group_layers, group_warnings = built[group.name]
        if style is not None:
            resolved[group.name] = style
        layers.extend(group_layers)
        warnings.extend(group_warnings)

    if use_cache:
        metadata_cache.save_cache(cache_path, fresh)

    if not layers:
        raise EmptyRegistryError(f"no usable raster layers found under {root}")

    logger.info("Loaded %d layer(s) in %d style group(s)", len(layers), len(resolved))
    return catalog_registry.LayerRegistry(
        layers=layers,
        styles=resolved,
        warnings=warnings,
    )
