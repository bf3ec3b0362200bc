"""Raster access adapter built on rasterio.

This module is the only place that talks to rasterio directly. It wraps an
open dataset in a small handle exposing exactly what the scanner and the
tile renderer need: CRS, affine geotransform, dimensions, nodata, windowed
band-1 reads as masked float64 arrays, min/max statistics, and coordinate
reprojection between CRSs.

Rasterio dataset objects are not safe for unsynchronized use from several
threads, so tile rendering goes through a HandlePool: a bounded set of open
handles for one file, checked out for the duration of one read.

Example:
    Open a raster and read a window:
        >>> from tilefolder.utils import raster_io
        >>> with raster_io.open_raster("data/viridis/world.tif") as handle:
        ...     block = handle.read_window(0, 0, 256, 256)
        ...     print(handle.crs_string, block.shape)

    Share handles between request threads:
        >>> pool = raster_io.HandlePool("data/viridis/world.tif", size=4)
        >>> with pool.checkout() as handle:
        ...     block = handle.read_window(0, 0, 16, 16)
        >>> pool.close()
"""

from __future__ import annotations

import contextlib
import logging
import math
import threading
from typing import TYPE_CHECKING

import numpy
import rasterio
import rasterio.crs
import rasterio.errors
import rasterio.warp
import rasterio.windows

if TYPE_CHECKING:
    import pathlib
    import types
    from collections.abc import Callable, Iterator

    import affine

logger = logging.getLogger(__name__)

BBox = tuple[float, float, float, float]

WEB_MERCATOR = rasterio.crs.CRS.from_epsg(3857)
WGS84 = rasterio.crs.CRS.from_epsg(4326)
MAX_LATITUDE = 85.0511287798066

#: Longest side, in pixels, of the decimated read used for approximate stats.
APPROX_STATS_SIZE = 1024


class RasterReadError(RuntimeError):
    """Raised when a raster cannot be opened or a window cannot be read.

    Wraps rasterio errors so that callers only ever handle one exception
    type for I/O problems, whatever the underlying GDAL driver reported.
    """


class MissingCRSError(RasterReadError):
    """Raised when a raster carries no coordinate reference system."""


class RasterHandle:
    """Thin wrapper around an open rasterio dataset (band 1 only).

    Attributes:
        path: Path of the backing file.
    """

    def __init__(self, dataset: rasterio.io.DatasetReader) -> None:
        self._dataset = dataset
        self.path = dataset.name

    @property
    def crs(self) -> rasterio.crs.CRS | None:
        return self._dataset.crs

    @property
    def crs_string(self) -> str:
        """CRS as ``EPSG:n`` when an authority code exists, else WKT.

        Raises:
            MissingCRSError: if the dataset has no CRS.
        """
        if self._dataset.crs is None:
            raise MissingCRSError(f"{self.path}: raster has no CRS")
        return crs_to_string(self._dataset.crs)

    @property
    def transform(self) -> affine.Affine:
        return self._dataset.transform

    @property
    def width(self) -> int:
        return self._dataset.width

    @property
    def height(self) -> int:
        return self._dataset.height

    @property
    def nodata(self) -> float | None:
        """Nodata value of band 1.

        A NaN nodata value is reported as None: non-finite samples are
        masked on every read anyway.
        """
        value = self._dataset.nodata
        if value is None or math.isnan(value):
            return None
        return float(value)

    @property
    def bounds(self) -> BBox:
        left, bottom, right, top = self._dataset.bounds
        return (left, bottom, right, top)

    def read_window(
        self,
        col_off: int,
        row_off: int,
        width: int,
        height: int,
    ) -> numpy.ma.MaskedArray:
        """Read a pixel window of band 1 as masked float64 samples.

        Pixels equal to the nodata value (or flagged by an internal mask)
        and non-finite samples are masked.

        Args:
            col_off: First column of the window.
            row_off: First row of the window.
            width: Window width in pixels.
            height: Window height in pixels.

        Returns:
            Masked array of shape (height, width).

        Raises:
            RasterReadError: if rasterio fails to read the window.
        """
        window = rasterio.windows.Window(col_off, row_off, width, height)
        try:
            data = self._dataset.read(
                1,
                window=window,
                masked=True,
                out_dtype="float64",
            )
        except rasterio.errors.RasterioError as exc:
            raise RasterReadError(f"{self.path}: {exc}") from exc
        return numpy.ma.masked_invalid(data)

    def statistics(self, approximate: bool = False) -> tuple[float, float] | None:
        """Compute min/max of the valid band-1 samples.

        The exact variant walks the dataset block by block so memory stays
        bounded by one block. The approximate variant reads a decimated
        version of the band no larger than APPROX_STATS_SIZE on its longest
        side; extremes confined to skipped pixels are missed.

        Args:
            approximate: Use the decimated read instead of a full scan.

        Returns:
            (minimum, maximum), or None when the band has no valid sample.

        Raises:
            RasterReadError: if any block cannot be read.
        """
        if approximate:
            blocks: Iterator[numpy.ma.MaskedArray] = iter(
                [self._decimated_read()],
            )
        else:
            blocks = (
                self.read_window(
                    window.col_off,
                    window.row_off,
                    window.width,
                    window.height,
                )
                for _, window in self._dataset.block_windows(1)
            )

        minimum = math.inf
        maximum = -math.inf
        for block in blocks:
            valid = block.compressed()
            if valid.size == 0:
                continue
            minimum = min(minimum, float(valid.min()))
            maximum = max(maximum, float(valid.max()))

        if minimum > maximum:
            return None
        return (minimum, maximum)

    def _decimated_read(self) -> numpy.ma.MaskedArray:
        scale = max(self.width, self.height) / APPROX_STATS_SIZE
        if scale <= 1:
            return self.read_window(0, 0, self.width, self.height)
        out_shape = (
            max(1, int(self.height / scale)),
            max(1, int(self.width / scale)),
        )
        try:
            data = self._dataset.read(
                1,
                out_shape=out_shape,
                masked=True,
                out_dtype="float64",
            )
        except rasterio.errors.RasterioError as exc:
            raise RasterReadError(f"{self.path}: {exc}") from exc
        return numpy.ma.masked_invalid(data)

    def close(self) -> None:
        self._dataset.close()

    def __enter__(self) -> RasterHandle:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: types.TracebackType | None,
    ) -> None:
        self.close()


def open_raster(path: str | pathlib.Path) -> RasterHandle:
    """Open a raster file for reading.

    Args:
        path: Path of the raster file.

    Returns:
        An open RasterHandle. The caller owns it and must close it.

    Raises:
        RasterReadError: if the file is missing, unreadable or not a raster.
    """
    try:
        dataset = rasterio.open(path)
    except (rasterio.errors.RasterioError, OSError) as exc:
        raise RasterReadError(f"{path}: {exc}") from exc
    return RasterHandle(dataset)


def crs_to_string(crs: rasterio.crs.CRS) -> str:
    """Render a CRS compactly: ``EPSG:n`` if possible, WKT otherwise."""
    epsg = crs.to_epsg()
    if epsg is not None:
        return f"EPSG:{epsg}"
    return crs.to_wkt()


def parse_crs(value: str) -> rasterio.crs.CRS:
    return rasterio.crs.CRS.from_user_input(value)


def is_web_mercator(crs: str | rasterio.crs.CRS) -> bool:
    if isinstance(crs, str):
        crs = parse_crs(crs)
    return crs == WEB_MERCATOR


def transform_bounds(
    src_crs: str | rasterio.crs.CRS,
    dst_crs: str | rasterio.crs.CRS,
    bounds: BBox,
    densify_pts: int = 21,
) -> BBox:
    """Reproject a bounding box, densifying its edges.

    Edge densification keeps the result tight around curved edges, which
    matters for large tiles at low zoom levels.

    Args:
        src_crs: CRS of the input bounds.
        dst_crs: Target CRS.
        bounds: (minx, miny, maxx, maxy) in src_crs.
        densify_pts: Extra points sampled along each edge.

    Returns:
        (minx, miny, maxx, maxy) in dst_crs.
    """
    left, bottom, right, top = rasterio.warp.transform_bounds(
        src_crs,
        dst_crs,
        *bounds,
        densify_pts=densify_pts,
    )
    return (left, bottom, right, top)


def extent_bounds(crs: str | rasterio.crs.CRS, bounds: BBox) -> tuple[BBox, BBox]:
    """Web-Mercator and lon/lat bounds of a raster extent.

    The Mercator extent is derived from the lon/lat extent clipped to the
    latitude range Web Mercator can represent, so rasters reaching the
    poles still get finite bounds.

    Args:
        crs: CRS of ``bounds``.
        bounds: Raster extent (minx, miny, maxx, maxy) in ``crs``.

    Returns:
        (mercator_bbox, lonlat_bbox).
    """
    west, south, east, north = transform_bounds(crs, WGS84, bounds)
    lonlat = (west, south, east, north)
    if is_web_mercator(crs):
        return bounds, lonlat
    clipped = (
        max(west, -180.0),
        max(south, -MAX_LATITUDE),
        min(east, 180.0),
        min(north, MAX_LATITUDE),
    )
    return transform_bounds(WGS84, WEB_MERCATOR, clipped), lonlat


def transform_points(
    src_crs: str | rasterio.crs.CRS,
    dst_crs: str | rasterio.crs.CRS,
    xs: numpy.ndarray,
    ys: numpy.ndarray,
    chunk_size: int = 1024,
) -> tuple[numpy.ndarray, numpy.ndarray]:
    """Reproject point coordinates; the output keeps the input shape.

    GDAL rejects a whole batch when a single point lies outside the
    domain of the target projection (a transverse Mercator zone, for
    instance). In that case the points are retried in chunks of
    ``chunk_size``, and chunks that still fail come back as NaN.

    Args:
        src_crs: CRS of the input points.
        dst_crs: Target CRS.
        xs: X coordinates, any shape.
        ys: Y coordinates, same shape as ``xs``.
        chunk_size: Points per retry after a failed batch.

    Returns:
        (xs, ys) float64 arrays in dst_crs.
    """
    shape = numpy.shape(xs)
    flat_x = numpy.ravel(numpy.asarray(xs, dtype="float64"))
    flat_y = numpy.ravel(numpy.asarray(ys, dtype="float64"))
    if flat_x.size == 0:
        return flat_x.reshape(shape), flat_y.reshape(shape)
    try:
        out_x, out_y = _transform(src_crs, dst_crs, flat_x, flat_y)
    except Exception as exc:  # noqa: BLE001
        logger.debug("Retrying reprojection in chunks: %s", exc)
        out_x = numpy.full(flat_x.shape, numpy.nan)
        out_y = numpy.full(flat_y.shape, numpy.nan)
        for start in range(0, flat_x.size, chunk_size):
            stop = start + chunk_size
            try:
                out_x[start:stop], out_y[start:stop] = _transform(
                    src_crs,
                    dst_crs,
                    flat_x[start:stop],
                    flat_y[start:stop],
                )
            except Exception as chunk_exc:  # noqa: BLE001
                logger.debug(
                    "Dropping %d unprojectable points: %s",
                    len(flat_x[start:stop]),
                    chunk_exc,
                )
    return out_x.reshape(shape), out_y.reshape(shape)


def _transform(
    src_crs: str | rasterio.crs.CRS,
    dst_crs: str | rasterio.crs.CRS,
    xs: numpy.ndarray,
    ys: numpy.ndarray,
) -> tuple[numpy.ndarray, numpy.ndarray]:
    out_x, out_y = rasterio.warp.transform(src_crs, dst_crs, xs.tolist(), ys.tolist())
    return (
        numpy.asarray(out_x, dtype="float64"),
        numpy.asarray(out_y, dtype="float64"),
    )


class HandlePool:
    """Bounded pool of open handles for one raster file.

    At most ``size`` handles are open (and in use) at a time. Handles are
    opened lazily on first demand and reused afterwards. A checkout that
    fails with RasterReadError closes and drops its handle so the next
    checkout starts from a fresh one.

    Example:
        >>> pool = HandlePool("/data/viridis/world.tif", size=2)
        >>> with pool.checkout() as handle:
        ...     handle.read_window(0, 0, 8, 8)
        >>> pool.close()
    """

    def __init__(
        self,
        path: str | pathlib.Path,
        size: int = 4,
        opener: Callable[[str | pathlib.Path], RasterHandle] = open_raster,
    ) -> None:
        if size < 1:
            raise ValueError("pool size must be at least 1")
        self.path = path
        self.size = size
        self._opener = opener
        self._slots = threading.BoundedSemaphore(size)
        self._lock = threading.Lock()
        self._idle: list[RasterHandle] = []

    @property
    def idle_count(self) -> int:
        with self._lock:
            return len(self._idle)

    @contextlib.contextmanager
    def checkout(self) -> Iterator[RasterHandle]:
        """Borrow a handle for the duration of the ``with`` block."""
        self._slots.acquire()
        try:
            with self._lock:
                handle = self._idle.pop() if self._idle else None
            if handle is None:
                handle = self._opener(self.path)
        except BaseException:
            self._slots.release()
            raise

        broken = False
        try:
            yield handle
        except RasterReadError:
            broken = True
            raise
        finally:
            if broken:
                handle.close()
            else:
                with self._lock:
                    self._idle.append(handle)
            self._slots.release()

    def close(self) -> None:
        """Close every idle handle."""
        with self._lock:
            idle, self._idle = self._idle, []
        for handle in idle:
            handle.close()
