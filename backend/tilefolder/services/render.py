"""Tile rendering pipeline.

For each request the renderer:

1. validates the layer name and the XYZ tile address,
2. computes the tile's Web-Mercator bounds,
3. rejects tiles that miss the layer's (padded) Web-Mercator extent and,
   for sources in another CRS, reprojects the pixel centres that fall
   inside that extent,
4. maps pixel centres through the inverse geotransform and derives the
   smallest source window that covers them, clamped to the raster,
5. reads that window through a pooled handle of the layer,
6. samples it nearest-neighbour onto the output grid,
7. colours valid samples with the layer's style; nodata, non-finite and
   off-raster pixels stay fully transparent,
8. encodes the result as PNG.

A tile that misses the raster entirely is a normal, fully transparent
tile. Only read failures propagate as errors.

Example:
    Render a tile from a registry:
        >>> from tilefolder.services import render
        >>> renderer = render.TileRenderer(registry, tile_size=256)
        >>> png = renderer.render_png("world", 2, 1, 1)
        >>> png[:4]
        b'\\x89PNG'
        >>> renderer.close()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy
from rio_tiler.utils import render as encode_image

from tilefolder.utils import mercator, raster_io

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Callable

    from tilefolder.catalog import models
    from tilefolder.catalog import registry as catalog_registry

logger = logging.getLogger(__name__)

Window = tuple[int, int, int, int]

#: Fraction of a layer's extent added on each side before reprojecting.
EXTENT_PADDING = 0.01


class LayerNotFound(LookupError):
    """Raised for a tile request naming an unknown layer."""


class InvalidTileAddress(ValueError):
    """Raised for a tile address outside the XYZ grid of its zoom level."""


def pixel_centres(
    bounds: mercator.BBox,
    tile_size: int,
) -> tuple[numpy.ndarray, numpy.ndarray]:
    """Coordinates of the centre of every output pixel.

    Args:
        bounds: Tile bounds (minx, miny, maxx, maxy).
        tile_size: Output size in pixels along each axis.

    Returns:
        (xs, ys) arrays of shape (tile_size, tile_size), row 0 at the top.
    """
    minx, miny, maxx, maxy = bounds
    offsets = numpy.arange(tile_size, dtype="float64") + 0.5
    xs = minx + offsets * (maxx - minx) / tile_size
    ys = maxy - offsets * (maxy - miny) / tile_size
    return numpy.meshgrid(xs, ys)


def intersects(a: mercator.BBox, b: mercator.BBox) -> bool:
    return a[0] < b[2] and b[0] < a[2] and a[1] < b[3] and b[1] < a[3]


def search_extent(layer: models.Layer) -> mercator.BBox:
    """Web-Mercator extent of a layer, padded by EXTENT_PADDING per side.

    The padding absorbs the curvature of reprojected raster edges that
    the densified extent may still cut off.
    """
    minx, miny, maxx, maxy = layer.bbox
    pad_x = (maxx - minx) * EXTENT_PADDING
    pad_y = (maxy - miny) * EXTENT_PADDING
    return (minx - pad_x, miny - pad_y, maxx + pad_x, maxy + pad_y)


def source_pixels(
    layer: models.Layer,
    xs: numpy.ndarray,
    ys: numpy.ndarray,
) -> tuple[numpy.ndarray, numpy.ndarray]:
    """Source (column, row) indices of the pixels containing each point.

    Points that cannot be located (non-finite coordinates) come back as
    NaN.
    """
    inverse = ~layer.affine
    cols = numpy.floor(inverse.a * xs + inverse.b * ys + inverse.c)
    rows = numpy.floor(inverse.d * xs + inverse.e * ys + inverse.f)
    return cols, rows


def source_window(
    layer: models.Layer,
    cols: numpy.ndarray,
    rows: numpy.ndarray,
) -> Window | None:
    """Smallest raster window holding every sampled pixel.

    Args:
        layer: Layer being rendered.
        cols: Source column index of each output pixel.
        rows: Source row index of each output pixel.

    Returns:
        (col_off, row_off, col_end, row_end) clamped to the raster, or
        None when the clamped window is empty.
    """
    located = numpy.isfinite(cols) & numpy.isfinite(rows)
    if not located.any():
        return None
    col_off = max(0, int(cols[located].min()))
    row_off = max(0, int(rows[located].min()))
    col_end = min(layer.width, int(cols[located].max()) + 1)
    row_end = min(layer.height, int(rows[located].max()) + 1)
    if col_end <= col_off or row_end <= row_off:
        return None
    return (col_off, row_off, col_end, row_end)


def transparent_tile(tile_size: int) -> numpy.ndarray:
    return numpy.zeros((4, tile_size, tile_size), dtype="uint8")


def encode_png(rgba: numpy.ndarray) -> bytes:
    """Encode a (4, height, width) uint8 RGBA array as PNG."""
    return encode_image(rgba[:3], mask=rgba[3], img_format="PNG")


class TileRenderer:
    """Renders XYZ tiles of the layers of a registry.

    Each layer gets its own pool of raster handles, so concurrent requests
    for different layers never wait on each other, and requests for the
    same layer share at most ``pool_size`` open handles.

    Attributes:
        registry: The layer registry (read only).
        tile_size: Output tile size in pixels.
    """

    def __init__(
        self,
        registry: catalog_registry.LayerRegistry,
        *,
        tile_size: int = 256,
        pool_size: int = 4,
        opener: Callable[[str | pathlib.Path], raster_io.RasterHandle] = (
            raster_io.open_raster
        ),
    ) -> None:
        self.registry = registry
        self.tile_size = tile_size
        self._pools = {
            layer.name: raster_io.HandlePool(layer.path, pool_size, opener)
            for layer in registry.all()
        }
        self._mercator = {
            layer.name: raster_io.is_web_mercator(layer.crs)
            for layer in registry.all()
        }

    def _layer(self, name: str, z: int, x: int, y: int) -> models.Layer:
        layer = self.registry.get(name)
        if layer is None:
            raise LayerNotFound(f"Layer not found: '{name}'")
        if not mercator.is_valid_tile(z, x, y):
            raise InvalidTileAddress(f"Invalid tile address: {z}/{x}/{y}")
        return layer

    def _locate(
        self,
        layer: models.Layer,
        bounds: mercator.BBox,
    ) -> tuple[numpy.ndarray, numpy.ndarray] | None:
        extent = search_extent(layer)
        if not intersects(bounds, extent):
            return None
        xs, ys = pixel_centres(bounds, self.tile_size)
        if self._mercator[layer.name]:
            return source_pixels(layer, xs, ys)

        # Only pixels near the raster are reprojected; the rest stay NaN.
        near = (
            (xs >= extent[0])
            & (xs <= extent[2])
            & (ys >= extent[1])
            & (ys <= extent[3])
        )
        if not near.any():
            return None
        source_x = numpy.full(xs.shape, numpy.nan)
        source_y = numpy.full(ys.shape, numpy.nan)
        source_x[near], source_y[near] = raster_io.transform_points(
            raster_io.WEB_MERCATOR,
            layer.crs,
            xs[near],
            ys[near],
        )
        return source_pixels(layer, source_x, source_y)

    def render_rgba(self, layer_name: str, z: int, x: int, y: int) -> numpy.ndarray:
        """Render a tile as an RGBA array.

        Args:
            layer_name: Registered layer name.
            z: Zoom level.
            x: Tile column.
            y: Tile row.

        Returns:
            uint8 array of shape (4, tile_size, tile_size).

        Raises:
            LayerNotFound: for an unknown layer.
            InvalidTileAddress: for a negative zoom or x/y outside the grid.
            RasterReadError: if the source raster cannot be read.
        """
        layer = self._layer(layer_name, z, x, y)
        located = self._locate(layer, mercator.tile_bounds(z, x, y))
        if located is None:
            logger.debug("Tile %d/%d/%d misses layer '%s'", z, x, y, layer.name)
            return transparent_tile(self.tile_size)
        cols, rows = located

        window = source_window(layer, cols, rows)
        if window is None:
            return transparent_tile(self.tile_size)
        col_off, row_off, col_end, row_end = window

        with self._pools[layer.name].checkout() as handle:
            samples = handle.read_window(
                col_off,
                row_off,
                col_end - col_off,
                row_end - row_off,
            )

        with numpy.errstate(invalid="ignore"):
            inside = (
                (cols >= col_off)
                & (cols < col_end)
                & (rows >= row_off)
                & (rows < row_end)
            )
        window_rows = numpy.where(inside, rows - row_off, 0).astype("intp")
        window_cols = numpy.where(inside, cols - col_off, 0).astype("intp")
        values = numpy.ma.getdata(samples)[window_rows, window_cols]
        masked = numpy.ma.getmaskarray(samples)[window_rows, window_cols]
        valid = inside & ~masked

        rgba = numpy.zeros((self.tile_size, self.tile_size, 4), dtype="uint8")
        rgba[valid] = layer.style.colourize(values[valid])
        return numpy.ascontiguousarray(rgba.transpose(2, 0, 1))

    def render_png(self, layer_name: str, z: int, x: int, y: int) -> bytes:
        """Render a tile and encode it as PNG (see render_rgba)."""
        return encode_png(self.render_rgba(layer_name, z, x, y))

    def close(self) -> None:
        for pool in self._pools.values():
            pool.close()

