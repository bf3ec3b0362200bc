"""XYZ tile addressing in Web Mercator (EPSG:3857).

Tiles follow the usual XYZ scheme: origin at the top-left corner of the
world, ``x`` growing eastward, ``y`` growing southward, and ``2**z`` tiles
along each axis at zoom ``z``. Meters are Web Mercator meters; pixels are
global pixel coordinates at zoom ``z`` with the same top-left origin.
"""

from __future__ import annotations

BBox = tuple[float, float, float, float]

ORIGIN_SHIFT = 20037508.342789244
MAX_ZOOM = 30


def tile_span(z: int) -> float:
    """Edge length of one tile in meters at zoom ``z``."""
    return 2.0 * ORIGIN_SHIFT / (2**z)


def is_valid_tile(z: int, x: int, y: int) -> bool:
    """Check that ``(z, x, y)`` addresses an existing tile."""
    if z < 0 or z > MAX_ZOOM:
        return False
    n = 2**z
    return 0 <= x < n and 0 <= y < n


def tile_bounds(z: int, x: int, y: int) -> BBox:
    """Web-Mercator bounds of a tile.

    Args:
        z: Zoom level.
        x: Tile column.
        y: Tile row (counted from the top).

    Returns:
        (minx, miny, maxx, maxy) in meters.

    Example:
        >>> tile_bounds(0, 0, 0)
        (-20037508.342789244, -20037508.342789244,
         20037508.342789244, 20037508.342789244)
    """
    span = tile_span(z)
    minx = x * span - ORIGIN_SHIFT
    maxx = (x + 1) * span - ORIGIN_SHIFT
    maxy = ORIGIN_SHIFT - y * span
    miny = ORIGIN_SHIFT - (y + 1) * span
    return (minx, miny, maxx, maxy)


def resolution(z: int, tile_size: int = 256) -> float:
    """Meters per pixel at zoom ``z``."""
    return tile_span(z) / tile_size


def meters_to_pixels(
    mx: float,
    my: float,
    z: int,
    tile_size: int = 256,
) -> tuple[float, float]:
    """Convert Web-Mercator meters to global pixel coordinates."""
    res = resolution(z, tile_size)
    return ((mx + ORIGIN_SHIFT) / res, (ORIGIN_SHIFT - my) / res)


def pixels_to_meters(
    px: float,
    py: float,
    z: int,
    tile_size: int = 256,
) -> tuple[float, float]:
    """Convert global pixel coordinates to Web-Mercator meters."""
    res = resolution(z, tile_size)
    return (px * res - ORIGIN_SHIFT, ORIGIN_SHIFT - py * res)
