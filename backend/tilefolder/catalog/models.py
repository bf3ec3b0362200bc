"""Data models for the layer catalogue.

This module defines the immutable records shared between the startup
scanner, the tile renderer and the reporting code: colour stops, styles
(with their colour function), observed data ranges, layers, scan warnings
and the per-style summary rows.

Every record is a frozen dataclass. Once the scanner has produced them they
are shared by reference between request threads without any locking.

Example:
    Build a two-stop ramp and colour a few samples:
        >>> import numpy
        >>> from tilefolder.catalog.models import ColourStop, Style
        >>> style = Style(
        ...     name="depth",
        ...     kind="explicit",
        ...     stops=(
        ...         ColourStop(0.0, 0, 0, 255, 255),
        ...         ColourStop(100.0, 255, 0, 0, 255),
        ...     ),
        ... )
        >>> style.colour_at(0.0)
        (0, 0, 255, 255)
        >>> style.colourize(numpy.array([50.0])).tolist()
        [[128, 0, 128, 255]]
"""

from __future__ import annotations

import dataclasses
import functools
from typing import Literal

import affine
import numpy

BBox = tuple[float, float, float, float]
RGBA = tuple[int, int, int, int]
StyleKind = Literal["explicit", "builtin", "grayscale"]
WarningKind = Literal[
    "unreadable",
    "missing_crs",
    "style_parse",
    "coverage",
    "name_collision",
]


@dataclasses.dataclass(frozen=True)
class ColourStop:
    """One anchor of a piecewise-linear colour ramp."""

    value: float
    red: int
    green: int
    blue: int
    alpha: int = 255

    @property
    def rgba(self) -> RGBA:
        return (self.red, self.green, self.blue, self.alpha)


@dataclasses.dataclass(frozen=True)
class DataRange:
    """Observed (minimum, maximum) of the valid samples of a raster."""

    minimum: float
    maximum: float

    def union(self, other: DataRange | None) -> DataRange:
        if other is None:
            return self
        return DataRange(
            min(self.minimum, other.minimum),
            max(self.maximum, other.maximum),
        )

    @classmethod
    def aggregate(cls, ranges: list[DataRange | None]) -> DataRange | None:
        """Union of every non-empty range, None if there is none."""
        result: DataRange | None = None
        for item in ranges:
            if item is None:
                continue
            result = item if result is None else result.union(item)
        return result


@dataclasses.dataclass(frozen=True)
class Style:
    """Colour mapping shared by every layer of one style group.

    The ``kind`` tag records how the stops were obtained:

    - ``explicit``: parsed from the group's colour-stop file.
    - ``builtin``: sampled from a named gradient, spread over the group's
      observed data range.
    - ``grayscale``: black at the group minimum, white at the maximum.

    Whatever the kind, colouring is the same: stops are sorted ascending,
    each channel is interpolated linearly between adjacent stops, and
    values beyond the first/last stop take the endpoint colour.

    Attributes:
        name: Name of the style group (its folder name).
        kind: How the stops were resolved.
        stops: Colour stops, ascending by value (at least two).
        source: Path of the colour-stop file for explicit styles.
    """

    name: str
    kind: StyleKind
    stops: tuple[ColourStop, ...]
    source: str | None = None

    @property
    def stop_range(self) -> DataRange:
        return DataRange(self.stops[0].value, self.stops[-1].value)

    @functools.cached_property
    def _lookup(self) -> tuple[numpy.ndarray, numpy.ndarray]:
        values = numpy.array([stop.value for stop in self.stops], dtype="float64")
        channels = numpy.array(
            [stop.rgba for stop in self.stops],
            dtype="float64",
        )
        return values, channels

    def colourize(self, samples: numpy.ndarray) -> numpy.ndarray:
        """Map samples to RGBA.

        Args:
            samples: Array of sample values, any shape.

        Returns:
            uint8 array with the shape of ``samples`` plus a trailing
            axis of length 4 (red, green, blue, alpha).
        """
        values, channels = self._lookup
        samples = numpy.asarray(samples, dtype="float64")
        rgba = numpy.empty((*samples.shape, 4), dtype="uint8")
        for band in range(4):
            interpolated = numpy.interp(samples, values, channels[:, band])
            rgba[..., band] = numpy.clip(numpy.rint(interpolated), 0, 255)
        return rgba

    def colour_at(self, value: float) -> RGBA:
        red, green, blue, alpha = self.colourize(numpy.array([value]))[0]
        return (int(red), int(green), int(blue), int(alpha))


@dataclasses.dataclass(frozen=True)
class RasterMetadata:
    """What the scanner learns about one raster file.

    This is the part of a layer that depends only on the file itself, so
    it can be cached on disk and reused while the file is unchanged.
    ``approximate`` records whether ``data_range`` came from decimated
    statistics.
    """

    path: str
    crs: str
    transform: tuple[float, float, float, float, float, float]
    width: int
    height: int
    nodata: float | None
    data_range: DataRange | None
    bbox: BBox
    lonlat_bbox: BBox
    size_bytes: int
    mtime_ns: int
    approximate: bool = False


@dataclasses.dataclass(frozen=True)
class Layer:
    """One renderable raster.

    Attributes:
        name: Unique layer name, used as the URL path segment.
        group: Name of the style group the raster belongs to.
        path: Path of the backing raster file.
        crs: Source CRS, ``EPSG:n`` when available, WKT otherwise.
        transform: Affine geotransform coefficients (a, b, c, d, e, f).
        width: Raster width in pixels.
        height: Raster height in pixels.
        nodata: Nodata value, None when no pixel is masked by value.
        data_range: Observed band-1 range, None without valid samples.
        bbox: Extent in Web Mercator (minx, miny, maxx, maxy).
        lonlat_bbox: Extent in EPSG:4326 (west, south, east, north).
        size_bytes: File size on disk.
        style: Resolved style of the layer's group.
    """

    name: str
    group: str
    path: str
    crs: str
    transform: tuple[float, float, float, float, float, float]
    width: int
    height: int
    nodata: float | None
    data_range: DataRange | None
    bbox: BBox
    lonlat_bbox: BBox
    size_bytes: int
    style: Style

    @property
    def affine(self) -> affine.Affine:
        return affine.Affine(*self.transform)


@dataclasses.dataclass(frozen=True)
class ScanWarning:
    """Non-fatal problem recorded while building the registry."""

    kind: WarningKind
    path: str
    message: str
    layer: str | None = None


@dataclasses.dataclass(frozen=True)
class StyleSummary:
    """Read-only reporting row for one style group.

    ``breaks`` is None when the stops were generated ("auto").
    """

    group: str
    kind: StyleKind
    layer_count: int
    breaks: tuple[float, ...] | None
    data_range: DataRange | None
    coverage_warning: bool
    colours: tuple[tuple[int, int, int], ...]
