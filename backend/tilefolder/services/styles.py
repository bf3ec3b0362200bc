"""Style resolution for style groups.

A style group is a folder of rasters that share one colour mapping. The
mapping is resolved once per group, after every member raster has been
scanned, in this order:

1. An explicit colour-stop file (``style.txt``) in the group folder, as
   exported by common colour-ramp tools::

       # QGIS Generated Color Map Export File
       INTERPOLATION:INTERPOLATED
       0,215,25,28,255,0
       200,255,255,191,255,200
       400,43,131,186,255,400

   Each row is ``value,R,G,B,A,label``; only the first five fields are
   used. A malformed file is reported and ignored.
2. A built-in gradient when the folder is named after one
   (``viridis``, ``magma``, ...), spread over the group's observed range.
3. A grayscale stretch over the group's observed range.

Example:
    Resolve the style of a folder once its data range is known:
        >>> import pathlib
        >>> from tilefolder.catalog.models import DataRange
        >>> from tilefolder.services import styles
        >>> style, warnings = styles.resolve_style(
        ...     pathlib.Path("data/viridis"),
        ...     "viridis",
        ...     DataRange(0.0, 10.0),
        ... )
        >>> style.kind
        'builtin'
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

import numpy
from rio_tiler.colormap import cmap

from tilefolder.catalog import models

if TYPE_CHECKING:
    import pathlib

logger = logging.getLogger(__name__)

STYLE_FILENAME = "style.txt"
NOMINAL_RANGE = models.DataRange(0.0, 1.0)
GRADIENT_SIZE = 256

# Folder name -> rio-tiler colormap name. None marks gradients computed here.
BUILTIN_GRADIENTS: dict[str, str | None] = {
    "viridis": "viridis",
    "magma": "magma",
    "plasma": "plasma",
    "inferno": "inferno",
    "turbo": "turbo",
    "cubehelix_default": "cubehelix",
    "rainbow": "rainbow",
    "spectral": "spectral",
    "sinebow": None,
}


class StyleParseError(ValueError):
    """Raised when a colour-stop file cannot be turned into a ramp."""


def is_builtin_gradient(name: str) -> bool:
    return name in BUILTIN_GRADIENTS


def _parse_value(field: str, lineno: int) -> float:
    try:
        value = float(field)
    except ValueError as exc:
        raise StyleParseError(
            f"line {lineno}: invalid value {field!r}",
        ) from exc
    if not math.isfinite(value):
        raise StyleParseError(f"line {lineno}: value must be finite")
    return value


def _parse_channel(field: str, lineno: int) -> int:
    try:
        channel = float(field)
    except ValueError as exc:
        raise StyleParseError(
            f"line {lineno}: invalid colour channel {field!r}",
        ) from exc
    if not channel.is_integer() or not 0 <= channel <= 255:
        raise StyleParseError(
            f"line {lineno}: colour channel {field!r} is not in 0..255",
        )
    return int(channel)


def parse_style_file(path: pathlib.Path) -> tuple[models.ColourStop, ...]:
    """Parse a colour-stop export file.

    Blank lines, comment lines starting with ``#`` and the
    ``INTERPOLATION:...`` marker line are skipped. Every other line must
    hold at least ``value,R,G,B,A``; extra columns (labels) are ignored.

    Args:
        path: Path of the colour-stop file.

    Returns:
        Colour stops in file order.

    Raises:
        StyleParseError: if the file cannot be read, a row is short or
            non-numeric, a channel is outside 0..255, fewer than two stops
            are defined, or the values are not ascending.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise StyleParseError(f"cannot read {path}: {exc}") from exc

    stops: list[models.ColourStop] = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#") or line.startswith("INTERPOLATION"):
            continue
        fields = [field.strip() for field in line.split(",")]
        if len(fields) < 5:
            raise StyleParseError(
                f"line {lineno}: expected value,R,G,B,A but got {line!r}",
            )
        value = _parse_value(fields[0], lineno)
        red, green, blue, alpha = (
            _parse_channel(field, lineno) for field in fields[1:5]
        )
        stops.append(models.ColourStop(value, red, green, blue, alpha))

    if len(stops) < 2:
        raise StyleParseError(f"{path}: at least two colour stops are required")
    for previous, current in zip(stops, stops[1:]):
        if current.value < previous.value:
            raise StyleParseError(
                f"{path}: stop values are not ascending "
                f"({previous.value} before {current.value})",
            )
    return tuple(stops)


def _sinebow(size: int) -> numpy.ndarray:
    t = 0.5 - numpy.linspace(0.0, 1.0, size)
    rgb = numpy.stack(
        [numpy.sin(numpy.pi * (t + offset / 3.0)) ** 2 for offset in range(3)],
        axis=-1,
    )
    alpha = numpy.ones((size, 1))
    return numpy.rint(numpy.hstack([rgb, alpha]) * 255).astype("uint8")


def gradient_colours(name: str) -> numpy.ndarray:
    """RGBA table of a built-in gradient.

    Args:
        name: Built-in gradient name (a key of BUILTIN_GRADIENTS).

    Returns:
        uint8 array of shape (GRADIENT_SIZE, 4), low end first.

    Raises:
        KeyError: if the name is not a built-in gradient.
    """
    colormap_name = BUILTIN_GRADIENTS[name]
    if colormap_name is None:
        return _sinebow(GRADIENT_SIZE)
    table = cmap.get(colormap_name)
    return numpy.array(
        [table[index] for index in range(GRADIENT_SIZE)],
        dtype="uint8",
    )


def builtin_style(name: str, data_range: models.DataRange) -> models.Style:
    """Spread a built-in gradient evenly over ``data_range``."""
    colours = gradient_colours(name)
    values = numpy.linspace(data_range.minimum, data_range.maximum, len(colours))
    stops = tuple(
        models.ColourStop(float(value), *(int(channel) for channel in colour))
        for value, colour in zip(values, colours)
    )
    return models.Style(name=name, kind="builtin", stops=stops)


def grayscale_style(name: str, data_range: models.DataRange) -> models.Style:
    """Linear black-to-white stretch over ``data_range``."""
    return models.Style(
        name=name,
        kind="grayscale",
        stops=(
            models.ColourStop(data_range.minimum, 0, 0, 0, 255),
            models.ColourStop(data_range.maximum, 255, 255, 255, 255),
        ),
    )


def resolve_style(
    folder: pathlib.Path,
    name: str,
    data_range: models.DataRange | None,
) -> tuple[models.Style, list[models.ScanWarning]]:
    """Decide the colour mapping of one style group.

    Args:
        folder: The group folder, searched for a colour-stop file.
        name: Name of the group, matched against the built-in gradients.
        data_range: Aggregate observed range of the group's rasters, None
            if no member has a valid sample (NOMINAL_RANGE is used).

    Returns:
        The resolved style and the warnings raised while resolving it.
    """
    warnings: list[models.ScanWarning] = []
    style_path = folder / STYLE_FILENAME
    if style_path.is_file():
        try:
            stops = parse_style_file(style_path)
        except StyleParseError as exc:
            logger.warning("Ignoring colour stops of '%s': %s", name, exc)
            warnings.append(
                models.ScanWarning(
                    kind="style_parse",
                    path=str(style_path),
                    message=str(exc),
                ),
            )
        else:
            return (
                models.Style(
                    name=name,
                    kind="explicit",
                    stops=stops,
                    source=str(style_path),
                ),
                warnings,
            )

    bound = data_range if data_range is not None else NOMINAL_RANGE
    if is_builtin_gradient(name):
        return builtin_style(name, bound), warnings
    return grayscale_style(name, bound), warnings


def covers(style: models.Style, data_range: models.DataRange | None) -> bool:
    """Check whether a style's stops span an observed data range.

    Only explicit styles can fail: generated stops are always bound to the
    observed range. The bounds are inclusive.
    """
    if style.kind != "explicit" or data_range is None:
        return True
    stop_range = style.stop_range
    return (
        stop_range.minimum <= data_range.minimum
        and stop_range.maximum >= data_range.maximum
    )
