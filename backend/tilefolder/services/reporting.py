"""Startup reporting: scan progress, style summary and warnings.

Nothing here influences the registry; it only consumes the scanner's
per-file completion events and the finished registry.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tqdm.auto import tqdm

if TYPE_CHECKING:
    import pathlib
    import types

    from tilefolder.catalog import models
    from tilefolder.catalog import registry as catalog_registry

logger = logging.getLogger(__name__)

HEADERS = ("", "Style", "Kind", "Layers", "Breaks", "Min", "Max", "Colours")


class ScanProgress:
    """tqdm progress bar driven by the scanner's ``on_progress`` hook.

    Example:
        >>> with ScanProgress() as progress:
        ...     registry = scanner.scan_data_folder(root, on_progress=progress)
        >>> progress.failed
        0
    """

    def __init__(self, total: int | None = None, disable: bool | None = None) -> None:
        self.done = 0
        self.failed = 0
        self._bar = tqdm(
            total=total,
            desc="Scanning rasters",
            unit="file",
            disable=disable,
        )

    def __call__(self, path: pathlib.Path, ok: bool) -> None:
        self.done += 1
        if not ok:
            self.failed += 1
        self._bar.set_postfix_str(path.name, refresh=False)
        self._bar.update(1)

    def close(self) -> None:
        self._bar.close()

    def __enter__(self) -> ScanProgress:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: types.TracebackType | None,
    ) -> None:
        self.close()


def _number(value: float) -> str:
    return f"{value:.2f}"


def _colour_bar(colours: tuple[tuple[int, int, int], ...], ansi: bool) -> str:
    if not ansi:
        return f"{len(colours)} colours"
    return "".join(
        f"\x1b[38;2;{red};{green};{blue}m█\x1b[0m"
        for red, green, blue in colours
    )


def summary_rows(
    summary: list[models.StyleSummary],
    ansi: bool = False,
) -> list[tuple[str, ...]]:
    """Turn summary records into table cells (header excluded)."""
    rows = []
    for item in summary:
        breaks = (
            "auto"
            if item.breaks is None
            else ", ".join(_number(value) for value in item.breaks)
        )
        data_range = item.data_range
        rows.append(
            (
                "!" if item.coverage_warning else "",
                item.group,
                item.kind,
                str(item.layer_count),
                breaks,
                "-" if data_range is None else _number(data_range.minimum),
                "-" if data_range is None else _number(data_range.maximum),
                _colour_bar(item.colours, ansi),
            ),
        )
    return rows


def format_style_summary(
    summary: list[models.StyleSummary],
    ansi: bool = False,
) -> str:
    """Render the per-style summary as a plain text table.

    The colour column is left unpadded since ANSI escapes have no width.
    """
    rows = [HEADERS, *summary_rows(summary, ansi)]
    widths = [
        max(len(row[column]) for row in rows)
        for column in range(len(HEADERS) - 1)
    ]
    lines = []
    for row in rows:
        cells = [cell.ljust(width) for cell, width in zip(row, widths)]
        lines.append("  ".join([*cells, row[-1]]).rstrip())
    return "\n".join(lines)


def format_warning(warning: models.ScanWarning) -> str:
    subject = warning.layer or warning.path
    return f"[{warning.kind}] {subject}: {warning.message}"


def log_registry_report(
    registry: catalog_registry.LayerRegistry,
    ansi: bool = False,
) -> None:
    """Log the style summary table and every scan warning."""
    logger.info(
        "Style summary (%d layer(s)):\n%s",
        len(registry),
        format_style_summary(registry.summary(), ansi),
    )
    if registry.warnings:
        logger.warning(
            "%d warning(s):\n%s",
            len(registry.warnings),
            "\n".join(
                f"  {format_warning(warning)}" for warning in registry.warnings
            ),
        )
