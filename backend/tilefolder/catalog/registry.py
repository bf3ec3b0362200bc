"""Immutable layer registry.

The registry is the catalogue of every renderable layer, built once by the
startup scanner and never mutated afterwards. Tile rendering and reporting
only read from it, so it is shared between request threads without locks.
"""

from __future__ import annotations

import types
from typing import TYPE_CHECKING, Protocol

from tilefolder.catalog import models

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


class LayerRegistryProtocol(Protocol):
    """Read interface for layer lookup, used for dependency injection."""

    def get(self, name: str) -> models.Layer | None: ...

    def all(self) -> list[models.Layer]: ...


class LayerRegistry(LayerRegistryProtocol):
    """Read-only snapshot of layers, styles and scan warnings.

    Attributes:
        layers: Layer name to Layer (read-only mapping).
        styles: Style group name to Style (read-only mapping).
        warnings: Warnings recorded while scanning, in scan order.

    Example:
        >>> registry = LayerRegistry(layers=[layer], styles={"viridis": style})
        >>> registry.get("world").group
        'viridis'
        >>> "missing" in registry
        False
    """

    def __init__(
        self,
        layers: Iterable[models.Layer] = (),
        styles: Mapping[str, models.Style] | None = None,
        warnings: Iterable[models.ScanWarning] = (),
    ) -> None:
        by_name: dict[str, models.Layer] = {}
        for layer in layers:
            if layer.name in by_name:
                raise ValueError(f"duplicate layer name: {layer.name}")
            by_name[layer.name] = layer
        self.layers: Mapping[str, models.Layer] = types.MappingProxyType(
            dict(sorted(by_name.items())),
        )
        self.styles: Mapping[str, models.Style] = types.MappingProxyType(
            dict(sorted((styles or {}).items())),
        )
        self.warnings: tuple[models.ScanWarning, ...] = tuple(warnings)

    def get(self, name: str) -> models.Layer | None:
        return self.layers.get(name)

    def all(self) -> list[models.Layer]:
        """All layers sorted by name."""
        return list(self.layers.values())

    def __len__(self) -> int:
        return len(self.layers)

    def __contains__(self, name: object) -> bool:
        return name in self.layers

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LayerRegistry):
            return NotImplemented
        return (
            dict(self.layers) == dict(other.layers)
            and dict(self.styles) == dict(other.styles)
            and self.warnings == other.warnings
        )

    __hash__ = None  # type: ignore[assignment]

    def group_layers(self, group: str) -> list[models.Layer]:
        return [layer for layer in self.layers.values() if layer.group == group]

    def summary(self) -> list[models.StyleSummary]:
        """Per style group reporting rows, sorted by group name.

        A group is flagged when any coverage warning was recorded against
        one of its layers.
        """
        flagged = {
            warning.layer
            for warning in self.warnings
            if warning.kind == "coverage"
        }
        rows: list[models.StyleSummary] = []
        for group, style in self.styles.items():
            members = self.group_layers(group)
            rows.append(
                models.StyleSummary(
                    group=group,
                    kind=style.kind,
                    layer_count=len(members),
                    breaks=(
                        tuple(stop.value for stop in style.stops)
                        if style.kind == "explicit"
                        else None
                    ),
                    data_range=models.DataRange.aggregate(
                        [layer.data_range for layer in members],
                    ),
                    coverage_warning=any(
                        layer.name in flagged for layer in members
                    ),
                    colours=_colour_bar(style),
                ),
            )
        return rows


def _colour_bar(style: models.Style, size: int = 10) -> tuple[tuple[int, int, int], ...]:
    if style.kind == "explicit":
        return tuple(stop.rgba[:3] for stop in style.stops)
    step = (len(style.stops) - 1) / (size - 1)
    picked = (style.stops[round(index * step)] for index in range(size))
    return tuple(stop.rgba[:3] for stop in picked)
