"""Tests for the catalogue models and the immutable layer registry.

Covers data range aggregation, registry lookup and ordering, rejection of
duplicate names, read-only behaviour, and the per-style summary used by
the startup report and the styles endpoint.
"""

from __future__ import annotations

import dataclasses

import pytest

from tilefolder.catalog import models
from tilefolder.catalog import registry as catalog_registry
from tilefolder.services import styles


def _layer(
    name: str,
    group: str,
    style: models.Style,
    data_range: models.DataRange | None = None,
) -> models.Layer:
    return models.Layer(
        name=name,
        group=group,
        path=f"/data/{group}/{name}.tif",
        crs="EPSG:3857",
        transform=(10.0, 0.0, 0.0, 0.0, -10.0, 100.0),
        width=10,
        height=10,
        nodata=None,
        data_range=data_range,
        bbox=(0.0, 0.0, 100.0, 100.0),
        lonlat_bbox=(0.0, 0.0, 0.001, 0.001),
        size_bytes=1024,
        style=style,
    )


EXPLICIT = models.Style(
    name="depth",
    kind="explicit",
    stops=(
        models.ColourStop(0.0, 0, 0, 255),
        models.ColourStop(400.0, 255, 0, 0),
    ),
    source="/data/depth/style.txt",
)
VIRIDIS = styles.builtin_style("viridis", models.DataRange(0.0, 10.0))


def _registry() -> catalog_registry.LayerRegistry:
    return catalog_registry.LayerRegistry(
        layers=[
            _layer("world", "viridis", VIRIDIS, models.DataRange(0.0, 10.0)),
            _layer("bathymetry", "depth", EXPLICIT, models.DataRange(-80.0, 500.0)),
            _layer("shelf", "depth", EXPLICIT, models.DataRange(0.0, 50.0)),
        ],
        styles={"viridis": VIRIDIS, "depth": EXPLICIT},
        warnings=[
            models.ScanWarning(
                "coverage",
                "/data/depth/bathymetry.tif",
                "colour stops [0, 400] do not cover data range [-80, 500]",
                "bathymetry",
            ),
        ],
    )


def test_data_range_aggregate() -> None:
    """Test the union of observed ranges, ignoring empty ones."""
    aggregate = models.DataRange.aggregate(
        [models.DataRange(0.0, 5.0), None, models.DataRange(-2.0, 3.0)],
    )
    assert aggregate == models.DataRange(-2.0, 5.0)
    assert models.DataRange.aggregate([None, None]) is None
    assert models.DataRange.aggregate([]) is None


def test_layer_affine() -> None:
    """Test that the stored coefficients rebuild the geotransform."""
    layer = _layer("a", "g", VIRIDIS)
    assert layer.affine * (0, 0) == (0.0, 100.0)
    assert layer.affine * (10, 10) == (100.0, 0.0)


def test_registry_lookup_and_order() -> None:
    """Test get, membership and name ordering."""
    registry = _registry()
    assert len(registry) == 3
    assert [layer.name for layer in registry.all()] == [
        "bathymetry",
        "shelf",
        "world",
    ]
    assert registry.get("world").group == "viridis"
    assert registry.get("missing") is None
    assert "shelf" in registry
    assert "missing" not in registry
    assert [layer.name for layer in registry.group_layers("depth")] == [
        "bathymetry",
        "shelf",
    ]


def test_registry_rejects_duplicate_names() -> None:
    """Test that two layers cannot share a name."""
    with pytest.raises(ValueError, match="duplicate layer name"):
        catalog_registry.LayerRegistry(
            layers=[
                _layer("a", "g1", VIRIDIS),
                _layer("a", "g2", VIRIDIS),
            ],
        )


def test_registry_is_read_only() -> None:
    """Test that neither the mappings nor the records can be changed."""
    registry = _registry()
    with pytest.raises(TypeError):
        registry.layers["new"] = registry.get("world")  # type: ignore[index]
    with pytest.raises(TypeError):
        registry.styles["new"] = VIRIDIS  # type: ignore[index]
    with pytest.raises(dataclasses.FrozenInstanceError):
        registry.get("world").name = "renamed"  # type: ignore[misc]


def test_registry_equality() -> None:
    """Test that registries with the same content compare equal."""
    assert _registry() == _registry()
    assert _registry() != catalog_registry.LayerRegistry()


def test_summary() -> None:
    """Test per-style summary rows."""
    depth, viridis = _registry().summary()

    assert depth.group == "depth"
    assert depth.kind == "explicit"
    assert depth.layer_count == 2
    assert depth.breaks == (0.0, 400.0)
    assert depth.data_range == models.DataRange(-80.0, 500.0)
    assert depth.coverage_warning is True
    assert depth.colours == ((0, 0, 255), (255, 0, 0))

    assert viridis.group == "viridis"
    assert viridis.kind == "builtin"
    assert viridis.breaks is None
    assert viridis.coverage_warning is False
    assert len(viridis.colours) == 10
    assert viridis.colours[0] == VIRIDIS.stops[0].rgba[:3]
    assert viridis.colours[-1] == VIRIDIS.stops[-1].rgba[:3]
