"""Layer metadata query and retrieval API endpoints.

This module lists the layers of the registry and returns the bounding box
of a single layer. Bounding boxes are returned in EPSG:3857 (Web
Mercator) coordinates; the listing also carries the EPSG:4326 extent used
by the viewer to fit the map.

Example:
    List all registered layers:
        >>> response = client.get("/api/layers")
        >>> [layer["name"] for layer in response.json()]
        ['bathymetry', 'world']

    Get bounding box for a specific layer:
        >>> response = client.get("/api/layers/world/bbox")
        >>> response.json()["bbox"]
        [-20037508.34, -20037508.34, 20037508.34, 20037508.34]
"""

from typing import Any

import fastapi

from tilefolder.catalog import models
from tilefolder.catalog import registry as catalog_registry

router = fastapi.APIRouter(prefix="/api/layers", tags=["layers"])


def get_registry(request: fastapi.Request) -> catalog_registry.LayerRegistry:
    """Resolve the layer registry installed on the application at startup.

    Args:
        request: Incoming request (injected by FastAPI).

    Returns:
        The application's LayerRegistry.

    Raises:
        HTTPException: If no registry has been loaded yet (503).
    """
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise fastapi.HTTPException(
            status_code=503,
            detail="Layer registry is not loaded",
        )
    return registry


def range_to_list(data_range: models.DataRange | None) -> list[float] | None:
    """JSON form of a data range: [minimum, maximum], or None."""
    if data_range is None:
        return None
    return [data_range.minimum, data_range.maximum]


def layer_to_dict(layer: models.Layer) -> dict[str, Any]:
    """Convert a layer to its JSON representation."""
    return {
        "name": layer.name,
        "group": layer.group,
        "style": layer.style.name,
        "style_kind": layer.style.kind,
        "crs": layer.crs,
        "width": layer.width,
        "height": layer.height,
        "bbox": list(layer.bbox),
        "lonlat_bbox": list(layer.lonlat_bbox),
        "data_range": range_to_list(layer.data_range),
        "tiles": f"/tiles/{layer.name}/{{z}}/{{x}}/{{y}}.png",
    }


@router.get("")
async def list_layers(
    registry: catalog_registry.LayerRegistry = fastapi.Depends(get_registry),  # noqa: B008
) -> list[dict[str, Any]]:
    """List all registered layers.

    Args:
        registry: Layer registry (injected via FastAPI Depends).

    Returns:
        Layer dictionaries sorted by name, each with the layer's group,
        style, CRS, Web Mercator and lon/lat extents, observed data range
        and tile URL template.
    """
    return [layer_to_dict(layer) for layer in registry.all()]


@router.get("/{name}/bbox")
async def get_layer_bbox(
    name: str,
    registry: catalog_registry.LayerRegistry = fastapi.Depends(get_registry),  # noqa: B008
) -> dict[str, list[float]]:
    """Get the bounding box for a registered layer.

    Args:
        name: Layer name.
        registry: Layer registry (injected via FastAPI Depends).

    Returns:
        Dictionary containing the bounding box as [minx, miny, maxx, maxy]
        in Web Mercator (EPSG:3857) coordinates.

    Raises:
        HTTPException: If the layer is not found (404 status code).
    """
    layer = registry.get(name)
    if layer is None:
        raise fastapi.HTTPException(
            status_code=404,
            detail="Layer not found",
        )

    return {"bbox": list(layer.bbox)}
