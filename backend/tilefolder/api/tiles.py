"""XYZ tile serving endpoint for the registered raster layers.

Tiles are rendered on demand in EPSG:3857 (Web Mercator) from the source
raster of the layer, whatever its CRS, and served as PNG. The ``y``
segment may carry a ``.png`` suffix.

Example:
    Request a raster tile:
        >>> response = client.get("/tiles/world/2/1/1.png")
        >>> response.headers["content-type"]
        'image/png'

    Use in Leaflet:
        >>> L.tileLayer('/tiles/world/{z}/{x}/{y}', {tileSize: 256})
"""

import logging

import fastapi
from fastapi import responses
from starlette import concurrency

from tilefolder.services import render
from tilefolder.utils import raster_io

logger = logging.getLogger(__name__)

router = fastapi.APIRouter(prefix="/tiles", tags=["tiles"])


def _get_renderer(request: fastapi.Request) -> render.TileRenderer:
    """Resolve the tile renderer installed on the application at startup.

    Args:
        request: Incoming request (injected by FastAPI).

    Returns:
        The application's TileRenderer.

    Raises:
        HTTPException: If no registry has been loaded yet (503).
    """
    renderer = getattr(request.app.state, "renderer", None)
    if renderer is None:
        raise fastapi.HTTPException(
            status_code=503,
            detail="Layer registry is not loaded",
        )
    return renderer


@router.get("/{layer}/{z}/{x}/{y}")
@router.get("/{layer}/{z}/{x}/{y}.png")
async def raster_tile(
    layer: str,
    z: int,
    x: int,
    y: int,
    renderer: render.TileRenderer = fastapi.Depends(_get_renderer),  # noqa: B008
) -> responses.Response:
    """Render one XYZ tile of a layer as PNG.

    Rendering reads the raster from disk, so it runs in the thread pool
    rather than on the event loop. A tile that does not touch the raster
    is a valid, fully transparent PNG.

    Args:
        layer: Registered layer name.
        z: Zoom level.
        x: Tile X coordinate (column).
        y: Tile Y coordinate (row, from the top).
        renderer: Tile renderer (injected via FastAPI Depends).

    Returns:
        PNG image response. Content-Type is image/png.

    Raises:
        HTTPException: 404 for an unknown layer, 400 for a tile address
            outside the grid and 500 if the raster cannot be read.
    """
    try:
        content = await concurrency.run_in_threadpool(
            renderer.render_png,
            layer,
            z,
            x,
            y,
        )
    except render.LayerNotFound as exc:
        raise fastapi.HTTPException(status_code=404, detail=str(exc)) from exc
    except render.InvalidTileAddress as exc:
        raise fastapi.HTTPException(status_code=400, detail=str(exc)) from exc
    except raster_io.RasterReadError as exc:
        logger.error("Tile %s/%d/%d/%d failed: %s", layer, z, x, y, exc)
        raise fastapi.HTTPException(
            status_code=500,
            detail="Failed to read raster data",
        ) from exc

    return responses.Response(content=content, media_type="image/png")
