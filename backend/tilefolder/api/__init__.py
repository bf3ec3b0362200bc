"""API router subpackage for the tile server.

Each module exposes its own APIRouter for composition in the application's
main FastAPI instance.

Submodules:
    - tiles: XYZ PNG tiles rendered from the registered rasters.
    - layers: Listing of registered layers and their extents.
    - styles: Resolved style per group and scan warnings.
    - viewer: Leaflet page for browsing the layers.

Routers read the registry and renderer the application installs on
``app.state`` at startup, so tests can hand in their own.
"""
