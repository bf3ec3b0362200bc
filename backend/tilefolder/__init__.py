"""Tile server for a folder of single-band GeoTIFF rasters.

At startup the data folder is scanned once: every raster becomes a named
layer, and every top-level subfolder becomes a style group whose colour
ramp comes from a ``style.txt`` colour-stop file, a built-in gradient
named like the folder, or a grayscale fallback. The resulting registry is
immutable for the lifetime of the process.

- Renders Web-Mercator XYZ PNG tiles on demand from rasters in any CRS
- Nodata, non-finite and off-raster pixels are fully transparent
- Lists layers, extents and resolved styles through a small JSON API
- Serves a Leaflet viewer for browsing the layers

See module sub-docstrings for details on architecture and usage.
"""
