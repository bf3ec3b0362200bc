"""Layer catalog: immutable records describing the served rasters.

- models: frozen dataclasses for colour stops, styles, layers and warnings
- registry: the read-only, name-keyed collection built once at startup
"""
