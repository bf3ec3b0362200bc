"""Leaflet map viewer for browsing the registered layers.

The page lists layers from ``/api/layers``, shows the selected layer's
tiles over an optional OpenStreetMap basemap and fits the map to the
layer's lon/lat extent.
"""

import fastapi
from fastapi import responses

router = fastapi.APIRouter(tags=["viewer"])

VIEWER_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1.0" />
  <title>Tile Folder</title>
  <link
    rel="stylesheet"
    href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css"
    integrity="sha256-p4NxAoJBhIIN+hmNHrzRCf9tD/miZyoHS5obTRR9BMY="
    crossorigin=""
  />
  <style>
    html, body { height: 100%; margin: 0; padding: 0; }
    #map { height: 100%; width: 100%; }
    #controls {
      position: absolute;
      top: 12px;
      left: 50px;
      z-index: 1000;
      background: white;
      padding: 6px 8px;
      border-radius: 4px;
      box-shadow: 0 1px 4px rgba(0, 0, 0, 0.3);
      line-height: 26px;
      font: 13px sans-serif;
    }
    .leaflet-control-zoom .leaflet-control-zoom-to-extent {
      font: bold 18px 'Lucida Console', Monaco, monospace;
    }
  </style>
</head>
<body>
  <div id="controls">
    <label for="layerSelect">Layer: </label>
    <select id="layerSelect"></select>
    <br />
    <label for="opacitySlider">Opacity: </label>
    <input type="range" id="opacitySlider" min="0" max="1" step="0.1" value="1" />
    <br />
    <label><input type="checkbox" id="osmToggle" /> Show OSM basemap</label>
  </div>
  <div id="map"></div>

  <script
    src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"
    integrity="sha256-20nQCchB9co0qIjJZRGuk2/Z9VM+kNiyxNV1lvTlZBo="
    crossorigin=""
  ></script>
  <script>
    const layerSelect = document.getElementById('layerSelect');
    const opacitySlider = document.getElementById('opacitySlider');
    const osmToggle = document.getElementById('osmToggle');

    const map = L.map('map').setView([0, 0], 2);
    const osmLayer = L.tileLayer(
      'https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png',
      {
        maxZoom: 19,
        attribution: '&copy; <a href="https://www.openstreetmap.org/copyright">OpenStreetMap</a> contributors'
      }
    );
    osmLayer.setZIndex(0);

    let layers = [];
    let tileLayer = null;
    let current = null;

    function fitToLayer(layer) {
      if (!layer) {
        return;
      }
      const [west, south, east, north] = layer.lonlat_bbox;
      map.fitBounds([[south, west], [north, east]]);
    }

    function showLayer(name) {
      current = layers.find(layer => layer.name === name);
      if (tileLayer) {
        map.removeLayer(tileLayer);
      }
      tileLayer = L.tileLayer(current.tiles, {
        maxZoom: 22,
        tileSize: 256,
        opacity: parseFloat(opacitySlider.value)
      }).addTo(map);
      tileLayer.setZIndex(1);
      fitToLayer(current);
    }

    async function init() {
      const response = await fetch('/api/layers');
      layers = await response.json();
      layerSelect.innerHTML = '';
      for (const layer of layers) {
        const option = document.createElement('option');
        option.value = layer.name;
        option.textContent = `${layer.name} (${layer.style})`;
        layerSelect.appendChild(option);
      }
      if (layers.length > 0) {
        showLayer(layerSelect.value);
      }
    }

    layerSelect.addEventListener('change', () => showLayer(layerSelect.value));
    opacitySlider.addEventListener('input', () => {
      if (tileLayer) {
        tileLayer.setOpacity(parseFloat(opacitySlider.value));
      }
    });
    osmToggle.addEventListener('change', () => {
      if (osmToggle.checked) {
        map.addLayer(osmLayer);
      } else {
        map.removeLayer(osmLayer);
      }
    });

    const extentButton = L.DomUtil.create(
      'a',
      'leaflet-control-zoom-to-extent',
      map.zoomControl.getContainer()
    );
    extentButton.innerHTML = '&#10530;';
    extentButton.href = '#';
    extentButton.title = 'Zoom to extent';
    L.DomEvent.on(extentButton, 'click', event => {
      L.DomEvent.preventDefault(event);
      fitToLayer(current);
    });

    init().catch(console.error);
  </script>
</body>
</html>
"""


@router.get("/map", response_class=responses.HTMLResponse)
async def map_viewer() -> str:
    """Serve the Leaflet viewer page."""
    return VIEWER_HTML
