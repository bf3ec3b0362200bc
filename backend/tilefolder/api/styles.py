"""Style summary endpoint.

Reports, for every style group, how its colour ramp was resolved and
whether it covers the group's data, together with every warning recorded
during the startup scan.
"""

from typing import Any

import fastapi

from tilefolder.api import layers
from tilefolder.catalog import registry as catalog_registry
from tilefolder.services import reporting

router = fastapi.APIRouter(prefix="/api/styles", tags=["styles"])


@router.get("")
async def list_styles(
    registry: catalog_registry.LayerRegistry = fastapi.Depends(layers.get_registry),  # noqa: B008
) -> dict[str, list[dict[str, Any]]]:
    """Summarise the resolved style of each group.

    ``breaks`` lists the colour-stop values of explicit styles and is
    ``"auto"`` for built-in gradients and grayscale, whose stops follow
    the data.

    Args:
        registry: Layer registry (injected via FastAPI Depends).

    Returns:
        Dictionary with a ``styles`` list (one entry per group, sorted by
        name) and a ``warnings`` list.
    """
    styles = [
        {
            "group": item.group,
            "kind": item.kind,
            "layer_count": item.layer_count,
            "breaks": "auto" if item.breaks is None else list(item.breaks),
            "data_range": layers.range_to_list(item.data_range),
            "coverage_warning": item.coverage_warning,
            "colours": [list(colour) for colour in item.colours],
        }
        for item in registry.summary()
    ]
    warnings = [
        {
            "kind": warning.kind,
            "path": warning.path,
            "layer": warning.layer,
            "message": warning.message,
            "text": reporting.format_warning(warning),
        }
        for warning in registry.warnings
    ]
    return {"styles": styles, "warnings": warnings}
