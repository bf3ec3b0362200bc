"""Command-line entry point: ``python -m tilefolder``.

Builds the layer registry from the configured data folder, logs the style
summary and scan warnings, then serves tiles with uvicorn. Settings come
from the environment or a ``.env`` file (see tilefolder.core.config).
"""

import logging
import sys

import uvicorn

from tilefolder import main as app_main
from tilefolder.core import config, logging_setup
from tilefolder.services import scanner

logger = logging.getLogger("tilefolder")


def main() -> int:
    """Scan the data folder and serve it.

    Returns:
        Process exit status: 1 when no registry could be built. Otherwise
        the call blocks until the server stops and returns 0.
    """
    settings = config.get_settings()
    logging_setup.setup_logging(settings.log_level)

    try:
        registry = app_main.load_registry(settings, ansi=sys.stdout.isatty())
    except (scanner.EmptyRegistryError, NotADirectoryError) as exc:
        logger.error("Cannot start: %s", exc)
        return 1

    logger.info("Serving %d layer(s) on %s:%d", len(registry), settings.host, settings.port)
    uvicorn.run(
        app_main.create_app(settings, registry),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
