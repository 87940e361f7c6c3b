"""
Run the content backend under uvicorn.

uvicorn stops accepting connections on SIGINT/SIGTERM and then runs the
application lifespan shutdown, which closes the database and media clients.
"""

from __future__ import annotations

import logging

import uvicorn

from content_backend.app import create_app
from content_backend.config import get_settings

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(settings)
    logger.info(
        "Serving %s on %s:%s (sites: %s)",
        settings.service_title,
        settings.host,
        settings.port,
        ", ".join(settings.enabled_sites),
    )
    for route in app.routes:
        methods = ",".join(sorted(getattr(route, "methods", None) or []))
        if methods:
            logger.info("  %-20s %s", methods, route.path)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
