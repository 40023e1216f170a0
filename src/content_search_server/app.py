"""Main ASGI application entry point.

Usage:
    # Configuration comes from environment variables (or .env)
    python -m content_search_server.app

    # Or through uvicorn's factory mode
    uvicorn content_search_server.app:create_app --factory --port 3014
"""

import logging

from starlette.applications import Starlette

from .app_builder import AppBuilder
from .config import Settings


logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> Starlette:
    """Create the ASGI application.

    Args:
        settings: Explicit settings; loaded from the environment when omitted

    Returns:
        Starlette application serving the search API
    """
    return AppBuilder(settings).build()


def main() -> None:
    """Main entry point for the content search server."""
    import uvicorn

    settings = Settings()
    app = create_app(settings)

    logger.info("Starting content search server on %s:%d", settings.host, settings.port)
    logger.info("Health check: http://%s:%d/health", settings.host, settings.port)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        log_config=None,  # Don't let uvicorn override our logging config
        access_log=settings.access_log,
    )


if __name__ == "__main__":
    main()
