"""FlashDash API service entry point.

This module provides the application instance for ASGI servers (uvicorn)
and a run() function for direct execution.

The app is created using the factory pattern from flashdash.api.create_app().
"""

import logging

from flashdash.api import create_app
from flashdash.core.logging import configure_logging
from flashdash.core.settings import get_settings

logger = logging.getLogger(__name__)

# Create the application instance for ASGI servers
# This is what uvicorn references: flashdash.api.main:app
app = create_app(get_settings())


def run() -> None:
    """Run the API server using uvicorn.

    This function is called by the flashdash-api console script
    defined in pyproject.toml.
    """
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info("Starting FlashDash API on %s:%d", settings.api_host, settings.api_port)
    logger.info("Startup configuration: %s", settings.get_startup_summary())

    uvicorn.run(
        "flashdash.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


if __name__ == "__main__":
    run()
