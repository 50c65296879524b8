"""FlashDash API service.

FastAPI application providing:
- Customer profile, address and delivery endpoints
- Rider discovery and delivery lifecycle actions
- Bearer token authentication against the identity provider
- Consistent JSON error responses with request correlation ids

This module provides the app factory pattern for creating configured
FastAPI instances suitable for testing and production deployment.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flashdash.api.middleware import ErrorHandlerMiddleware, RequestIDMiddleware
from flashdash.api.routers import deliveries_router, rider_router, users_router

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from flashdash.api.dependencies import ServiceContainer
    from flashdash.core.config import Settings

logger = logging.getLogger(__name__)

# Application metadata
API_TITLE = "FlashDash API"
API_DESCRIPTION = """
Peer-to-peer same-day delivery.

## Namespaces

- **/users/** - Profile registration, saved addresses, lookup by phone
- **/deliveries/** - Create and track deliveries (customers)
- **/rider/** - Claim, pick up and deliver (riders)

All endpoints except `/health` require a bearer token from the identity provider.

## Documentation

- OpenAPI spec: `/api/openapi.json`
- Swagger UI: `/api/docs`
- ReDoc: `/api/redoc`
"""


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    services: ServiceContainer | None = getattr(app.state, "services", None)
    if services is not None:
        await services.aclose()
        logger.info("Services closed")


def create_app(
    settings: Settings | None = None,
    *,
    services: ServiceContainer | None = None,
) -> FastAPI:
    """Create and configure a FastAPI application instance.

    This factory function creates a fully configured FastAPI app with:
    - API namespace routers mounted under /api
    - Request ID middleware for request correlation
    - Error handling middleware for consistent JSON responses
    - CORS middleware (origins from settings)
    - OpenAPI documentation at /api/docs and /api/redoc

    Args:
        settings: Optional Settings instance. If not provided, settings are
            loaded from the environment when the services are first needed.
        services: Optional prebuilt services (repository, user directory,
            lifecycle engine, identity provider). Built from settings on
            first use if omitted.

    Returns:
        Configured FastAPI application ready to serve requests.

    Example:
        # Basic usage
        app = create_app()

        # For testing
        services = build_services(settings, session_factory=factory, identity=fake)
        app = create_app(settings, services=services)
    """
    version = "0.1.0"
    if settings:
        version = settings.app_version

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=version,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=_lifespan,
    )

    # Store settings and services in app state for access in dependencies
    app.state.settings = settings
    app.state.services = services

    # Add middleware (last added is outermost)
    _add_middleware(app, settings)

    # Include routers
    _include_routers(app)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint for container orchestration.

        Returns:
            Status dictionary indicating the service is healthy.
        """
        return {"status": "healthy"}

    logger.info("FlashDash API application created (version=%s)", version)

    return app


def _add_middleware(app: FastAPI, settings: Settings | None) -> None:
    """Add middleware to the application.

    Args:
        app: The FastAPI application instance.
        settings: Optional settings for middleware configuration.
    """
    # Error handler middleware - converts exceptions to JSON responses
    app.add_middleware(ErrorHandlerMiddleware)

    # Request ID middleware - wraps the error handler so error bodies carry the id
    app.add_middleware(RequestIDMiddleware)

    allowed_origins = ["http://localhost:3000", "http://localhost:8000"]
    if settings:
        allowed_origins = list(settings.cors_origins)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )


def _include_routers(app: FastAPI) -> None:
    """Include API namespace routers.

    Args:
        app: The FastAPI application instance.
    """
    app.include_router(users_router, prefix="/api")
    app.include_router(deliveries_router, prefix="/api")
    app.include_router(rider_router, prefix="/api")
