"""Service wiring for the HTTP layer.

The services are built once per application, on first use, from the
settings stored on app.state. Tests either pass a prebuilt ServiceContainer
to create_app() or override the individual dependencies below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, Request

from flashdash.core.settings import get_settings
from flashdash.db import create_engine_from_settings, create_session_factory
from flashdash.services.identity import HTTPIdentityProvider, TokenVerifier
from flashdash.services.lifecycle import DeliveryLifecycleService
from flashdash.services.repository import DeliveryRepository
from flashdash.services.users import UserDirectory

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

    from flashdash.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """The services one application instance talks to."""

    repository: DeliveryRepository
    users: UserDirectory
    lifecycle: DeliveryLifecycleService
    identity: TokenVerifier
    engine: AsyncEngine | None = None

    async def aclose(self) -> None:
        """Release the identity client and, if owned, the database engine."""
        await self.identity.aclose()
        if self.engine is not None:
            await self.engine.dispose()


def build_services(
    settings: Settings,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    identity: TokenVerifier | None = None,
) -> ServiceContainer:
    """Build the service graph from settings.

    Args:
        settings: Application settings.
        session_factory: Session factory to use; defaults to a new engine
            built from settings.database and owned by the container.
        identity: Token verifier to use; defaults to the HTTP userinfo client.

    Returns:
        A ServiceContainer sharing one session factory.
    """
    engine = None
    if session_factory is None:
        engine = create_engine_from_settings(settings.database)
        session_factory = create_session_factory(engine)

    timeout = settings.database.operation_timeout
    repository = DeliveryRepository.from_settings(settings, session_factory)
    users = UserDirectory(session_factory, operation_timeout=timeout)
    return ServiceContainer(
        repository=repository,
        users=users,
        lifecycle=DeliveryLifecycleService(repository, users),
        identity=identity or HTTPIdentityProvider(settings.identity),
        engine=engine,
    )


async def get_services(request: Request) -> ServiceContainer:
    """Return the application's services, building them on first use.

    Runs on the event loop rather than in the threadpool, and must not await
    between the check and the assignment below.
    """
    services: ServiceContainer | None = getattr(request.app.state, "services", None)
    if services is None:
        settings = request.app.state.settings or get_settings()
        services = build_services(settings)
        request.app.state.services = services
        logger.info("Services initialized")
    return services


Services = Annotated[ServiceContainer, Depends(get_services)]


def get_lifecycle_service(services: Services) -> DeliveryLifecycleService:
    return services.lifecycle


def get_user_directory(services: Services) -> UserDirectory:
    return services.users


def get_identity_provider(services: Services) -> TokenVerifier:
    return services.identity


LifecycleService = Annotated[DeliveryLifecycleService, Depends(get_lifecycle_service)]
Directory = Annotated[UserDirectory, Depends(get_user_directory)]
IdentityProvider = Annotated[TokenVerifier, Depends(get_identity_provider)]
