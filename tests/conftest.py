"""Pytest configuration and shared fixtures.

Store-backed tests run against a temporary SQLite file through aiosqlite.
The engine opens every transaction with BEGIN IMMEDIATE, so concurrent
writers are serialized the same way row locks serialize them on
PostgreSQL.

Environment variables:
    FLASHDASH_* variables are ignored by these fixtures; settings are built
    explicitly for each test.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from dataclasses import dataclass

import pytest
from httpx import ASGITransport, AsyncClient

from flashdash.api import create_app
from flashdash.api.dependencies import build_services
from flashdash.core.config import DatabaseSettings, IdentitySettings, Settings
from flashdash.db import create_engine_from_settings, create_session_factory
from flashdash.db.models import Base
from flashdash.services.identity import InvalidTokenError
from flashdash.services.lifecycle import DeliveryLifecycleService
from flashdash.services.repository import DeliveryRepository
from flashdash.services.users import CustomerAccount, NewAddress, RiderAccount, UserDirectory
from tests.factories import next_phone

TOKEN_PREFIX = "token-"


class FakeIdentityProvider:
    """Accepts tokens of the form ``token-<user_id>``."""

    def __init__(self) -> None:
        self.closed = False

    async def verify_token(self, token: str) -> str:
        if not token.startswith(TOKEN_PREFIX) or len(token) == len(TOKEN_PREFIX):
            raise InvalidTokenError("unknown token")
        return token[len(TOKEN_PREFIX) :]

    async def aclose(self) -> None:
        self.closed = True


@dataclass
class Parties:
    """The users most delivery tests need."""

    sender: CustomerAccount
    receiver: CustomerAccount
    rider_a: RiderAccount
    rider_b: RiderAccount

    @property
    def sender_address_id(self):
        return self.sender.addresses[0].address_id

    @property
    def receiver_address_id(self):
        return self.receiver.addresses[0].address_id


# ---------------------------------------------------------------------------
# Settings and database fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def settings(tmp_path) -> Settings:
    """Development settings pointing at a throwaway SQLite file."""
    return Settings(
        environment="dev",
        database=DatabaseSettings(
            url=f"sqlite:///{tmp_path / 'flashdash.db'}",
            operation_timeout=10.0,
        ),
        identity=IdentitySettings(userinfo_url="https://idp.test/userinfo"),
    )


@pytest.fixture
async def engine(settings: Settings):
    """Async engine with the schema created."""
    engine = create_engine_from_settings(settings.database)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


# ---------------------------------------------------------------------------
# Service fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def repository(session_factory) -> DeliveryRepository:
    return DeliveryRepository(session_factory, operation_timeout=10.0)


@pytest.fixture
def directory(session_factory) -> UserDirectory:
    return UserDirectory(session_factory, operation_timeout=10.0)


@pytest.fixture
def lifecycle(repository: DeliveryRepository, directory: UserDirectory) -> DeliveryLifecycleService:
    return DeliveryLifecycleService(repository, directory)


@pytest.fixture
async def parties(directory: UserDirectory) -> Parties:
    """Register a sender, a receiver and two riders."""
    sender = await directory.register_customer(
        "sender-1",
        name="Sophie Sender",
        phone=next_phone(),
        address=NewAddress(detail="10 rue de Rivoli, Paris", latitude=48.856, longitude=2.352),
    )
    receiver = await directory.register_customer(
        "receiver-1",
        name="Rémi Receiver",
        phone=next_phone(),
        address=NewAddress(detail="5 avenue Foch, Paris", latitude=48.871, longitude=2.285),
    )
    rider_a = await directory.register_rider(
        "rider-a",
        name="Rider A",
        phone=next_phone(),
        vehicle_registration="AA-111-AA",
        image_profile="img://rider-a.jpg",
    )
    rider_b = await directory.register_rider(
        "rider-b", name="Rider B", phone=next_phone(), vehicle_registration="BB-222-BB"
    )
    return Parties(sender=sender, receiver=receiver, rider_a=rider_a, rider_b=rider_b)


@pytest.fixture
async def pending_delivery(lifecycle: DeliveryLifecycleService, parties: Parties):
    """A freshly created pending delivery from sender to receiver."""
    return await lifecycle.create_delivery(
        sender_id=parties.sender.user_id,
        receiver_id=parties.receiver.user_id,
        sender_address_id=parties.sender_address_id,
        receiver_address_id=parties.receiver_address_id,
        item_description="Box of books",
        item_image_ref="img://items/books.jpg",
    )


# ---------------------------------------------------------------------------
# API client fixture (in-process testing via ASGI transport)
# ---------------------------------------------------------------------------
@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def test_app(settings: Settings, session_factory, identity_provider: FakeIdentityProvider):
    """Create a test FastAPI application backed by the SQLite store."""
    services = build_services(
        settings, session_factory=session_factory, identity=identity_provider
    )
    return create_app(settings, services=services)


@pytest.fixture
async def api_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing the API.

    Uses httpx with ASGI transport for in-process testing.
    """
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
