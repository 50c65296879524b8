"""User directory: profiles, rider details and saved addresses.

Identities are issued by the external identity provider; this service
only stores the profile a user registers for their id. A profile is
either a customer or a rider, resolved once into CustomerAccount or
RiderAccount and passed explicitly from there on.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from flashdash.db.models.base import UserRole
from flashdash.db.models.users import Address, RiderDetails, User
from flashdash.services.errors import ConflictError, NotFoundError, ValidationError
from flashdash.services.store import StoreGateway

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# E.164-ish: optional leading +, 6 to 20 digits
PHONE_PATTERN = re.compile(r"^\+?[0-9]{6,20}$")


@dataclass(frozen=True, slots=True)
class AddressRecord:
    """A saved address."""

    address_id: UUID
    user_id: str
    detail: str
    latitude: float
    longitude: float
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, address: Address) -> AddressRecord:
        return cls(
            address_id=address.address_id,
            user_id=address.user_id,
            detail=address.detail,
            latitude=address.latitude,
            longitude=address.longitude,
            created_at=address.created_at,
            updated_at=address.updated_at,
        )

    def snapshot(self) -> dict[str, str | float]:
        """Copy of the address to embed in a delivery."""
        return {
            "address_id": str(self.address_id),
            "detail": self.detail,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


@dataclass(frozen=True, slots=True)
class CustomerAccount:
    """A customer: sends and receives deliveries."""

    role: ClassVar[UserRole] = UserRole.CUSTOMER

    user_id: str
    name: str
    phone: str
    image_profile: str | None
    addresses: tuple[AddressRecord, ...]


@dataclass(frozen=True, slots=True)
class RiderAccount:
    """A rider: claims and carries deliveries."""

    role: ClassVar[UserRole] = UserRole.RIDER

    user_id: str
    name: str
    phone: str
    image_profile: str | None
    addresses: tuple[AddressRecord, ...]
    vehicle_registration: str
    image_vehicle: str | None
    current_latitude: float | None
    current_longitude: float | None
    location_updated_at: datetime | None


Account = CustomerAccount | RiderAccount


@dataclass(frozen=True, slots=True)
class PublicProfile:
    """What other participants of a delivery may see about a user."""

    name: str
    image_profile: str | None


@dataclass(frozen=True, slots=True)
class NewAddress:
    """Address fields supplied by a user."""

    detail: str
    latitude: float
    longitude: float


def _to_account(user: User) -> Account:
    addresses = tuple(AddressRecord.from_model(address) for address in user.addresses)
    if user.role is UserRole.CUSTOMER:
        return CustomerAccount(
            user_id=user.user_id,
            name=user.name,
            phone=user.phone,
            image_profile=user.image_profile,
            addresses=addresses,
        )

    details = user.rider_details
    if details is None:
        raise NotFoundError("rider details", user.user_id)
    return RiderAccount(
        user_id=user.user_id,
        name=user.name,
        phone=user.phone,
        image_profile=user.image_profile,
        addresses=addresses,
        vehicle_registration=details.vehicle_registration,
        image_vehicle=details.image_vehicle,
        current_latitude=details.current_latitude,
        current_longitude=details.current_longitude,
        location_updated_at=details.location_updated_at,
    )


# -----------------------------------------------------------------------------
# Input validation (runs before any store access)
# -----------------------------------------------------------------------------


def _require_text(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} must not be empty", field=field)
    return value.strip()


def _validate_phone(phone: str) -> str:
    normalized = re.sub(r"[\s\-()]", "", phone or "")
    if not PHONE_PATTERN.match(normalized):
        raise ValidationError("phone must contain 6 to 20 digits", field="phone")
    return normalized


def _validate_coordinates(latitude: float, longitude: float) -> None:
    if not -90.0 <= latitude <= 90.0:
        raise ValidationError("latitude must be between -90 and 90", field="latitude")
    if not -180.0 <= longitude <= 180.0:
        raise ValidationError("longitude must be between -180 and 180", field="longitude")


def _validate_address(address: NewAddress) -> NewAddress:
    _validate_coordinates(address.latitude, address.longitude)
    return NewAddress(
        detail=_require_text(address.detail, "detail"),
        latitude=address.latitude,
        longitude=address.longitude,
    )


class UserDirectory(StoreGateway):
    """Profiles, rider details and addresses.

    Example:
        directory = UserDirectory(session_factory)
        account = await directory.resolve_account("user-123")
        if isinstance(account, RiderAccount):
            ...
    """

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    async def register_customer(
        self,
        user_id: str,
        *,
        name: str,
        phone: str,
        address: NewAddress,
        image_profile: str | None = None,
    ) -> CustomerAccount:
        """Create the customer profile for an identity, with a first address.

        Raises:
            ValidationError: If a field is malformed.
            ConflictError: If the id or phone is already registered.
        """
        user_id = _require_text(user_id, "user_id")
        name = _require_text(name, "name")
        phone = _validate_phone(phone)
        address = _validate_address(address)
        now = self._clock()

        user = User(
            user_id=user_id,
            name=name,
            phone=phone,
            role=UserRole.CUSTOMER,
            image_profile=image_profile,
            created_at=now,
            updated_at=now,
            addresses=[
                Address(
                    detail=address.detail,
                    latitude=address.latitude,
                    longitude=address.longitude,
                    created_at=now,
                    updated_at=now,
                )
            ],
        )
        account = await self._register(user)
        logger.info("Customer registered", extra={"user_id": user_id})
        return account  # type: ignore[return-value]

    async def register_rider(
        self,
        user_id: str,
        *,
        name: str,
        phone: str,
        vehicle_registration: str,
        image_profile: str | None = None,
        image_vehicle: str | None = None,
    ) -> RiderAccount:
        """Create the rider profile for an identity.

        Raises:
            ValidationError: If a field is malformed.
            ConflictError: If the id or phone is already registered.
        """
        user_id = _require_text(user_id, "user_id")
        name = _require_text(name, "name")
        phone = _validate_phone(phone)
        vehicle_registration = _require_text(vehicle_registration, "vehicle_registration")
        now = self._clock()

        user = User(
            user_id=user_id,
            name=name,
            phone=phone,
            role=UserRole.RIDER,
            image_profile=image_profile,
            created_at=now,
            updated_at=now,
            addresses=[],
            rider_details=RiderDetails(
                vehicle_registration=vehicle_registration,
                image_vehicle=image_vehicle,
            ),
        )
        account = await self._register(user)
        logger.info("Rider registered", extra={"user_id": user_id})
        return account  # type: ignore[return-value]

    async def _register(self, user: User) -> Account:
        async def work(session: AsyncSession) -> Account:
            try:
                async with session.begin():
                    if await session.get(User, user.user_id) is not None:
                        raise ConflictError(
                            ConflictError.DUPLICATE, "a profile already exists for this user"
                        )
                    session.add(user)
                    await session.flush()
            except IntegrityError as exc:
                raise _conflict_from_registration(exc) from exc
            return _to_account(user)

        return await self._run("register", work, shielded=True)

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    async def resolve_account(self, user_id: str) -> Account:
        """Load the profile registered for an identity.

        Raises:
            NotFoundError: If the identity has not registered a profile.
        """

        async def work(session: AsyncSession) -> Account:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError("user", user_id)
            return _to_account(user)

        return await self._run("resolve_account", work)

    async def find_by_phone(self, phone: str) -> Account:
        """Find a registered user by phone number.

        Raises:
            ValidationError: If the phone number is malformed.
            NotFoundError: If nobody registered this number.
        """
        phone = _validate_phone(phone)

        async def work(session: AsyncSession) -> Account:
            result = await session.execute(select(User).where(User.phone == phone))
            user = result.scalar_one_or_none()
            if user is None:
                raise NotFoundError("user with phone", phone)
            return _to_account(user)

        return await self._run("find_by_phone", work)

    async def get_public_profiles(
        self, user_ids: Iterable[str | None]
    ) -> dict[str, PublicProfile]:
        """Map user ids to name and profile image; unknown ids are omitted."""
        wanted = {user_id for user_id in user_ids if user_id}
        if not wanted:
            return {}

        async def work(session: AsyncSession) -> dict[str, PublicProfile]:
            result = await session.execute(
                select(User.user_id, User.name, User.image_profile).where(
                    User.user_id.in_(wanted)
                )
            )
            return {
                row.user_id: PublicProfile(name=row.name, image_profile=row.image_profile)
                for row in result
            }

        return await self._run("get_public_profiles", work)

    # -------------------------------------------------------------------------
    # Profile updates
    # -------------------------------------------------------------------------

    async def update_profile(
        self,
        user_id: str,
        *,
        name: str | None = None,
        image_profile: str | None = None,
    ) -> Account:
        """Change the name and/or profile image of any user."""
        if name is not None:
            name = _require_text(name, "name")

        async def work(session: AsyncSession) -> Account:
            async with session.begin():
                user = await self._load_user(session, user_id)
                if name is not None:
                    user.name = name
                if image_profile is not None:
                    user.image_profile = image_profile
                user.updated_at = self._clock()
            return _to_account(user)

        return await self._run("update_profile", work, shielded=True)

    async def update_rider_profile(
        self,
        user_id: str,
        *,
        name: str | None = None,
        image_profile: str | None = None,
        vehicle_registration: str | None = None,
        image_vehicle: str | None = None,
    ) -> RiderAccount:
        """Change profile and vehicle fields of a rider.

        Raises:
            NotFoundError: If the user is not a registered rider.
        """
        if name is not None:
            name = _require_text(name, "name")
        if vehicle_registration is not None:
            vehicle_registration = _require_text(vehicle_registration, "vehicle_registration")

        async def work(session: AsyncSession) -> Account:
            async with session.begin():
                user = await self._load_rider(session, user_id)
                if name is not None:
                    user.name = name
                if image_profile is not None:
                    user.image_profile = image_profile
                if vehicle_registration is not None:
                    user.rider_details.vehicle_registration = vehicle_registration
                if image_vehicle is not None:
                    user.rider_details.image_vehicle = image_vehicle
                user.updated_at = self._clock()
            return _to_account(user)

        return await self._run("update_rider_profile", work, shielded=True)  # type: ignore[return-value]

    async def update_rider_location(
        self,
        user_id: str,
        *,
        latitude: float,
        longitude: float,
    ) -> RiderAccount:
        """Record the last known position of a rider."""
        _validate_coordinates(latitude, longitude)

        async def work(session: AsyncSession) -> Account:
            async with session.begin():
                user = await self._load_rider(session, user_id)
                user.rider_details.current_latitude = latitude
                user.rider_details.current_longitude = longitude
                user.rider_details.location_updated_at = self._clock()
            return _to_account(user)

        account = await self._run("update_rider_location", work, shielded=True)
        logger.debug("Rider location updated", extra={"user_id": user_id})
        return account  # type: ignore[return-value]

    # -------------------------------------------------------------------------
    # Addresses
    # -------------------------------------------------------------------------

    async def add_address(self, user_id: str, address: NewAddress) -> AddressRecord:
        """Save a new address for a user."""
        address = _validate_address(address)

        async def work(session: AsyncSession) -> AddressRecord:
            async with session.begin():
                await self._load_user(session, user_id)
                now = self._clock()
                row = Address(
                    user_id=user_id,
                    detail=address.detail,
                    latitude=address.latitude,
                    longitude=address.longitude,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                await session.flush()
            return AddressRecord.from_model(row)

        record = await self._run("add_address", work, shielded=True)
        logger.info(
            "Address added",
            extra={"user_id": user_id, "address_id": str(record.address_id)},
        )
        return record

    async def update_address(
        self,
        user_id: str,
        address_id: UUID,
        *,
        detail: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> AddressRecord:
        """Edit one of the user's saved addresses.

        Deliveries already created keep their own snapshot of the address.

        Raises:
            NotFoundError: If the address does not exist or belongs to someone else.
        """
        if detail is not None:
            detail = _require_text(detail, "detail")
        _validate_coordinates(
            0.0 if latitude is None else latitude,
            0.0 if longitude is None else longitude,
        )

        async def work(session: AsyncSession) -> AddressRecord:
            async with session.begin():
                row = await self._load_address(session, user_id, address_id)
                if detail is not None:
                    row.detail = detail
                if latitude is not None:
                    row.latitude = latitude
                if longitude is not None:
                    row.longitude = longitude
                row.updated_at = self._clock()
            return AddressRecord.from_model(row)

        return await self._run("update_address", work, shielded=True)

    async def list_addresses(self, user_id: str) -> list[AddressRecord]:
        """List a user's saved addresses, oldest first."""

        async def work(session: AsyncSession) -> list[AddressRecord]:
            result = await session.execute(
                select(Address)
                .where(Address.user_id == user_id)
                .order_by(Address.created_at, Address.address_id)
            )
            return [AddressRecord.from_model(row) for row in result.scalars().all()]

        return await self._run("list_addresses", work)

    async def get_address(self, user_id: str, address_id: UUID) -> AddressRecord:
        """Fetch one of the user's saved addresses.

        Raises:
            NotFoundError: If the address does not exist or belongs to someone else.
        """

        async def work(session: AsyncSession) -> AddressRecord:
            return AddressRecord.from_model(await self._load_address(session, user_id, address_id))

        return await self._run("get_address", work)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    async def _load_user(session: AsyncSession, user_id: str) -> User:
        user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError("user", user_id)
        return user

    @classmethod
    async def _load_rider(cls, session: AsyncSession, user_id: str) -> User:
        user = await cls._load_user(session, user_id)
        if user.role is not UserRole.RIDER or user.rider_details is None:
            raise NotFoundError("rider", user_id)
        return user

    @staticmethod
    async def _load_address(session: AsyncSession, user_id: str, address_id: UUID) -> Address:
        row = await session.get(Address, address_id)
        # Other users' addresses are reported as missing
        if row is None or row.user_id != user_id:
            raise NotFoundError("address", address_id)
        return row


def _conflict_from_registration(exc: IntegrityError) -> ConflictError:
    """Translate a unique violation raised while registering a profile."""
    message = str(exc.orig).lower()
    if "phone" in message:
        return ConflictError(ConflictError.DUPLICATE, "phone number is already registered")
    # Primary key of users or rider_details: a concurrent registration won
    return ConflictError(ConflictError.DUPLICATE, "a profile already exists for this user")
