"""Pydantic schemas for profile, address and rider endpoints."""

from __future__ import annotations

# NOTE: datetime and UUID must remain at runtime for Pydantic validation
from datetime import datetime  # noqa: TC003
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

from flashdash.db.models.base import UserRole
from flashdash.services.users import NewAddress, RiderAccount

if TYPE_CHECKING:
    from flashdash.services.users import Account

# -----------------------------------------------------------------------------
# Address Schemas
# -----------------------------------------------------------------------------


class AddressInput(BaseModel):
    """A new saved address."""

    detail: str = Field(..., min_length=1, max_length=1000, description="Street address")
    latitude: float = Field(..., ge=-90, le=90, description="Latitude in degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in degrees")

    model_config = ConfigDict(extra="forbid")

    def to_new_address(self) -> NewAddress:
        return NewAddress(detail=self.detail, latitude=self.latitude, longitude=self.longitude)


class AddressUpdateRequest(BaseModel):
    """Partial update of a saved address."""

    detail: str | None = Field(None, min_length=1, max_length=1000, description="Street address")
    latitude: float | None = Field(None, ge=-90, le=90, description="Latitude in degrees")
    longitude: float | None = Field(None, ge=-180, le=180, description="Longitude in degrees")

    model_config = ConfigDict(extra="forbid")


class AddressResponse(BaseModel):
    """A saved address."""

    address_id: UUID = Field(..., description="Unique address identifier")
    detail: str = Field(..., description="Street address")
    latitude: float = Field(..., description="Latitude in degrees")
    longitude: float = Field(..., description="Longitude in degrees")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

    model_config = ConfigDict(from_attributes=True)


class AddressListResponse(BaseModel):
    """Response schema for listing addresses."""

    items: list[AddressResponse] = Field(..., description="Saved addresses, oldest first")


# -----------------------------------------------------------------------------
# Profile Schemas
# -----------------------------------------------------------------------------


class RegisterProfileRequest(BaseModel):
    """Request schema for registering the caller's profile.

    Customers must supply a first address; riders must supply their
    vehicle registration.
    """

    role: UserRole = Field(..., description="customer or rider")
    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    phone: str = Field(..., min_length=6, max_length=32, description="Phone number")
    image_profile: str | None = Field(None, max_length=512, description="Profile photo ref")
    address: AddressInput | None = Field(None, description="First address (customers)")
    vehicle_registration: str | None = Field(
        None, max_length=32, description="Vehicle plate (riders)"
    )
    image_vehicle: str | None = Field(None, max_length=512, description="Vehicle photo ref")

    model_config = ConfigDict(extra="forbid")


class UpdateProfileRequest(BaseModel):
    """Partial update of the caller's profile."""

    name: str | None = Field(None, min_length=1, max_length=255, description="Display name")
    image_profile: str | None = Field(None, max_length=512, description="Profile photo ref")

    model_config = ConfigDict(extra="forbid")


class UpdateRiderProfileRequest(UpdateProfileRequest):
    """Partial update of a rider's profile and vehicle."""

    vehicle_registration: str | None = Field(
        None, min_length=1, max_length=32, description="Vehicle plate"
    )
    image_vehicle: str | None = Field(None, max_length=512, description="Vehicle photo ref")


class RiderLocationRequest(BaseModel):
    """The rider's current position."""

    latitude: float = Field(..., ge=-90, le=90, description="Latitude in degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in degrees")

    model_config = ConfigDict(extra="forbid")


class RiderDetailsResponse(BaseModel):
    """Rider-only profile fields."""

    vehicle_registration: str = Field(..., description="Vehicle plate")
    image_vehicle: str | None = Field(None, description="Vehicle photo ref")
    current_latitude: float | None = Field(None, description="Last known latitude")
    current_longitude: float | None = Field(None, description="Last known longitude")
    location_updated_at: datetime | None = Field(None, description="When the position was sent")

    model_config = ConfigDict(from_attributes=True)


class AccountResponse(BaseModel):
    """A user's profile."""

    user_id: str = Field(..., description="Identity provider subject id")
    role: UserRole = Field(..., description="customer or rider")
    name: str = Field(..., description="Display name")
    phone: str = Field(..., description="Normalized phone number")
    image_profile: str | None = Field(None, description="Profile photo ref")
    addresses: list[AddressResponse] = Field(default_factory=list, description="Saved addresses")
    rider: RiderDetailsResponse | None = Field(None, description="Rider details, riders only")

    @classmethod
    def from_account(cls, account: Account) -> AccountResponse:
        return cls(
            user_id=account.user_id,
            role=account.role,
            name=account.name,
            phone=account.phone,
            image_profile=account.image_profile,
            addresses=[AddressResponse.model_validate(a) for a in account.addresses],
            rider=(
                RiderDetailsResponse.model_validate(account)
                if isinstance(account, RiderAccount)
                else None
            ),
        )


class FoundUserResponse(BaseModel):
    """Public view of a user found by phone number, for addressing a delivery."""

    user_id: str = Field(..., description="Identity provider subject id")
    name: str = Field(..., description="Display name")
    addresses: list[AddressResponse] = Field(default_factory=list, description="Saved addresses")

    @classmethod
    def from_account(cls, account: Account) -> FoundUserResponse:
        return cls(
            user_id=account.user_id,
            name=account.name,
            addresses=[AddressResponse.model_validate(a) for a in account.addresses],
        )
