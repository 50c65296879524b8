"""Users API router.

Profile registration and updates, saved addresses, and looking up a
receiver by phone number. Registration only needs a verified identity;
every other endpoint requires a registered profile.
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Query, status

from flashdash.api.dependencies import Directory  # noqa: TC001
from flashdash.api.middleware.auth import CurrentAccount, UserId  # noqa: TC001
from flashdash.api.schemas.users import (
    AccountResponse,
    AddressInput,
    AddressListResponse,
    AddressResponse,
    AddressUpdateRequest,
    FoundUserResponse,
    RegisterProfileRequest,
    UpdateProfileRequest,
)
from flashdash.db.models.base import UserRole
from flashdash.services.errors import ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/users",
    tags=["users"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Profile not registered"},
    },
)


# -----------------------------------------------------------------------------
# Profile
# -----------------------------------------------------------------------------


@router.post(
    "/profile",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register the caller's profile",
)
async def register_profile(
    request: RegisterProfileRequest,
    user_id: UserId,
    directory: Directory,
) -> AccountResponse:
    """Register a customer or rider profile for the authenticated identity.

    Raises:
        ValidationError: If the role-specific fields are missing.
        ConflictError: If the identity or phone number is already registered.
    """
    if request.role is UserRole.CUSTOMER:
        if request.address is None:
            raise ValidationError("customers must supply a first address", field="address")
        account = await directory.register_customer(
            user_id,
            name=request.name,
            phone=request.phone,
            address=request.address.to_new_address(),
            image_profile=request.image_profile,
        )
    else:
        if not request.vehicle_registration:
            raise ValidationError(
                "riders must supply a vehicle registration", field="vehicle_registration"
            )
        account = await directory.register_rider(
            user_id,
            name=request.name,
            phone=request.phone,
            vehicle_registration=request.vehicle_registration,
            image_profile=request.image_profile,
            image_vehicle=request.image_vehicle,
        )
    return AccountResponse.from_account(account)


@router.get("/me", response_model=AccountResponse, summary="Get the caller's profile")
async def get_me(account: CurrentAccount) -> AccountResponse:
    return AccountResponse.from_account(account)


@router.put("/profile", response_model=AccountResponse, summary="Update the caller's profile")
async def update_profile(
    request: UpdateProfileRequest,
    account: CurrentAccount,
    directory: Directory,
) -> AccountResponse:
    updated = await directory.update_profile(
        account.user_id,
        name=request.name,
        image_profile=request.image_profile,
    )
    return AccountResponse.from_account(updated)


@router.get(
    "/find",
    response_model=FoundUserResponse,
    summary="Find a user by phone number",
    description="Used by senders to pick the receiver and one of their addresses.",
)
async def find_user(
    phone: Annotated[str, Query(min_length=6, max_length=32, description="Phone number")],
    _account: CurrentAccount,
    directory: Directory,
) -> FoundUserResponse:
    found = await directory.find_by_phone(phone)
    return FoundUserResponse.from_account(found)


# -----------------------------------------------------------------------------
# Addresses
# -----------------------------------------------------------------------------


@router.post(
    "/addresses",
    response_model=AddressResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Save a new address",
)
async def add_address(
    request: AddressInput,
    account: CurrentAccount,
    directory: Directory,
) -> AddressResponse:
    record = await directory.add_address(account.user_id, request.to_new_address())
    return AddressResponse.model_validate(record)


@router.put(
    "/addresses/{address_id}",
    response_model=AddressResponse,
    summary="Edit a saved address",
    description="Deliveries already created keep the address as it was.",
)
async def update_address(
    address_id: UUID,
    request: AddressUpdateRequest,
    account: CurrentAccount,
    directory: Directory,
) -> AddressResponse:
    record = await directory.update_address(
        account.user_id,
        address_id,
        detail=request.detail,
        latitude=request.latitude,
        longitude=request.longitude,
    )
    return AddressResponse.model_validate(record)


@router.get("/addresses", response_model=AddressListResponse, summary="List saved addresses")
async def list_addresses(account: CurrentAccount, directory: Directory) -> AddressListResponse:
    records = await directory.list_addresses(account.user_id)
    return AddressListResponse(items=[AddressResponse.model_validate(r) for r in records])
