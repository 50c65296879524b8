"""Pydantic schemas for the FlashDash API.

This package contains request/response schemas organized by API namespace.
"""

from flashdash.api.schemas.deliveries import (
    ActiveDeliveryResponse,
    AddressSnapshot,
    ConfirmDeliveryRequest,
    ConfirmPickupRequest,
    CreateDeliveryRequest,
    CreateDeliveryResponse,
    DeliveryResponse,
    PendingDeliveriesResponse,
    UserDeliveriesResponse,
)
from flashdash.api.schemas.users import (
    AccountResponse,
    AddressInput,
    AddressListResponse,
    AddressResponse,
    AddressUpdateRequest,
    FoundUserResponse,
    RegisterProfileRequest,
    RiderDetailsResponse,
    RiderLocationRequest,
    UpdateProfileRequest,
    UpdateRiderProfileRequest,
)

__all__ = [
    "AccountResponse",
    "ActiveDeliveryResponse",
    "AddressInput",
    "AddressListResponse",
    "AddressResponse",
    "AddressSnapshot",
    "AddressUpdateRequest",
    "ConfirmDeliveryRequest",
    "ConfirmPickupRequest",
    "CreateDeliveryRequest",
    "CreateDeliveryResponse",
    "DeliveryResponse",
    "FoundUserResponse",
    "PendingDeliveriesResponse",
    "RegisterProfileRequest",
    "RiderDetailsResponse",
    "RiderLocationRequest",
    "UpdateProfileRequest",
    "UpdateRiderProfileRequest",
    "UserDeliveriesResponse",
]
