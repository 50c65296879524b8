"""Rider API router.

All endpoints require a rider profile. A rider discovers pending
deliveries, claims one, confirms pickup and drop-off, and reports its
position. The pending list is only a discovery aid: every action
re-checks the delivery's state when it is applied, and a lost race is
answered with 409 so the rider can refresh and choose again.
"""

from __future__ import annotations

import logging
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter

from flashdash.api.dependencies import Directory, LifecycleService  # noqa: TC001
from flashdash.api.middleware.auth import CurrentRider  # noqa: TC001
from flashdash.api.routers.deliveries import delivery_responses
from flashdash.api.schemas.deliveries import (
    ActiveDeliveryResponse,
    ConfirmDeliveryRequest,
    ConfirmPickupRequest,
    DeliveryResponse,
    PendingDeliveriesResponse,
)
from flashdash.api.schemas.users import (
    AccountResponse,
    RiderLocationRequest,
    UpdateRiderProfileRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/rider",
    tags=["rider"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Rider role required"},
        409: {"description": "Delivery changed state, refresh and retry"},
    },
)


# -----------------------------------------------------------------------------
# Profile and position
# -----------------------------------------------------------------------------


@router.put("/profile", response_model=AccountResponse, summary="Update rider profile")
async def update_rider_profile(
    request: UpdateRiderProfileRequest,
    rider: CurrentRider,
    directory: Directory,
) -> AccountResponse:
    account = await directory.update_rider_profile(
        rider.user_id,
        name=request.name,
        image_profile=request.image_profile,
        vehicle_registration=request.vehicle_registration,
        image_vehicle=request.image_vehicle,
    )
    return AccountResponse.from_account(account)


@router.post("/location", response_model=AccountResponse, summary="Report current position")
async def update_location(
    request: RiderLocationRequest,
    rider: CurrentRider,
    directory: Directory,
) -> AccountResponse:
    account = await directory.update_rider_location(
        rider.user_id,
        latitude=request.latitude,
        longitude=request.longitude,
    )
    return AccountResponse.from_account(account)


# -----------------------------------------------------------------------------
# Discovery
# -----------------------------------------------------------------------------


@router.get(
    "/deliveries/pending",
    response_model=PendingDeliveriesResponse,
    summary="List deliveries waiting for a rider",
)
async def list_pending(
    _rider: CurrentRider,
    directory: Directory,
    service: LifecycleService,
) -> PendingDeliveriesResponse:
    records = await service.list_pending()
    items = await delivery_responses(directory, records)
    return PendingDeliveriesResponse(items=items, total=len(items))


@router.get(
    "/deliveries/active",
    response_model=ActiveDeliveryResponse,
    summary="Get the rider's current delivery",
)
async def get_active(
    rider: CurrentRider,
    directory: Directory,
    service: LifecycleService,
) -> ActiveDeliveryResponse:
    record = await service.get_active_delivery_for_rider(rider.user_id)
    if record is None:
        return ActiveDeliveryResponse(delivery=None)
    (response,) = await delivery_responses(directory, [record])
    return ActiveDeliveryResponse(delivery=response)


# -----------------------------------------------------------------------------
# Lifecycle actions
# -----------------------------------------------------------------------------


@router.post(
    "/deliveries/{delivery_id}/accept",
    response_model=DeliveryResponse,
    summary="Claim a pending delivery",
    description="Succeeds for exactly one rider; later claimants get 409.",
)
async def accept_delivery(
    delivery_id: UUID,
    rider: CurrentRider,
    directory: Directory,
    service: LifecycleService,
) -> DeliveryResponse:
    record = await service.accept_delivery(delivery_id, rider.user_id)
    (response,) = await delivery_responses(directory, [record])
    return response


@router.post(
    "/deliveries/{delivery_id}/pickup",
    response_model=DeliveryResponse,
    summary="Confirm the item was collected",
)
async def confirm_pickup(
    delivery_id: UUID,
    request: ConfirmPickupRequest,
    rider: CurrentRider,
    directory: Directory,
    service: LifecycleService,
) -> DeliveryResponse:
    record = await service.confirm_pickup(delivery_id, rider.user_id, request.pickup_image_ref)
    (response,) = await delivery_responses(directory, [record])
    return response


@router.post(
    "/deliveries/{delivery_id}/deliver",
    response_model=DeliveryResponse,
    summary="Confirm the item was dropped off",
)
async def confirm_delivery(
    delivery_id: UUID,
    request: ConfirmDeliveryRequest,
    rider: CurrentRider,
    directory: Directory,
    service: LifecycleService,
) -> DeliveryResponse:
    record = await service.confirm_delivery(
        delivery_id, rider.user_id, request.delivered_image_ref
    )
    (response,) = await delivery_responses(directory, [record])
    return response
