"""Deliveries API router.

Customer-facing delivery endpoints: create a delivery for a receiver,
list what the caller sent and is receiving, and read one delivery the
caller takes part in.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, status

from flashdash.api.dependencies import Directory, LifecycleService  # noqa: TC001
from flashdash.api.middleware.auth import CurrentAccount, CurrentCustomer  # noqa: TC001
from flashdash.api.schemas.deliveries import (
    CreateDeliveryRequest,
    CreateDeliveryResponse,
    DeliveryResponse,
    UserDeliveriesResponse,
)
from flashdash.db.models.base import DeliveryStatus

if TYPE_CHECKING:
    from collections.abc import Sequence

    from flashdash.services.repository import DeliveryRecord
    from flashdash.services.users import UserDirectory

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/deliveries",
    tags=["deliveries"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Insufficient permissions"},
    },
)


async def delivery_responses(
    directory: UserDirectory, records: Sequence[DeliveryRecord]
) -> list[DeliveryResponse]:
    """Convert records to responses, filling in participant names and images."""
    user_ids = set()
    for record in records:
        user_ids.update((record.sender_id, record.receiver_id))
        if record.rider_id:
            user_ids.add(record.rider_id)
    profiles = await directory.get_public_profiles(user_ids)
    return [DeliveryResponse.from_record(record, profiles) for record in records]


@router.post(
    "",
    response_model=CreateDeliveryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a delivery",
    description="Creates a pending delivery with no rider. Riders claim it from the pending list.",
)
async def create_delivery(
    request: CreateDeliveryRequest,
    customer: CurrentCustomer,
    service: LifecycleService,
) -> CreateDeliveryResponse:
    """Create a delivery from the caller to the user registered with receiver_phone.

    Raises:
        ValidationError: If a field is malformed. Checked before any lookup.
        NotFoundError: If the receiver or either address does not exist.
    """
    delivery_id = await service.create_delivery_for_phone(
        sender_id=customer.user_id,
        receiver_phone=request.receiver_phone,
        sender_address_id=request.sender_address_id,
        receiver_address_id=request.receiver_address_id,
        item_description=request.item_description,
        item_image_ref=request.item_image_ref,
        rider_note_image_ref=request.rider_note_image_ref,
    )
    return CreateDeliveryResponse(delivery_id=delivery_id, status=DeliveryStatus.PENDING)


@router.get(
    "/mine",
    response_model=UserDeliveriesResponse,
    summary="List the caller's deliveries",
    description="Deliveries the caller sent and deliveries addressed to them, newest first.",
)
async def list_my_deliveries(
    account: CurrentAccount,
    directory: Directory,
    service: LifecycleService,
) -> UserDeliveriesResponse:
    sent, received = await service.list_deliveries_for_user(account.user_id)
    responses = await delivery_responses(directory, [*sent, *received])
    return UserDeliveriesResponse(sent=responses[: len(sent)], received=responses[len(sent) :])


@router.get(
    "/{delivery_id}",
    response_model=DeliveryResponse,
    summary="Get delivery details",
    description="Visible to the sender, the receiver and the assigned rider.",
)
async def get_delivery(
    delivery_id: UUID,
    account: CurrentAccount,
    directory: Directory,
    service: LifecycleService,
) -> DeliveryResponse:
    record = await service.get_delivery_for_participant(delivery_id, account.user_id)
    (response,) = await delivery_responses(directory, [record])
    return response
