"""Pydantic schemas for delivery and rider endpoints.

These schemas define the request/response models for creating deliveries,
listing them, and the rider actions that move a delivery through
pending -> accepted -> picked_up -> delivered.
"""

from __future__ import annotations

# NOTE: datetime and UUID must remain at runtime for Pydantic validation
from datetime import datetime  # noqa: TC003
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

from flashdash.db.models.base import DeliveryStatus  # noqa: TC001

if TYPE_CHECKING:
    from flashdash.services.repository import DeliveryRecord
    from flashdash.services.users import PublicProfile

# -----------------------------------------------------------------------------
# Delivery Creation Schemas
# -----------------------------------------------------------------------------


class CreateDeliveryRequest(BaseModel):
    """Request schema for creating a pending delivery.

    The receiver is looked up by phone number; both addresses must be
    saved addresses of their owner and are copied into the delivery.
    """

    receiver_phone: str = Field(..., max_length=32, description="Receiver's phone number")
    sender_address_id: UUID = Field(..., description="Pickup point, one of the sender's addresses")
    receiver_address_id: UUID = Field(
        ..., description="Drop-off point, one of the receiver's addresses"
    )
    item_description: str = Field(
        ..., min_length=1, max_length=2000, description="What is being carried"
    )
    item_image_ref: str = Field(
        ..., min_length=1, max_length=512, description="Reference to a photo of the item"
    )
    rider_note_image_ref: str | None = Field(
        None, max_length=512, description="Optional reference to a note for the rider"
    )

    model_config = ConfigDict(extra="forbid")


class CreateDeliveryResponse(BaseModel):
    """Response schema after creating a delivery."""

    delivery_id: UUID = Field(..., description="Unique delivery identifier")
    status: DeliveryStatus = Field(..., description="Always pending for a new delivery")


# -----------------------------------------------------------------------------
# Delivery Views
# -----------------------------------------------------------------------------


class AddressSnapshot(BaseModel):
    """Address as it was when the delivery was created."""

    address_id: UUID | None = Field(None, description="Saved address it was copied from")
    detail: str = Field(..., description="Street address and directions")
    latitude: float = Field(..., description="Latitude in degrees")
    longitude: float = Field(..., description="Longitude in degrees")


class DeliveryResponse(BaseModel):
    """Response schema for delivery details."""

    delivery_id: UUID = Field(..., description="Unique delivery identifier")
    status: DeliveryStatus = Field(..., description="Current delivery status")
    sender_id: str = Field(..., description="Sender user id")
    sender_name: str | None = Field(None, description="Sender display name")
    sender_image_profile: str | None = Field(None, description="Sender profile image")
    receiver_id: str = Field(..., description="Receiver user id")
    receiver_name: str | None = Field(None, description="Receiver display name")
    receiver_image_profile: str | None = Field(None, description="Receiver profile image")
    rider_id: str | None = Field(None, description="Assigned rider, unset while pending")
    rider_name: str | None = Field(None, description="Assigned rider display name")
    rider_image_profile: str | None = Field(None, description="Assigned rider profile image")
    sender_address: AddressSnapshot = Field(..., description="Pickup point")
    receiver_address: AddressSnapshot = Field(..., description="Drop-off point")
    item_description: str = Field(..., description="What is being carried")
    item_image_ref: str = Field(..., description="Reference to a photo of the item")
    rider_note_image_ref: str | None = Field(None, description="Note for the rider")
    pickup_image_ref: str | None = Field(None, description="Photo taken at pickup")
    delivered_image_ref: str | None = Field(None, description="Photo taken at drop-off")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")
    accepted_at: datetime | None = Field(None, description="When a rider claimed it")
    picked_up_at: datetime | None = Field(None, description="When the item was collected")
    delivered_at: datetime | None = Field(None, description="When the item was dropped off")

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_record(
        cls, record: DeliveryRecord, profiles: dict[str, PublicProfile] | None = None
    ) -> DeliveryResponse:
        """Build the response from a repository record.

        Args:
            record: The delivery snapshot.
            profiles: Optional map of user id to public profile. Parties
                missing from it are returned without name or image.
        """
        profiles = profiles or {}
        update: dict[str, str | None] = {}
        for party, user_id in (
            ("sender", record.sender_id),
            ("receiver", record.receiver_id),
            ("rider", record.rider_id),
        ):
            profile = profiles.get(user_id) if user_id else None
            update[f"{party}_name"] = profile.name if profile else None
            update[f"{party}_image_profile"] = profile.image_profile if profile else None
        return cls.model_validate(record).model_copy(update=update)


class UserDeliveriesResponse(BaseModel):
    """Deliveries a user sent and is receiving, newest first."""

    sent: list[DeliveryResponse] = Field(default_factory=list, description="Sent deliveries")
    received: list[DeliveryResponse] = Field(
        default_factory=list, description="Deliveries addressed to the user"
    )


class PendingDeliveriesResponse(BaseModel):
    """Deliveries waiting for a rider, oldest first."""

    items: list[DeliveryResponse] = Field(..., description="Pending deliveries")
    total: int = Field(..., description="Number of pending deliveries")


class ActiveDeliveryResponse(BaseModel):
    """The rider's current delivery, if any."""

    delivery: DeliveryResponse | None = Field(
        None, description="Accepted or picked-up delivery held by the rider"
    )


# -----------------------------------------------------------------------------
# Rider Action Schemas
# -----------------------------------------------------------------------------


class ConfirmPickupRequest(BaseModel):
    """Request schema for confirming pickup."""

    pickup_image_ref: str = Field(
        ..., min_length=1, max_length=512, description="Photo taken at pickup"
    )

    model_config = ConfigDict(extra="forbid")


class ConfirmDeliveryRequest(BaseModel):
    """Request schema for confirming drop-off."""

    delivered_image_ref: str = Field(
        ..., min_length=1, max_length=512, description="Photo taken at drop-off"
    )

    model_config = ConfigDict(extra="forbid")
