"""Delivery lifecycle state machine service.

This module implements the delivery state machine with:
- Monotonic state transitions (pending -> accepted -> picked_up -> delivered)
- Exactly-once claim: the first rider to commit an accept wins
- Rider pinning: only the assigned rider may confirm pickup and delivery
- Operation-specific conflict messages, never retried automatically

Race safety lives in DeliveryRepository.transition(); this service decides
who may do what, in which order. Caller identity is always passed in
explicitly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar
from uuid import UUID

from flashdash.db.models.base import DeliveryStatus, utcnow
from flashdash.services.errors import (
    ConflictError,
    DeliveryConflictError,
    NotFoundError,
    ValidationError,
)
from flashdash.services.repository import is_valid_transition

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from flashdash.services.repository import DeliveryRecord, DeliveryRepository
    from flashdash.services.users import UserDirectory

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 2000

# Reason codes carried by DeliveryConflictError
NOT_PENDING = "not_pending"
WRONG_STAGE = "wrong_stage"
WRONG_RIDER = "wrong_rider"
RIDER_BUSY = "rider_busy"


@dataclass(frozen=True, slots=True)
class StageTransition:
    """One rider-driven step of the lifecycle.

    Attributes:
        operation: Name used in logs and conflict errors.
        from_status: Status the delivery must currently have.
        to_status: Status after the step.
        timestamp_field: Lifecycle timestamp set by the step.
        image_field: Proof image set by the step, if any.
        requires_assigned_rider: Whether the caller must be the assigned rider.
    """

    operation: str
    from_status: DeliveryStatus
    to_status: DeliveryStatus
    timestamp_field: str
    image_field: str | None
    requires_assigned_rider: bool

    def __post_init__(self) -> None:
        if not is_valid_transition(self.from_status, self.to_status):
            msg = (
                f"{self.operation}: {self.from_status.value} -> {self.to_status.value} "
                "is not a lifecycle step"
            )
            raise ValueError(msg)


ACCEPT = StageTransition(
    operation="accept",
    from_status=DeliveryStatus.PENDING,
    to_status=DeliveryStatus.ACCEPTED,
    timestamp_field="accepted_at",
    image_field=None,
    requires_assigned_rider=False,
)
CONFIRM_PICKUP = StageTransition(
    operation="confirm_pickup",
    from_status=DeliveryStatus.ACCEPTED,
    to_status=DeliveryStatus.PICKED_UP,
    timestamp_field="picked_up_at",
    image_field="pickup_image_ref",
    requires_assigned_rider=True,
)
CONFIRM_DELIVERY = StageTransition(
    operation="confirm_delivery",
    from_status=DeliveryStatus.PICKED_UP,
    to_status=DeliveryStatus.DELIVERED,
    timestamp_field="delivered_at",
    image_field="delivered_image_ref",
    requires_assigned_rider=True,
)


def _require_text(value: str | None, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} must not be empty", field=field)
    return str(value).strip()


def _parse_id(value: UUID | str | None, field: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(_require_text(value, field))
    except ValueError as e:
        raise ValidationError(f"{field} is not a valid id", field=field) from e


@dataclass(frozen=True, slots=True)
class _DeliveryDraft:
    """Creation fields that can be checked without touching the store."""

    sender_address_id: UUID
    receiver_address_id: UUID
    item_description: str
    item_image_ref: str
    rider_note_image_ref: str | None

    @classmethod
    def validate(
        cls,
        *,
        sender_address_id: UUID | str,
        receiver_address_id: UUID | str,
        item_description: str,
        item_image_ref: str,
        rider_note_image_ref: str | None,
    ) -> _DeliveryDraft:
        description = _require_text(item_description, "item_description")
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"item_description must be at most {MAX_DESCRIPTION_LENGTH} characters",
                field="item_description",
            )
        note = None
        if rider_note_image_ref is not None:
            note = _require_text(rider_note_image_ref, "rider_note_image_ref")
        return cls(
            sender_address_id=_parse_id(sender_address_id, "sender_address_id"),
            receiver_address_id=_parse_id(receiver_address_id, "receiver_address_id"),
            item_description=description,
            item_image_ref=_require_text(item_image_ref, "item_image_ref"),
            rider_note_image_ref=note,
        )


class DeliveryLifecycleService:
    """Service for creating deliveries and moving them through their lifecycle.

    The state machine follows this flow:
        pending -> accepted -> picked_up -> delivered

    Each step re-validates against the stored row inside one transaction;
    a failed precondition surfaces as DeliveryConflictError and the caller
    is expected to re-fetch state and decide again.

    Example:
        service = DeliveryLifecycleService(repository, users)
        delivery = await service.accept_delivery(delivery_id, rider_id="rider-1")
    """

    # Conflict message per (operation, repository reason)
    CONFLICT_MESSAGES: ClassVar[dict[tuple[str, str], tuple[str, str]]] = {
        ("accept", ConflictError.STATUS_MISMATCH): (
            NOT_PENDING,
            "delivery is not pending, it may have already been accepted",
        ),
        ("accept", ConflictError.CONCURRENT_UPDATE): (
            NOT_PENDING,
            "delivery is not pending, it may have already been accepted",
        ),
        ("accept", ConflictError.RIDER_BUSY): (
            RIDER_BUSY,
            "rider already has an active delivery",
        ),
        ("confirm_pickup", ConflictError.STATUS_MISMATCH): (
            WRONG_STAGE,
            "delivery is not waiting for pickup",
        ),
        ("confirm_pickup", ConflictError.RIDER_MISMATCH): (
            WRONG_RIDER,
            "delivery is assigned to another rider",
        ),
        ("confirm_delivery", ConflictError.STATUS_MISMATCH): (
            WRONG_STAGE,
            "delivery has not been picked up",
        ),
        ("confirm_delivery", ConflictError.RIDER_MISMATCH): (
            WRONG_RIDER,
            "delivery is assigned to another rider",
        ),
    }

    def __init__(
        self,
        repository: DeliveryRepository,
        users: UserDirectory,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the lifecycle service.

        Args:
            repository: Gateway to delivery rows.
            users: User directory, used to resolve and snapshot addresses.
            clock: Source of the current time for lifecycle timestamps.
        """
        self._repository = repository
        self._users = users
        self._clock = clock

    # -------------------------------------------------------------------------
    # Creation and queries
    # -------------------------------------------------------------------------

    async def create_delivery(
        self,
        *,
        sender_id: str,
        receiver_id: str,
        sender_address_id: UUID | str,
        receiver_address_id: UUID | str,
        item_description: str,
        item_image_ref: str,
        rider_note_image_ref: str | None = None,
    ) -> UUID:
        """Create a pending delivery with no rider.

        Both addresses are copied into the delivery, so later edits to the
        saved addresses do not change it.

        Args:
            sender_id: User creating the delivery.
            receiver_id: User the item is for.
            sender_address_id: One of the sender's saved addresses (pickup point).
            receiver_address_id: One of the receiver's saved addresses (drop-off point).
            item_description: What is being carried.
            item_image_ref: Reference to a photo of the item.
            rider_note_image_ref: Optional reference to a note for the rider.

        Returns:
            The new delivery id.

        Raises:
            ValidationError: If any input is malformed (before store access).
            NotFoundError: If an address does not exist or is not the party's own.
        """
        sender_id = _require_text(sender_id, "sender_id")
        receiver_id = _require_text(receiver_id, "receiver_id")
        draft = _DeliveryDraft.validate(
            sender_address_id=sender_address_id,
            receiver_address_id=receiver_address_id,
            item_description=item_description,
            item_image_ref=item_image_ref,
            rider_note_image_ref=rider_note_image_ref,
        )
        return await self._create(sender_id, receiver_id, draft)

    async def create_delivery_for_phone(
        self,
        *,
        sender_id: str,
        receiver_phone: str,
        sender_address_id: UUID | str,
        receiver_address_id: UUID | str,
        item_description: str,
        item_image_ref: str,
        rider_note_image_ref: str | None = None,
    ) -> UUID:
        """Create a pending delivery for the user registered with ``receiver_phone``.

        Every field is validated before the receiver is looked up.

        Raises:
            ValidationError: If any input, including the phone number, is malformed.
            NotFoundError: If nobody registered the phone number, or an address
                does not exist or is not the party's own.
        """
        sender_id = _require_text(sender_id, "sender_id")
        receiver_phone = _require_text(receiver_phone, "receiver_phone")
        draft = _DeliveryDraft.validate(
            sender_address_id=sender_address_id,
            receiver_address_id=receiver_address_id,
            item_description=item_description,
            item_image_ref=item_image_ref,
            rider_note_image_ref=rider_note_image_ref,
        )
        receiver = await self._users.find_by_phone(receiver_phone)
        return await self._create(sender_id, receiver.user_id, draft)

    async def _create(self, sender_id: str, receiver_id: str, draft: _DeliveryDraft) -> UUID:
        sender_address = await self._users.get_address(sender_id, draft.sender_address_id)
        receiver_address = await self._users.get_address(receiver_id, draft.receiver_address_id)

        delivery_id = await self._repository.create_pending(
            sender_id=sender_id,
            receiver_id=receiver_id,
            sender_address=sender_address.snapshot(),
            receiver_address=receiver_address.snapshot(),
            item_description=draft.item_description,
            item_image_ref=draft.item_image_ref,
            rider_note_image_ref=draft.rider_note_image_ref,
            created_at=self._clock(),
        )

        logger.info(
            "Delivery created",
            extra={
                "delivery_id": str(delivery_id),
                "sender_id": sender_id,
                "receiver_id": receiver_id,
            },
        )
        return delivery_id

    async def list_pending(self) -> list[DeliveryRecord]:
        """List deliveries waiting for a rider, oldest first.

        The list is a discovery aid only; accepting re-validates the status.
        """
        return await self._repository.list_by_status(DeliveryStatus.PENDING)

    async def get_active_delivery_for_rider(self, rider_id: str) -> DeliveryRecord | None:
        """Return the delivery the rider has accepted or picked up, if any."""
        rider_id = _require_text(rider_id, "rider_id")
        return await self._repository.list_active_for_rider(rider_id)

    async def list_deliveries_for_user(
        self, user_id: str
    ) -> tuple[list[DeliveryRecord], list[DeliveryRecord]]:
        """List what a user has sent and what they are receiving.

        Returns:
            Tuple of (sent, received), newest first.
        """
        user_id = _require_text(user_id, "user_id")
        sent = await self._repository.list_by_sender(user_id)
        received = await self._repository.list_by_receiver(user_id)
        return sent, received

    async def get_delivery_for_participant(
        self, delivery_id: UUID | str, user_id: str
    ) -> DeliveryRecord:
        """Fetch a delivery visible to the sender, receiver or assigned rider.

        Raises:
            NotFoundError: If the delivery does not exist or the user is not
                one of its participants.
        """
        delivery_uuid = _parse_id(delivery_id, "delivery_id")
        user_id = _require_text(user_id, "user_id")

        delivery = await self._repository.get(delivery_uuid)
        if user_id not in (delivery.sender_id, delivery.receiver_id, delivery.rider_id):
            raise NotFoundError("delivery", delivery_uuid)
        return delivery

    # -------------------------------------------------------------------------
    # Rider transitions
    # -------------------------------------------------------------------------

    async def accept_delivery(self, delivery_id: UUID | str, rider_id: str) -> DeliveryRecord:
        """Claim a pending delivery for a rider.

        The only precondition is status == pending; the rider being unset
        follows from it. Among concurrent claimants the first commit wins.

        Raises:
            ValidationError: If an id is malformed.
            NotFoundError: If the delivery does not exist.
            DeliveryConflictError: "not pending", or "rider busy" if the rider
                already holds an active delivery.
        """
        return await self._advance(ACCEPT, delivery_id, rider_id)

    async def confirm_pickup(
        self, delivery_id: UUID | str, rider_id: str, pickup_image_ref: str
    ) -> DeliveryRecord:
        """Record that the assigned rider collected the item.

        Raises:
            ValidationError: If an id or the image ref is malformed.
            NotFoundError: If the delivery does not exist.
            DeliveryConflictError: "wrong stage" or "wrong rider".
        """
        return await self._advance(CONFIRM_PICKUP, delivery_id, rider_id, pickup_image_ref)

    async def confirm_delivery(
        self, delivery_id: UUID | str, rider_id: str, delivered_image_ref: str
    ) -> DeliveryRecord:
        """Record that the assigned rider dropped the item off.

        Raises:
            ValidationError: If an id or the image ref is malformed.
            NotFoundError: If the delivery does not exist.
            DeliveryConflictError: "wrong stage" or "wrong rider".
        """
        return await self._advance(CONFIRM_DELIVERY, delivery_id, rider_id, delivered_image_ref)

    async def _advance(
        self,
        step: StageTransition,
        delivery_id: UUID | str,
        rider_id: str,
        image_ref: str | None = None,
    ) -> DeliveryRecord:
        delivery_uuid = _parse_id(delivery_id, "delivery_id")
        rider_id = _require_text(rider_id, "rider_id")

        mutation: dict[str, object] = {
            "status": step.to_status,
            step.timestamp_field: self._clock(),
        }
        if step.image_field is not None:
            mutation[step.image_field] = _require_text(image_ref, step.image_field)
        if not step.requires_assigned_rider:
            mutation["rider_id"] = rider_id

        try:
            delivery = await self._repository.transition(
                delivery_uuid,
                expected_status=step.from_status,
                required_rider_id=rider_id if step.requires_assigned_rider else None,
                mutation=mutation,
            )
        except ConflictError as exc:
            reason, message = self.CONFLICT_MESSAGES.get(
                (step.operation, exc.reason),
                (exc.reason, f"cannot {step.operation.replace('_', ' ')} right now"),
            )
            logger.warning(
                "Delivery transition rejected",
                extra={
                    "delivery_id": str(delivery_uuid),
                    "operation": step.operation,
                    "rider_id": rider_id,
                    "reason": reason,
                },
            )
            raise DeliveryConflictError(step.operation, reason, message) from exc

        logger.info(
            "Delivery transition completed",
            extra={
                "delivery_id": str(delivery_uuid),
                "from_status": step.from_status.value,
                "to_status": step.to_status.value,
                "rider_id": rider_id,
            },
        )
        return delivery
