"""Delivery repository: the single gateway to delivery rows.

Every read and write of a delivery goes through DeliveryRepository. Writes
are read-modify-write transactions on one row:

- the row is read with SELECT ... FOR UPDATE inside the transaction
  (SQLite serializes writers with BEGIN IMMEDIATE instead)
- the caller's callback inspects an immutable snapshot and returns the
  field changes, or raises ConflictError to abort
- the changes are checked against the delivery invariants, applied and
  committed; the ORM version column rejects any lost update

Each call runs in its own session, is bounded by the configured operation
timeout, and write transactions run in a shielded task so that a caller
going away does not abort a transaction that has already started.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from flashdash.db.models.base import ACTIVE_STATUSES, DeliveryStatus
from flashdash.db.models.deliveries import ACTIVE_RIDER_INDEX, Delivery
from flashdash.services.errors import ConflictError, InvariantViolationError, NotFoundError
from flashdash.services.store import StoreGateway

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from flashdash.core.config import Settings

logger = logging.getLogger(__name__)

# Valid state transitions: from_state -> allowed to_states
VALID_TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.PENDING: frozenset({DeliveryStatus.ACCEPTED}),
    DeliveryStatus.ACCEPTED: frozenset({DeliveryStatus.PICKED_UP}),
    DeliveryStatus.PICKED_UP: frozenset({DeliveryStatus.DELIVERED}),
    # Terminal state - no transitions out
    DeliveryStatus.DELIVERED: frozenset(),
}


def is_valid_transition(from_status: DeliveryStatus, to_status: DeliveryStatus) -> bool:
    """Check if a status transition is allowed."""
    return to_status in VALID_TRANSITIONS.get(from_status, frozenset())


@dataclass(frozen=True, slots=True)
class DeliveryRecord:
    """Immutable snapshot of a delivery row, detached from any session.

    Attributes mirror flashdash.db.models.deliveries.Delivery.
    """

    delivery_id: UUID
    sender_id: str
    receiver_id: str
    sender_address: dict[str, Any]
    receiver_address: dict[str, Any]
    item_description: str
    item_image_ref: str
    rider_note_image_ref: str | None
    status: DeliveryStatus
    rider_id: str | None
    created_at: datetime
    updated_at: datetime
    accepted_at: datetime | None
    picked_up_at: datetime | None
    delivered_at: datetime | None
    pickup_image_ref: str | None
    delivered_image_ref: str | None
    version: int

    @classmethod
    def from_model(cls, delivery: Delivery) -> DeliveryRecord:
        return cls(
            delivery_id=delivery.delivery_id,
            sender_id=delivery.sender_id,
            receiver_id=delivery.receiver_id,
            sender_address=dict(delivery.sender_address),
            receiver_address=dict(delivery.receiver_address),
            item_description=delivery.item_description,
            item_image_ref=delivery.item_image_ref,
            rider_note_image_ref=delivery.rider_note_image_ref,
            status=delivery.status,
            rider_id=delivery.rider_id,
            created_at=delivery.created_at,
            updated_at=delivery.updated_at,
            accepted_at=delivery.accepted_at,
            picked_up_at=delivery.picked_up_at,
            delivered_at=delivery.delivered_at,
            pickup_image_ref=delivery.pickup_image_ref,
            delivered_image_ref=delivery.delivered_image_ref,
            version=delivery.version,
        )


class DeliveryRepository(StoreGateway):
    """Atomic read-modify-write access to delivery rows.

    Example:
        repository = DeliveryRepository(session_factory, operation_timeout=5.0)
        delivery = await repository.transition(
            delivery_id,
            expected_status=DeliveryStatus.PENDING,
            mutation={"status": DeliveryStatus.ACCEPTED, "rider_id": "rider-1"},
        )
    """

    # Fields a transaction callback may change
    MUTABLE_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {
            "status",
            "rider_id",
            "accepted_at",
            "picked_up_at",
            "delivered_at",
            "pickup_image_ref",
            "delivered_image_ref",
        }
    )

    # Image ref that may only be written when entering the given status
    STAGE_IMAGE_FIELDS: ClassVar[dict[str, DeliveryStatus]] = {
        "pickup_image_ref": DeliveryStatus.PICKED_UP,
        "delivered_image_ref": DeliveryStatus.DELIVERED,
    }

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> DeliveryRepository:
        """Build a repository using the configured operation timeout."""
        return cls(session_factory, operation_timeout=settings.database.operation_timeout)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(self, delivery_id: UUID) -> DeliveryRecord:
        """Fetch one delivery.

        Raises:
            NotFoundError: If no delivery has this id.
            RepositoryUnavailableError: If the store cannot be reached in time.
        """

        async def work(session: AsyncSession) -> DeliveryRecord:
            delivery = await session.get(Delivery, delivery_id)
            if delivery is None:
                raise NotFoundError("delivery", delivery_id)
            return DeliveryRecord.from_model(delivery)

        return await self._run("get", work)

    async def list_by_status(self, status: DeliveryStatus) -> list[DeliveryRecord]:
        """List deliveries in one status, oldest first."""
        query = (
            select(Delivery)
            .where(Delivery.status == status)
            .order_by(Delivery.created_at, Delivery.delivery_id)
        )
        return await self._run("list_by_status", self._fetch_all(query))

    async def list_active_for_rider(self, rider_id: str) -> DeliveryRecord | None:
        """Return the delivery a rider currently holds, if any.

        A delivery is held while it is accepted or picked up.
        """
        query = (
            select(Delivery)
            .where(Delivery.rider_id == rider_id, Delivery.status.in_(ACTIVE_STATUSES))
            .order_by(Delivery.created_at)
            .limit(1)
        )
        records = await self._run("list_active_for_rider", self._fetch_all(query))
        return records[0] if records else None

    async def list_by_sender(self, user_id: str) -> list[DeliveryRecord]:
        """List deliveries sent by a user, newest first."""
        query = (
            select(Delivery)
            .where(Delivery.sender_id == user_id)
            .order_by(Delivery.created_at.desc(), Delivery.delivery_id)
        )
        return await self._run("list_by_sender", self._fetch_all(query))

    async def list_by_receiver(self, user_id: str) -> list[DeliveryRecord]:
        """List deliveries addressed to a user, newest first."""
        query = (
            select(Delivery)
            .where(Delivery.receiver_id == user_id)
            .order_by(Delivery.created_at.desc(), Delivery.delivery_id)
        )
        return await self._run("list_by_receiver", self._fetch_all(query))

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create_pending(
        self,
        *,
        sender_id: str,
        receiver_id: str,
        sender_address: Mapping[str, Any],
        receiver_address: Mapping[str, Any],
        item_description: str,
        item_image_ref: str,
        rider_note_image_ref: str | None = None,
        created_at: datetime | None = None,
    ) -> UUID:
        """Persist a new pending delivery with no rider.

        Returns:
            The generated delivery id.
        """
        timestamp = created_at or self._clock()

        async def work(session: AsyncSession) -> UUID:
            delivery = Delivery(
                sender_id=sender_id,
                receiver_id=receiver_id,
                sender_address=dict(sender_address),
                receiver_address=dict(receiver_address),
                item_description=item_description,
                item_image_ref=item_image_ref,
                rider_note_image_ref=rider_note_image_ref,
                status=DeliveryStatus.PENDING,
                rider_id=None,
                created_at=timestamp,
                updated_at=timestamp,
            )
            try:
                async with session.begin():
                    session.add(delivery)
                    await session.flush()
            except IntegrityError as exc:
                raise _conflict_from_integrity(exc) from exc
            return delivery.delivery_id

        return await self._run("create_pending", work, shielded=True)

    async def with_transaction(
        self,
        delivery_id: UUID,
        fn: Callable[[DeliveryRecord], Mapping[str, Any]],
        *,
        operation: str = "transaction",
    ) -> DeliveryRecord:
        """Run a read-modify-write transaction on one delivery.

        The row is locked and handed to ``fn`` as an immutable snapshot.
        ``fn`` returns the fields to change or raises ConflictError to
        abort. The changes are checked against the delivery invariants
        before they are applied.

        Args:
            delivery_id: Delivery to update.
            fn: Callback deciding the changes from the current snapshot.
            operation: Name used in logs and errors.

        Returns:
            Snapshot of the delivery after commit.

        Raises:
            NotFoundError: If the delivery does not exist.
            ConflictError: If ``fn`` aborts or a concurrent writer won.
            InvariantViolationError: If the changes would break an invariant.
            RepositoryUnavailableError: If the store cannot be reached in time.
        """

        async def work(session: AsyncSession) -> DeliveryRecord:
            try:
                async with session.begin():
                    result = await session.execute(
                        select(Delivery).where(Delivery.delivery_id == delivery_id).with_for_update()
                    )
                    delivery = result.scalar_one_or_none()
                    if delivery is None:
                        raise NotFoundError("delivery", delivery_id)

                    current = DeliveryRecord.from_model(delivery)
                    changes = dict(fn(current))
                    self._check_mutation(current, changes)

                    for field_name, value in changes.items():
                        setattr(delivery, field_name, value)
                    delivery.updated_at = self._clock()
                    await session.flush()
            except StaleDataError as exc:
                logger.info(
                    "Concurrent update detected on delivery",
                    extra={"delivery_id": str(delivery_id), "operation": operation},
                )
                raise ConflictError(
                    ConflictError.CONCURRENT_UPDATE,
                    "delivery was changed by a concurrent request",
                ) from exc
            except IntegrityError as exc:
                raise _conflict_from_integrity(exc) from exc

            record = DeliveryRecord.from_model(delivery)
            logger.debug(
                "Delivery transaction committed",
                extra={
                    "delivery_id": str(delivery_id),
                    "operation": operation,
                    "version": record.version,
                },
            )
            return record

        return await self._run(operation, work, shielded=True)

    async def transition(
        self,
        delivery_id: UUID,
        *,
        expected_status: DeliveryStatus,
        required_rider_id: str | None = None,
        mutation: Mapping[str, Any],
    ) -> DeliveryRecord:
        """Apply ``mutation`` if the delivery is still in the expected state.

        Args:
            delivery_id: Delivery to update.
            expected_status: Status the delivery must currently have.
            required_rider_id: If given, the rider the delivery must be assigned to.
            mutation: Field changes to apply.

        Returns:
            Snapshot of the delivery after commit.

        Raises:
            NotFoundError: If the delivery does not exist.
            ConflictError: If the status or rider precondition does not hold,
                or a concurrent writer committed first.
            RepositoryUnavailableError: If the store cannot be reached in time.
        """

        def guarded(current: DeliveryRecord) -> Mapping[str, Any]:
            if current.status is not expected_status:
                raise ConflictError(
                    ConflictError.STATUS_MISMATCH,
                    f"delivery is {current.status.value}, expected {expected_status.value}",
                )
            if required_rider_id is not None and current.rider_id != required_rider_id:
                raise ConflictError(
                    ConflictError.RIDER_MISMATCH,
                    "delivery is not assigned to this rider",
                )
            return mutation

        return await self.with_transaction(
            delivery_id,
            guarded,
            operation=f"transition_from_{expected_status.value}",
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _check_mutation(self, current: DeliveryRecord, changes: dict[str, Any]) -> None:
        """Reject changes that would break a delivery invariant."""
        delivery_id = current.delivery_id

        unknown = set(changes) - self.MUTABLE_FIELDS
        if unknown:
            raise InvariantViolationError(
                delivery_id, f"fields are immutable: {', '.join(sorted(unknown))}"
            )

        new_status = changes.get("status", current.status)
        if "status" in changes:
            if not isinstance(new_status, DeliveryStatus):
                raise InvariantViolationError(delivery_id, "status must be a DeliveryStatus")
            if not is_valid_transition(current.status, new_status):
                raise InvariantViolationError(
                    delivery_id,
                    f"status cannot move from {current.status.value} to {new_status.value}",
                )

        new_rider = changes.get("rider_id", current.rider_id)
        if current.rider_id is not None and new_rider != current.rider_id:
            raise InvariantViolationError(delivery_id, "rider cannot change once assigned")
        if (new_status is DeliveryStatus.PENDING) != (new_rider is None):
            raise InvariantViolationError(
                delivery_id, "rider must be unset exactly while the delivery is pending"
            )

        for field_name, stage in self.STAGE_IMAGE_FIELDS.items():
            if field_name not in changes:
                continue
            entering = "status" in changes and new_status is stage
            if not entering or getattr(current, field_name) is not None:
                raise InvariantViolationError(
                    delivery_id, f"{field_name} is only set when entering {stage.value}"
                )

    def _fetch_all(self, query: Any) -> Callable[[AsyncSession], Awaitable[list[DeliveryRecord]]]:
        async def work(session: AsyncSession) -> list[DeliveryRecord]:
            result = await session.execute(query)
            return [DeliveryRecord.from_model(row) for row in result.scalars().all()]

        return work


def _conflict_from_integrity(exc: IntegrityError) -> ConflictError:
    """Translate a constraint violation into a conflict."""
    message = str(exc.orig).lower()
    if ACTIVE_RIDER_INDEX in message or ("unique" in message and "rider_id" in message):
        return ConflictError(ConflictError.RIDER_BUSY, "rider already holds an active delivery")
    return ConflictError(ConflictError.INTEGRITY, "delivery violates a store constraint")
