"""Delivery model.

The delivery row is the only shared mutable resource in the lifecycle
core. Its status and rider assignment are changed exclusively through
DeliveryRepository.with_transaction().
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from flashdash.db.models.base import (
    Base,
    DeliveryStatus,
    ImageRef,
    JSONDocument,
    OptionalImageRef,
    OptionalTimestampTZ,
    TimestampTZ,
    UUIDPrimaryKey,
    enum_values,
)

# Name of the partial unique index that keeps one active delivery per rider
ACTIVE_RIDER_INDEX = "uq_deliveries_active_rider"

_ACTIVE_RIDER_PREDICATE = "status IN ('accepted', 'picked_up')"


class Delivery(Base):
    """A delivery request from a sender to a receiver.

    Lifecycle: pending -> accepted -> picked_up -> delivered. The rider
    is unset exactly while the delivery is pending, and never changes
    once set.

    Address columns hold snapshots taken at creation time, so later
    address edits do not rewrite history.
    """

    __tablename__ = "deliveries"

    delivery_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    status: Mapped[DeliveryStatus] = mapped_column(
        Enum(
            DeliveryStatus,
            name="delivery_status",
            values_callable=enum_values,
            create_constraint=True,
            validate_strings=True,
        ),
        nullable=False,
        default=DeliveryStatus.PENDING,
    )

    sender_id: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("users.user_id", ondelete="RESTRICT"),
        nullable=False,
    )
    receiver_id: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("users.user_id", ondelete="RESTRICT"),
        nullable=False,
    )
    rider_id: Mapped[str | None] = mapped_column(
        String(128),
        ForeignKey("users.user_id", ondelete="RESTRICT"),
        nullable=True,
    )

    # {"address_id", "detail", "latitude", "longitude"}
    sender_address: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False)
    receiver_address: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False)

    item_description: Mapped[str] = mapped_column(String(2000), nullable=False)
    item_image_ref: Mapped[ImageRef]
    rider_note_image_ref: Mapped[OptionalImageRef]
    pickup_image_ref: Mapped[OptionalImageRef]
    delivered_image_ref: Mapped[OptionalImageRef]

    # Lifecycle timestamps
    accepted_at: Mapped[OptionalTimestampTZ]
    picked_up_at: Mapped[OptionalTimestampTZ]
    delivered_at: Mapped[OptionalTimestampTZ]

    # Optimistic concurrency counter, bumped by the ORM on every UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "(status = 'pending' AND rider_id IS NULL) "
            "OR (status <> 'pending' AND rider_id IS NOT NULL)",
            name="rider_matches_status",
        ),
        Index(
            ACTIVE_RIDER_INDEX,
            "rider_id",
            unique=True,
            postgresql_where=text(_ACTIVE_RIDER_PREDICATE),
            sqlite_where=text(_ACTIVE_RIDER_PREDICATE),
        ),
        Index("ix_deliveries_status_created_at", "status", "created_at"),
        Index("ix_deliveries_sender_id", "sender_id"),
        Index("ix_deliveries_receiver_id", "receiver_id"),
    )

    def __repr__(self) -> str:
        return (
            f"Delivery(delivery_id={self.delivery_id!s}, status={self.status.value}, "
            f"rider_id={self.rider_id!r})"
        )
