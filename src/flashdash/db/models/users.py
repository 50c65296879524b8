"""User directory models.

Users are identified by the stable id issued by the external identity
provider. A user registers once as either a customer or a rider; riders
carry an extra RiderDetails row.
"""

from __future__ import annotations

from sqlalchemy import Enum, Float, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flashdash.db.models.base import (
    Base,
    OptionalImageRef,
    OptionalTimestampTZ,
    TimestampTZ,
    UserRole,
    UUIDPrimaryKey,
    enum_values,
)


class User(Base):
    """A registered customer or rider."""

    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(
            UserRole,
            name="user_role",
            values_callable=enum_values,
            create_constraint=True,
            validate_strings=True,
        ),
        nullable=False,
    )
    image_profile: Mapped[OptionalImageRef]

    rider_details: Mapped[RiderDetails | None] = relationship(
        "RiderDetails",
        back_populates="user",
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    addresses: Mapped[list[Address]] = relationship(
        "Address",
        back_populates="user",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="Address.created_at",
    )


class RiderDetails(Base):
    """Vehicle and last known position of a rider."""

    __tablename__ = "rider_details"

    user_id: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    vehicle_registration: Mapped[str] = mapped_column(String(32), nullable=False)
    image_vehicle: Mapped[OptionalImageRef]

    current_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_updated_at: Mapped[OptionalTimestampTZ]

    user: Mapped[User] = relationship("User", back_populates="rider_details")


class Address(Base):
    """A saved address belonging to one user."""

    __tablename__ = "addresses"

    address_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    user_id: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    detail: Mapped[str] = mapped_column(String(500), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)

    user: Mapped[User] = relationship("User", back_populates="addresses")

    __table_args__ = (Index("ix_addresses_user_id", "user_id"),)
