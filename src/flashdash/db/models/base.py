"""Base model definitions and common types.

This module provides:
- SQLAlchemy declarative base with naming conventions
- Reusable column type annotations (UUIDs, timezone-aware timestamps)
- Enum types used across multiple models

Column types are portable between PostgreSQL (production) and SQLite
(local development and tests).
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, datetime
from typing import Annotated, Any

from sqlalchemy import JSON, DateTime, MetaData, String, TypeDecorator, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, mapped_column, registry

# Naming convention for constraints ensures consistent migration generation.
# See: https://alembic.sqlalchemy.org/en/latest/naming.html
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)

type_registry = registry()


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always reads back in UTC.

    PostgreSQL stores the offset natively; SQLite drops it, so naive
    values coming back from the driver are tagged as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is not None and value.tzinfo is None:
            msg = "Naive datetimes are not accepted; pass a timezone-aware value"
            raise ValueError(msg)
        if value is not None and dialect.name == "sqlite":
            return value.astimezone(UTC)
        return value

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


# JSON document column (JSONB on PostgreSQL)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")

# Common type annotations for columns
UUIDPrimaryKey = Annotated[
    uuid.UUID,
    mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4),
]

# Timestamp with timezone, defaults to now
TimestampTZ = Annotated[
    datetime,
    mapped_column(UTCDateTime(), nullable=False, default=utcnow),
]

# Optional timestamp with timezone
OptionalTimestampTZ = Annotated[
    datetime | None,
    mapped_column(UTCDateTime(), nullable=True),
]

# Opaque references to images held by the client-side object store
ImageRef = Annotated[str, mapped_column(String(1000))]
OptionalImageRef = Annotated[str | None, mapped_column(String(1000), nullable=True)]


class Base(DeclarativeBase):
    """Declarative base for all FlashDash models.

    All models inherit from this base, which provides:
    - Consistent metadata with naming conventions
    - Type annotation support via mapped_column
    """

    metadata = metadata
    registry = type_registry


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Persist enum members by value rather than by name."""
    return [member.value for member in enum_cls]


# =============================================================================
# Common Enums
# =============================================================================


class DeliveryStatus(enum.Enum):
    """Delivery lifecycle states.

    The order is total and strictly forward:
        PENDING -> ACCEPTED -> PICKED_UP -> DELIVERED

    States:
        PENDING: Created by the sender, waiting for a rider to claim it
        ACCEPTED: Claimed by exactly one rider
        PICKED_UP: The assigned rider collected the item
        DELIVERED: The assigned rider dropped the item off (terminal)
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"


class UserRole(enum.Enum):
    """Role a user registered with.

    Values:
        CUSTOMER: Sends and receives deliveries
        RIDER: Claims and carries deliveries
    """

    CUSTOMER = "customer"
    RIDER = "rider"


# Statuses in which a delivery is held by a rider
ACTIVE_STATUSES = (DeliveryStatus.ACCEPTED, DeliveryStatus.PICKED_UP)
