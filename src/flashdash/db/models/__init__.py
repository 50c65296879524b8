"""FlashDash database models.

Importing this package registers every table on Base.metadata, which
Alembic autogenerate and the test schema setup rely on.
"""

from flashdash.db.models.base import (
    ACTIVE_STATUSES,
    Base,
    DeliveryStatus,
    UserRole,
    utcnow,
)
from flashdash.db.models.deliveries import ACTIVE_RIDER_INDEX, Delivery
from flashdash.db.models.users import Address, RiderDetails, User

__all__ = [
    "ACTIVE_RIDER_INDEX",
    "ACTIVE_STATUSES",
    "Address",
    "Base",
    "Delivery",
    "DeliveryStatus",
    "RiderDetails",
    "User",
    "UserRole",
    "utcnow",
]
