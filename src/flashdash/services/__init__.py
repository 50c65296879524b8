"""FlashDash service layer.

- repository: atomic read-modify-write access to delivery rows
- lifecycle: the delivery state machine (create, accept, pickup, deliver)
- users: profiles, rider details and saved addresses
- identity: bearer token verification against the identity provider
- errors: shared error taxonomy
"""

from flashdash.services.errors import (
    ConflictError,
    DeliveryConflictError,
    FlashDashError,
    InvariantViolationError,
    NotFoundError,
    RepositoryUnavailableError,
    ValidationError,
)
from flashdash.services.identity import (
    HTTPIdentityProvider,
    IdentityProviderUnavailableError,
    InvalidTokenError,
)
from flashdash.services.lifecycle import DeliveryLifecycleService
from flashdash.services.repository import DeliveryRecord, DeliveryRepository
from flashdash.services.users import (
    Account,
    AddressRecord,
    CustomerAccount,
    NewAddress,
    RiderAccount,
    UserDirectory,
)

__all__ = [
    "Account",
    "AddressRecord",
    "ConflictError",
    "CustomerAccount",
    "DeliveryConflictError",
    "DeliveryLifecycleService",
    "DeliveryRecord",
    "DeliveryRepository",
    "FlashDashError",
    "HTTPIdentityProvider",
    "IdentityProviderUnavailableError",
    "InvalidTokenError",
    "InvariantViolationError",
    "NewAddress",
    "NotFoundError",
    "RepositoryUnavailableError",
    "RiderAccount",
    "UserDirectory",
    "ValidationError",
]
