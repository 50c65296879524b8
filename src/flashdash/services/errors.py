"""Error taxonomy shared by the repository, lifecycle and user services.

The API layer maps these onto HTTP responses in
flashdash.api.middleware.errors.
"""

from __future__ import annotations

from typing import Any


class FlashDashError(Exception):
    """Base exception for service-layer failures."""

    pass


class NotFoundError(FlashDashError):
    """Raised when a referenced delivery, user or address does not exist."""

    def __init__(self, resource: str, identifier: Any) -> None:
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class ConflictError(FlashDashError):
    """Raised when a precondition on stored state no longer holds.

    Conflicts are recoverable: the caller re-fetches state and decides
    again. They are never retried automatically.

    Attributes:
        reason: Machine-readable reason code (one of the class constants).
        message: Human-readable description.
    """

    STATUS_MISMATCH = "status_mismatch"
    RIDER_MISMATCH = "rider_mismatch"
    RIDER_BUSY = "rider_busy"
    CONCURRENT_UPDATE = "concurrent_update"
    DUPLICATE = "duplicate"
    INTEGRITY = "integrity_violation"

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        self.message = message or reason.replace("_", " ")
        super().__init__(self.message)


class DeliveryConflictError(ConflictError):
    """A lifecycle operation could not be performed right now.

    Carries the operation that was attempted and an operation-specific
    message ("not pending", "wrong stage", "wrong rider", "rider busy").
    """

    def __init__(self, operation: str, reason: str, message: str) -> None:
        self.operation = operation
        super().__init__(reason, message)


class ValidationError(FlashDashError):
    """Raised when input is malformed; nothing has touched the store yet."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.message = message
        self.field = field
        super().__init__(message)


class InvariantViolationError(FlashDashError):
    """A mutation would break a delivery invariant and was not applied.

    This indicates a programming error in the caller, not a race.
    """

    def __init__(self, delivery_id: Any, message: str) -> None:
        self.delivery_id = delivery_id
        self.message = message
        super().__init__(f"Delivery {delivery_id}: {message}")


class RepositoryUnavailableError(FlashDashError):
    """The store could not be reached or did not answer in time.

    Safe to retry: either the transaction committed in full or not at all.
    """

    retryable = True

    def __init__(self, operation: str, cause: str | None = None) -> None:
        self.operation = operation
        self.cause = cause
        message = f"Repository unavailable during {operation}"
        if cause:
            message = f"{message}: {cause}"
        super().__init__(message)
