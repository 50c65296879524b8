"""FlashDash API middleware components.

This module provides middleware for:
- Request ID tracking for request correlation
- Consistent error response formatting
- Bearer token authentication dependencies
"""

from flashdash.api.middleware.auth import (
    CurrentAccount,
    CurrentCustomer,
    CurrentRider,
    UserId,
    require_account,
    require_customer,
    require_rider,
    require_user_id,
)
from flashdash.api.middleware.errors import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    ErrorHandlerMiddleware,
    build_error_response,
)
from flashdash.api.middleware.request_id import RequestIDMiddleware, get_request_id

__all__ = [
    "APIError",
    "AuthenticationError",
    "AuthorizationError",
    "CurrentAccount",
    "CurrentCustomer",
    "CurrentRider",
    "ErrorHandlerMiddleware",
    "RequestIDMiddleware",
    "UserId",
    "build_error_response",
    "get_request_id",
    "require_account",
    "require_customer",
    "require_rider",
    "require_user_id",
]
