"""Error handling middleware for consistent JSON error responses.

Provides a standardized error response format across all API endpoints.
All errors are converted to a consistent JSON structure with:
- error: Error type/code
- message: Human-readable description
- detail: Optional additional information
- request_id: Correlation ID for debugging

Service-layer errors map onto HTTP as follows:
- NotFoundError -> 404
- ConflictError / DeliveryConflictError -> 409
- ValidationError -> 400 (request body schema failures are 422)
- RepositoryUnavailableError / IdentityProviderUnavailableError -> 503
- InvalidTokenError -> 401
"""

import logging
from collections.abc import Callable
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from flashdash.api.middleware.request_id import get_request_id
from flashdash.services.errors import (
    ConflictError,
    DeliveryConflictError,
    NotFoundError,
    RepositoryUnavailableError,
    ValidationError,
)
from flashdash.services.identity import IdentityProviderUnavailableError, InvalidTokenError

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors with structured details.

    Use this exception to raise errors with consistent formatting.
    Subclass for specific error categories.
    """

    def __init__(
        self,
        error: str,
        message: str,
        status_code: int = 400,
        detail: dict[str, Any] | None = None,
    ) -> None:
        """Initialize API error.

        Args:
            error: Machine-readable error code (e.g., "validation_error").
            message: Human-readable error description.
            status_code: HTTP status code to return.
            detail: Optional additional details for debugging.
        """
        self.error = error
        self.message = message
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class AuthorizationError(APIError):
    """Authorization/permission error (403)."""

    def __init__(self, message: str, detail: dict[str, Any] | None = None) -> None:
        super().__init__(
            error="forbidden",
            message=message,
            status_code=403,
            detail=detail,
        )


class AuthenticationError(APIError):
    """Authentication error (401)."""

    def __init__(
        self, message: str = "Authentication required", detail: dict[str, Any] | None = None
    ) -> None:
        super().__init__(
            error="unauthorized",
            message=message,
            status_code=401,
            detail=detail,
        )


def build_error_response(
    error: str,
    message: str,
    status_code: int,
    detail: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build a standardized error response.

    Args:
        error: Machine-readable error code.
        message: Human-readable description.
        status_code: HTTP status code.
        detail: Optional additional details.
        headers: Optional extra response headers.

    Returns:
        JSONResponse with consistent error structure.
    """
    body: dict[str, Any] = {
        "error": error,
        "message": message,
    }

    request_id = get_request_id()
    if request_id:
        body["request_id"] = request_id

    if detail:
        body["detail"] = detail

    return JSONResponse(status_code=status_code, content=body, headers=headers)


def error_response_for(exc: Exception) -> JSONResponse | None:
    """Map a known exception to its JSON error response.

    Args:
        exc: Exception raised while handling a request.

    Returns:
        The error response, or None if the exception is not a known type.
    """
    if isinstance(exc, APIError):
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return build_error_response(
            error=exc.error,
            message=exc.message,
            status_code=exc.status_code,
            detail=exc.detail,
            headers=headers,
        )
    if isinstance(exc, NotFoundError):
        return build_error_response(
            error="not_found",
            message=str(exc),
            status_code=404,
            detail={"resource": exc.resource},
        )
    if isinstance(exc, DeliveryConflictError):
        return build_error_response(
            error="conflict",
            message=exc.message,
            status_code=409,
            detail={"reason": exc.reason, "operation": exc.operation},
        )
    if isinstance(exc, ConflictError):
        return build_error_response(
            error="conflict",
            message=exc.message,
            status_code=409,
            detail={"reason": exc.reason},
        )
    if isinstance(exc, ValidationError):
        return build_error_response(
            error="validation_error",
            message=exc.message,
            status_code=400,
            detail={"field": exc.field} if exc.field else None,
        )
    if isinstance(exc, RepositoryUnavailableError):
        return build_error_response(
            error="service_unavailable",
            message="The service is temporarily unavailable, please retry",
            status_code=503,
            detail={"retryable": True},
            headers={"Retry-After": "1"},
        )
    if isinstance(exc, InvalidTokenError):
        return build_error_response(
            error="unauthorized",
            message="Invalid or expired token",
            status_code=401,
            headers={"WWW-Authenticate": "Bearer"},
        )
    if isinstance(exc, IdentityProviderUnavailableError):
        return build_error_response(
            error="service_unavailable",
            message="Identity provider is temporarily unavailable",
            status_code=503,
            detail={"retryable": True},
        )
    return None


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Middleware that catches exceptions and returns consistent JSON errors.

    Handles:
    - APIError and subclasses: Custom application errors
    - Service-layer errors: mapped by error_response_for()
    - HTTPException: FastAPI's built-in HTTP errors
    - Pydantic ValidationError: validation failures outside request parsing
    - Generic exceptions: Unexpected errors (logged, returns 500)
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        """Process request and handle any exceptions.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware/handler in the chain.

        Returns:
            The response, or an error response if an exception occurred.
        """
        try:
            return await call_next(request)
        except HTTPException as exc:
            return build_error_response(
                error="http_error",
                message=str(exc.detail),
                status_code=exc.status_code,
            )
        except PydanticValidationError as exc:
            return build_error_response(
                error="validation_error",
                message="Request validation failed",
                status_code=422,
                detail={"errors": exc.errors(include_url=False)},
            )
        except Exception as exc:
            response = error_response_for(exc)
            if response is not None:
                if response.status_code >= 500:
                    logger.warning(
                        "Request failed with a transient error: %s %s",
                        request.method,
                        request.url.path,
                        extra={"error": type(exc).__name__},
                    )
                return response

            logger.exception(
                "Unexpected error processing request: %s %s",
                request.method,
                request.url.path,
            )
            return build_error_response(
                error="internal_error",
                message="An internal error occurred",
                status_code=500,
            )
