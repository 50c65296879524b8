"""Bearer token authentication dependencies.

Every /api route authenticates the caller with a bearer token issued by
the external identity provider:

- require_user_id: verifies the token and yields the identity's user id
- require_account: resolves the registered profile (customer or rider)
- require_rider / require_customer: narrow the account to one role

The account is resolved once here and passed to handlers explicitly.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from flashdash.api.dependencies import Directory, IdentityProvider
from flashdash.api.middleware.errors import AuthenticationError, AuthorizationError
from flashdash.services.errors import NotFoundError
from flashdash.services.identity import InvalidTokenError
from flashdash.services.users import Account, CustomerAccount, RiderAccount  # noqa: TC001

logger = logging.getLogger(__name__)

# Bearer token security scheme for OpenAPI docs
bearer_scheme = HTTPBearer(auto_error=False)


async def require_user_id(
    identity: IdentityProvider,
    credentials: Annotated[
        HTTPAuthorizationCredentials | None,
        Depends(bearer_scheme),
    ] = None,
) -> str:
    """Dependency that requires a valid bearer token.

    Returns:
        The user id the identity provider associates with the token.

    Raises:
        AuthenticationError: If no token is sent or the provider rejects it.
        IdentityProviderUnavailableError: If the provider cannot be reached.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError()

    try:
        return await identity.verify_token(credentials.credentials)
    except InvalidTokenError as e:
        logger.info("Bearer token rejected", extra={"reason": str(e)})
        raise AuthenticationError("Invalid or expired token") from e


UserId = Annotated[str, Depends(require_user_id)]


async def require_account(user_id: UserId, directory: Directory) -> Account:
    """Dependency that requires a registered profile.

    Raises:
        AuthorizationError: If the identity has not registered a profile yet.
    """
    try:
        return await directory.resolve_account(user_id)
    except NotFoundError as e:
        raise AuthorizationError(
            "Profile not registered",
            detail={"hint": "POST /api/users/profile first"},
        ) from e


CurrentAccount = Annotated[Account, Depends(require_account)]


async def require_rider(account: CurrentAccount) -> RiderAccount:
    """Dependency that requires a rider profile."""
    if not isinstance(account, RiderAccount):
        raise AuthorizationError("Rider role required")
    return account


async def require_customer(account: CurrentAccount) -> CustomerAccount:
    """Dependency that requires a customer profile."""
    if not isinstance(account, CustomerAccount):
        raise AuthorizationError("Customer role required")
    return account


CurrentRider = Annotated[RiderAccount, Depends(require_rider)]
CurrentCustomer = Annotated[CustomerAccount, Depends(require_customer)]
