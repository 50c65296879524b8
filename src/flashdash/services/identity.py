"""Bearer token verification against the external identity provider.

FlashDash never issues or stores credentials. Each API request carries a
bearer token from the identity provider; the token is presented to the
provider's userinfo endpoint and the configured claim is taken as the
stable user id.
"""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING, Any, Protocol

import httpx

if TYPE_CHECKING:
    from flashdash.core.config import IdentitySettings

logger = logging.getLogger(__name__)


class IdentityError(Exception):
    """Base exception for identity provider operations."""

    pass


class InvalidTokenError(IdentityError):
    """Raised when the provider rejects the token or it carries no user id."""

    pass


class IdentityProviderUnavailableError(IdentityError):
    """Raised when the provider cannot be reached or answers unexpectedly."""

    pass


class TokenVerifier(Protocol):
    """Anything that maps a bearer token to a user id."""

    async def verify_token(self, token: str) -> str: ...

    async def aclose(self) -> None: ...


def _hash_for_log(value: str) -> str:
    """Hash a sensitive value for logging (first 12 hex chars)."""
    return hashlib.sha256(value.encode()).hexdigest()[:12]


class HTTPIdentityProvider:
    """Verifies bearer tokens through the provider's userinfo endpoint.

    Example:
        async with HTTPIdentityProvider(settings.identity) as provider:
            user_id = await provider.verify_token(token)
    """

    def __init__(
        self,
        settings: IdentitySettings,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the provider client.

        Args:
            settings: Identity provider settings.
            client: Optional pre-built HTTP client (e.g. with a mock transport).
        """
        self._settings = settings
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> HTTPIdentityProvider:
        """Enter async context manager."""
        self._get_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Exit async context manager."""
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._settings.timeout,
                headers={"Accept": "application/json"},
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def verify_token(self, token: str) -> str:
        """Map a bearer token to the user id it was issued for.

        Args:
            token: Bearer token presented by the client.

        Returns:
            The stable user id from the configured claim.

        Raises:
            InvalidTokenError: If the token is empty, rejected, or has no user id.
            IdentityProviderUnavailableError: If the provider is unreachable,
                not configured, or answers with an unexpected status.
        """
        if not token or not token.strip():
            raise InvalidTokenError("Empty bearer token")
        if not self._settings.userinfo_url:
            raise IdentityProviderUnavailableError("Identity provider is not configured")

        claims = await self._fetch_userinfo(token.strip())

        user_id = claims.get(self._settings.user_id_claim)
        if not isinstance(user_id, str) or not user_id:
            raise InvalidTokenError(
                f"Userinfo response has no '{self._settings.user_id_claim}' claim"
            )

        logger.debug("Token verified", extra={"user_ref": _hash_for_log(user_id)})
        return user_id

    async def _fetch_userinfo(self, token: str) -> dict[str, Any]:
        client = self._get_client()
        try:
            response = await client.get(
                self._settings.userinfo_url,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as e:
            logger.warning("Identity provider request timed out", extra={"error": str(e)})
            raise IdentityProviderUnavailableError(f"Timeout: {e}") from e
        except httpx.RequestError as e:
            logger.warning("Failed to reach identity provider", extra={"error": str(e)})
            raise IdentityProviderUnavailableError(f"Connection error: {e}") from e

        if response.status_code in (401, 403):
            raise InvalidTokenError("Identity provider rejected the token")
        if response.status_code != 200:
            logger.error(
                "Identity provider returned an unexpected status",
                extra={"status_code": response.status_code},
            )
            raise IdentityProviderUnavailableError(f"HTTP {response.status_code}")

        try:
            claims = response.json()
        except ValueError as e:
            raise IdentityProviderUnavailableError("Userinfo response is not JSON") from e
        if not isinstance(claims, dict):
            raise IdentityProviderUnavailableError("Userinfo response is not a JSON object")
        return claims
