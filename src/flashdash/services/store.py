"""Session handling shared by the store-backed services.

StoreGateway runs each unit of work in a fresh session, bounds it by the
configured operation timeout and maps store outages onto
RepositoryUnavailableError. Writes can run shielded: once started, they
finish (or time out) even if the awaiting request is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from flashdash.db.models.base import utcnow
from flashdash.services.errors import RepositoryUnavailableError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_OPERATION_TIMEOUT = 10.0


class StoreGateway:
    """Base class for services that own a slice of the relational store."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        operation_timeout: float = DEFAULT_OPERATION_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the gateway.

        Args:
            session_factory: Factory producing a fresh AsyncSession per call.
            operation_timeout: Upper bound in seconds for one call.
            clock: Source of the current time for written timestamps.
        """
        self._session_factory = session_factory
        self._operation_timeout = operation_timeout
        self._clock = clock
        self._inflight: set[asyncio.Task[Any]] = set()

    async def _run(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
        *,
        shielded: bool = False,
    ) -> T:
        """Run ``work`` in a fresh session under the operation timeout.

        Args:
            operation: Name used in logs and errors.
            work: Coroutine function receiving the session.
            shielded: Keep running to completion if the caller is cancelled.

        Returns:
            Whatever ``work`` returns.

        Raises:
            RepositoryUnavailableError: On timeout or lost connectivity.
        """
        if not shielded:
            return await self._bounded(operation, work)

        task = asyncio.create_task(self._bounded(operation, work), name=f"store:{operation}")
        self._inflight.add(task)
        task.add_done_callback(self._forget)
        return await asyncio.shield(task)

    async def _bounded(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        try:
            async with asyncio.timeout(self._operation_timeout):
                async with self._session_factory() as session:
                    return await work(session)
        except TimeoutError as exc:
            logger.warning(
                "Store operation timed out",
                extra={"operation": operation, "timeout": self._operation_timeout},
            )
            raise RepositoryUnavailableError(operation, "timed out") from exc
        except (OperationalError, InterfaceError, PoolTimeoutError) as exc:
            logger.warning(
                "Store unavailable",
                extra={"operation": operation, "error": type(exc).__name__},
            )
            raise RepositoryUnavailableError(operation, type(exc).__name__) from exc

    def _forget(self, task: asyncio.Task[Any]) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        # Retrieve the outcome so an abandoned task does not warn on collection
        exc = task.exception()
        if exc is not None:
            logger.debug(
                "Store task finished with error",
                extra={"task": task.get_name(), "error": type(exc).__name__},
            )
