"""
Deadline enforcement for platform calls.

A call that exceeds the deadline, or that the platform refuses for the
identity in use, quarantines that identity before the failure propagates.
Other failures pass through without touching pool state.
"""

import asyncio
import logging
from typing import Awaitable, TypeVar

from .errors import AccessDenied, TimedOut
from .pool import AccountPool, SessionHandle

logger = logging.getLogger("searchbot.guard")

T = TypeVar("T")

DEFAULT_TIMEOUT = 12.0


class TimeoutGuard:
    """Races platform calls against a fixed wall-clock deadline."""

    def __init__(self, pool: AccountPool, timeout: float = DEFAULT_TIMEOUT):
        self._pool = pool
        self.timeout = timeout

    async def run(
        self,
        operation: Awaitable[T],
        label: str,
        handle: SessionHandle | None = None,
    ) -> T:
        """
        Await an operation under the deadline.

        The underlying network request may still complete after the deadline;
        its result is discarded.

        Raises:
            TimedOut: If the deadline expired.
            AccessDenied: If the platform refused the identity.
        """
        try:
            return await asyncio.wait_for(operation, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"{label} timed out after {self.timeout}s")
            if handle is not None:
                await self._pool.quarantine_and_demote(handle.identity)
            raise TimedOut(label) from None
        except AccessDenied as e:
            logger.error(f"{label} was denied: {e}")
            if handle is not None:
                await self._pool.quarantine_and_demote(handle.identity)
            raise
