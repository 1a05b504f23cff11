"""
Token Refresh Lock
Provides per-company async locks to prevent token refresh race conditions.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class TokenRefreshLock:
    """
    Manages async locks for token operations per company.

    Prevents race conditions where multiple concurrent API calls trigger
    simultaneous token refreshes, causing invalid_grant errors once Xero
    rotates the refresh token. Companies never contend with each other.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        # Tasks inside hold() per company, holders and queued waiters alike
        self._users: dict[str, int] = {}

    def get_lock(self, company_id: str) -> asyncio.Lock:
        """
        Get or create the lock for a company.

        No await between lookup and insert, so only one lock can ever
        exist per company on the event loop.
        """
        lock = self._locks.get(company_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[company_id] = lock
            logger.debug("Created token refresh lock for company %s", company_id)
        return lock

    @asynccontextmanager
    async def hold(self, company_id: str) -> AsyncIterator[None]:
        """Hold the company lock for the duration of the block."""
        lock = self.get_lock(company_id)
        self._users[company_id] = self._users.get(company_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._users[company_id] - 1
            if remaining:
                self._users[company_id] = remaining
            else:
                del self._users[company_id]

    def release_lock(self, company_id: str) -> None:
        """
        Drop the lock for a disconnected company.

        A lock that is held, or that a task is still queued on, stays
        registered; evicting it would let a newcomer get a second lock.
        """
        lock = self._locks.get(company_id)
        if lock is None or lock.locked() or self._users.get(company_id):
            return
        del self._locks[company_id]
        logger.debug("Released token refresh lock for company %s", company_id)
