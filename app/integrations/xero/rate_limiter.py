"""
Xero Rate Limiter
Keeps outbound API traffic under Xero's per-tenant minute limit.
"""

import asyncio
import logging
from collections import defaultdict, deque
from datetime import datetime, timedelta, timezone
from typing import Callable

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class XeroRateLimiter:
    """
    Sliding-window limiter keyed by company (Xero tenant) id.

    Fetchers call acquire() before each request. A slot is reserved in the
    same step that approves it, so concurrent callers cannot overshoot the
    cap, and a company that has to wait sleeps alone: a burst against one
    tenant never delays another.
    """

    def __init__(
        self,
        calls_per_minute: int = 60,
        window: timedelta = timedelta(minutes=1),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.calls_per_minute = calls_per_minute
        self.window = window
        self._clock = clock
        self._calls: dict[str, deque[datetime]] = defaultdict(deque)

    def _prune(self, company_id: str, now: datetime) -> deque[datetime]:
        calls = self._calls[company_id]
        while calls and calls[0] <= now - self.window:
            calls.popleft()
        return calls

    async def acquire(self, company_id: str) -> None:
        """Wait until the company has a free slot in the window, then take it."""
        while True:
            # No await between the check and the reservation
            now = self._clock()
            calls = self._prune(company_id, now)
            if len(calls) < self.calls_per_minute:
                calls.append(now)
                return

            wait_seconds = (calls[0] + self.window - now).total_seconds()
            logger.info(
                "Xero rate limit reached for company %s, waiting %.1fs",
                company_id,
                wait_seconds,
            )
            await asyncio.sleep(wait_seconds)

    def forget(self, company_id: str) -> None:
        """Drop the call history of a disconnected company."""
        self._calls.pop(company_id, None)
