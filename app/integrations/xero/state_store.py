"""
OAuth State Store
Temporary storage for OAuth state tokens issued by /connect.

In-memory with expiration; a multi-process deployment needs a shared
backend (Redis or a database table) behind the same interface.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OAuthStateStore:
    """
    In-memory store for OAuth state tokens.

    A state is valid once, and only until it expires (10 minutes by default,
    plenty for an OAuth flow).
    """

    STATE_LIFETIME = timedelta(minutes=10)

    def __init__(
        self,
        lifetime: timedelta = STATE_LIFETIME,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.lifetime = lifetime
        self.clock = clock
        # {state: expires_at}
        self._store: dict[str, datetime] = {}

    def save_state(self, state: str) -> None:
        """Remember a freshly issued state."""
        self._store[state] = self.clock() + self.lifetime

        # Cleanup expired states (simple garbage collection)
        self._cleanup_expired()

    def consume_state(self, state: str) -> bool:
        """
        Validate and remove a state (one-time use).

        Returns:
            True if the state was issued here and has not expired
        """
        expires_at = self._store.pop(state, None)
        if expires_at is None:
            return False
        return self.clock() <= expires_at

    def __len__(self) -> int:
        return len(self._store)

    def _cleanup_expired(self) -> None:
        """Remove expired states from store."""
        now = self.clock()
        expired_states = [
            state for state, expires_at in self._store.items()
            if now > expires_at
        ]
        for state in expired_states:
            del self._store[state]
