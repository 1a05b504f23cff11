"""
Rate Limiting Utilities
Per-IP request limits for the public API.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import Settings


def create_limiter(settings: Settings) -> Limiter:
    """Limiter applying the configured default limit to every route."""
    return Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit_default],
        enabled=settings.rate_limit_enabled,
    )
