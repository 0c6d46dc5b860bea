"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and
api/routes/v1/auth.py (to apply per-route limits with @limiter.limit()).

A single shared instance keeps one in-memory counter store for every route.
Separate instances per module would each count in isolation and the limits
would never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_rate_limit() -> str:
    """LOGIN_RATE_LIMIT, resolved each time slowapi evaluates the limit."""
    return get_settings().login_rate_limit


def write_rate_limit() -> str:
    """WRITE_RATE_LIMIT, applied to content-creating routes."""
    return get_settings().write_rate_limit
