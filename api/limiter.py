"""
api/limiter.py -- The process-wide slowapi limiter.

Mounted by api/main.py and used by the public routes that accept guesses at a
secret: login, sign-up and code validation. There must be exactly one
instance, otherwise each importing module counts separately.

Counters live in memory, so the limit is per worker process.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_rate_limit() -> str:
    """Limit string for login and sign-up, read from settings at request time."""
    return get_settings().login_rate_limit
