"""
Rate limiter instance (slowapi) — shared by main.py and the admin endpoints.
Keyed by client address; limits are declared per route with @limiter.limit().
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

ADMIN_RATE_LIMIT = "10/minute"

limiter = Limiter(key_func=get_remote_address)
