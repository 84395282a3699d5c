"""Shared rate limiter for Latchkey registration and key-management endpoints.

Uses slowapi (Starlette-compatible rate limiting), keyed by client address.

The Limiter instance is created here and shared between:
  - latchkey/auth/router.py  (route decorators)
  - latchkey/main.py         (app.state.limiter + SlowAPIMiddleware registration)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Module-level limiter — imported by main.py and auth/router.py
limiter = Limiter(key_func=get_remote_address)

# Default rate limit for key management endpoints
KEY_MANAGEMENT_RATE_LIMIT = "20/minute"

# Registration creates accounts and issues a full key set — tighter cap
REGISTRATION_RATE_LIMIT = "10/minute"
