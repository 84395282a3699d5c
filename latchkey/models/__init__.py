"""Latchkey models package.

Defines the shared data contracts used across the store, issuer and verifier:

  - api_key.py — ApiKey record + UTC helpers
  - user.py    — UserAuth account record
  - session.py — AuthSession, AuthenticateRequest/Response, RequestContext
"""

from latchkey.models.api_key import ApiKey, as_utc, utc_now
from latchkey.models.session import (
    AuthenticateRequest,
    AuthenticateResponse,
    AuthSession,
    RequestContext,
)
from latchkey.models.user import UserAuth

__all__ = [
    "ApiKey",
    "AuthSession",
    "AuthenticateRequest",
    "AuthenticateResponse",
    "RequestContext",
    "UserAuth",
    "as_utc",
    "utc_now",
]
