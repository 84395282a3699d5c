"""Session and request-scoped types for the authentication pipeline.

  - AuthSession          — identity fields populated by a successful verification
  - AuthenticateRequest  — the authentication attempt synthesized by the extractor
  - AuthenticateResponse — success result returned by the verifier
  - RequestContext       — request-lifetime context read by downstream handlers

RequestContext lives on ``request.state.context`` for exactly one request.
The verifier writes ``api_key`` and ``session`` once; handlers only read them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from latchkey.models.api_key import ApiKey


@dataclass
class AuthSession:
    """Per-request authenticated identity."""

    id: str
    """Session identifier (cookie value or freshly generated ULID)."""
    provider: Optional[str] = None
    is_authenticated: bool = False
    user_auth_id: Optional[str] = None
    user_auth_name: Optional[str] = None
    """Resolved login name — username, falling back to email."""
    user_name: Optional[str] = None
    display_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None


@dataclass
class AuthenticateRequest:
    """An authentication attempt handed to a provider.

    For API keys the token travels in ``password``; ``user_name`` is a
    placeholder. ``continue_url`` is echoed back as ``referrer_url``.
    """

    provider: str
    password: str
    user_name: Optional[str] = None
    continue_url: Optional[str] = None


@dataclass
class AuthenticateResponse:
    """Success result of the verifier."""

    user_id: Optional[str]
    user_name: Optional[str]
    session_id: str
    display_name: str
    referrer_url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "user_name": self.user_name,
            "session_id": self.session_id,
            "display_name": self.display_name,
            "referrer_url": self.referrer_url,
        }


@dataclass
class RequestContext:
    """Typed request-lifetime context passed alongside the request."""

    session_id: Optional[str] = None
    session: Optional[AuthSession] = None
    api_key: Optional[ApiKey] = None
    auth_response: Optional[AuthenticateResponse] = None
