"""Challenge responder for failed API-key authentication.

Every verifier failure that reaches the transport boundary becomes the same
response:

    HTTP/1.1 401 Unauthorized
    WWW-Authenticate: Basic realm="/auth/apikey"

The scheme must be ``Basic`` so standard HTTP clients retry with
credentials. The realm distinguishes this provider from any other
configured authentication method. The body never carries the internal
failure reason — that goes to the structured log only.
"""

from __future__ import annotations

from starlette.responses import JSONResponse

from latchkey.constants import REALM

_UNAUTHORIZED_BODY: dict = {
    "error": {
        "message": "Unauthorized",
        "code": "unauthorized",
    }
}


def challenge_header(realm: str = REALM) -> dict[str, str]:
    """WWW-Authenticate header for ``realm``."""
    return {"WWW-Authenticate": f'Basic realm="{realm}"'}


def challenge_response(realm: str = REALM) -> JSONResponse:
    """401 response carrying the Basic challenge. Terminates the request."""
    return JSONResponse(
        status_code=401,
        content=_UNAUTHORIZED_BODY,
        headers=challenge_header(realm),
    )
