"""API-key credential extraction — runs before normal request dispatch.

Transport convention:
    Authorization: Basic base64("<token>:")

The token travels in the Basic-Auth *username* slot and the password slot is
empty. Anything else — no Authorization header, Bearer tokens, Basic with a
non-empty password, undecodable Basic payloads — is not an API key and the
middleware passes the request through untouched.

When the convention is present:
  1. Secure-connection policy: if enabled and the request scheme is not
     https/wss → HTTP 403 immediately. The key store is never consulted.
  2. ensure_session_id() — nothing upstream has assigned one yet.
  3. Synthesize AuthenticateRequest(provider="apikey", password=<token>)
     and run the provider's verifier.
  4. ApiKeyAuthError → 401 + WWW-Authenticate challenge (reason logged only).
  5. Success → RequestContext populated, request proceeds.

require_authorized_session() is the FastAPI dependency for downstream
routes: it reads the RequestContext written here and applies the
provider's authorization predicate.
"""

from __future__ import annotations

import base64
import binascii

from fastapi import HTTPException, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from latchkey.auth.challenge import challenge_header
from latchkey.auth.errors import REQUIRES_SECURE_CONNECTION, ApiKeyAuthError
from latchkey.auth.session import ensure_session_id, get_request_context
from latchkey.auth.tokens import mask_token
from latchkey.constants import PROVIDER_NAME, SECURE_SCHEMES, SYNTHETIC_USER_NAME
from latchkey.models.session import AuthenticateRequest, AuthSession, RequestContext
from latchkey.utils.logger import clear_request_id, get_logger, set_request_id
from latchkey.utils.ulid import generate_ulid

logger = get_logger(__name__)

_FORBIDDEN_BODY: dict = {
    "error": {
        "message": REQUIRES_SECURE_CONNECTION,
        "code": "forbidden",
    }
}

_NOT_READY_BODY: dict = {
    "error": {
        "message": "Latchkey is starting up",
        "code": "not_ready",
    }
}


# ─── Header parsing ───────────────────────────────────────────────────────────


def parse_basic_credentials(authorization: str) -> tuple[str, str] | None:
    """Decode an ``Authorization: Basic ...`` value into (username, password).

    Returns None for any other scheme or an undecodable payload.
    """
    if not authorization:
        return None
    scheme, _, param = authorization.strip().partition(" ")
    if scheme.lower() != "basic" or not param.strip():
        return None
    try:
        decoded = base64.b64decode(param.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    user_name, sep, password = decoded.partition(":")
    if not sep:
        return None
    return user_name, password


def extract_api_key(authorization: str) -> str | None:
    """Return the API-key token if the header follows the Basic-username convention.

    Args:
        authorization: The raw Authorization header value (or empty string).

    Returns:
        str: the token (Basic username) when the password is empty. A blank
             username still counts as an attempt and fails verification.
        None: for every other header shape.
    """
    credentials = parse_basic_credentials(authorization)
    if credentials is None:
        return None
    token, password = credentials
    if password:
        return None
    return token


def is_secure_connection(request: Request) -> bool:
    return request.url.scheme in SECURE_SCHEMES


# ─── Middleware ───────────────────────────────────────────────────────────────


class ApiKeyCredentialMiddleware(BaseHTTPMiddleware):
    """Authenticate Basic-Auth API keys before the route handler runs.

    Reads the provider from ``request.app.state.apikey_provider`` (set by the
    lifespan). Requests without an API-key credential pass straight through.
    """

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        set_request_id(generate_ulid())
        try:
            return await self._dispatch(request, call_next)
        finally:
            clear_request_id()

    async def _dispatch(self, request: Request, call_next) -> Response:
        token = extract_api_key(request.headers.get("Authorization", ""))
        if token is None:
            return await call_next(request)

        provider = getattr(request.app.state, "apikey_provider", None)
        if provider is None:
            logger.warning(
                "ApiKey credential received before provider registration",
                path=request.url.path,
            )
            return JSONResponse(status_code=503, content=_NOT_READY_BODY)

        # ── Secure-connection policy — checked before any lookup ─────────
        if provider.require_secure_connection and not is_secure_connection(request):
            logger.warning(
                "ApiKey rejected: insecure connection",
                scheme=request.url.scheme,
                path=request.url.path,
                method=request.method,
            )
            return JSONResponse(status_code=403, content=_FORBIDDEN_BODY)

        # ── Synthesize the authentication attempt ─────────────────────────
        session_id = ensure_session_id(request)
        context = get_request_context(request)
        auth_request = AuthenticateRequest(
            provider=PROVIDER_NAME,
            user_name=SYNTHETIC_USER_NAME,
            password=token,
            continue_url=request.query_params.get("continue"),
        )

        try:
            await provider.authenticate(auth_request, AuthSession(id=session_id), context)
        except ApiKeyAuthError as exc:
            logger.warning(
                "ApiKey authentication failed",
                reason=exc.message,
                code=exc.code,
                status_code=exc.status_code,
                token=mask_token(token),
                path=request.url.path,
                method=request.method,
            )
            return provider.on_failed_authentication()

        return await call_next(request)


# ─── Route dependency ─────────────────────────────────────────────────────────


async def require_authorized_session(request: Request) -> RequestContext:
    """FastAPI dependency: the request must have been authenticated by an API key.

    Returns:
        The RequestContext carrying the session and the ApiKey used.

    Raises:
        HTTPException(401): With the Basic challenge header when the session
                            is missing or not authorized.
    """
    context = get_request_context(request)
    provider = getattr(request.app.state, "apikey_provider", None)
    if provider is None or not provider.is_authorized(context.session):
        raise HTTPException(
            status_code=401,
            detail={"message": "Unauthorized", "code": "unauthorized"},
            headers=challenge_header(),
        )
    return context
