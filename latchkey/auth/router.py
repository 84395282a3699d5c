"""HTTP endpoints for registration, session introspection and key management.

Provides:
  POST /register         — create an account; AccountRegistered issues its keys
  GET  /auth/session     — the API-key session of the current request
  GET  /apikeys          — list the caller's keys (masked)
  POST /apikeys          — issue one additional key for the caller
  POST /apikeys/cancel   — cancel one of the caller's keys

Everything except /register requires Depends(require_authorized_session),
i.e. the request was authenticated by ApiKeyCredentialMiddleware.
Plaintext tokens are returned only by /register and POST /apikeys.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from latchkey.auth.events import AccountRegistered, EventBus
from latchkey.auth.extractor import require_authorized_session
from latchkey.auth.limiter import KEY_MANAGEMENT_RATE_LIMIT, REGISTRATION_RATE_LIMIT, limiter
from latchkey.auth.provider import ApiKeyAuthProvider
from latchkey.auth.tokens import mask_token
from latchkey.auth.users import LocalSQLiteUserAuthRepository, UserAlreadyExistsError
from latchkey.models.api_key import ApiKey
from latchkey.models.session import RequestContext
from latchkey.store.protocol import DuplicateTokenError
from latchkey.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["api-keys"])


# ─── Request Models ───────────────────────────────────────────────────────────


class RegisterRequest(BaseModel):
    """Request body for POST /register. user_name or email is required."""

    user_name: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class IssueKeyRequest(BaseModel):
    """Request body for POST /apikeys."""

    environment: str
    key_type: str
    expires_at: Optional[datetime] = None
    notes: Optional[str] = None


class CancelKeyRequest(BaseModel):
    """Request body for POST /apikeys/cancel."""

    key_id: int


# ─── State accessors ──────────────────────────────────────────────────────────


def _provider(request: Request) -> ApiKeyAuthProvider:
    return request.app.state.apikey_provider


def _key_view(key: ApiKey, reveal: bool = False) -> dict:
    view = {
        "id": key.id,
        "environment": key.environment,
        "key_type": key.key_type,
        "created_at": key.created_at.isoformat(),
        "expires_at": key.expires_at.isoformat() if key.expires_at else None,
        "cancelled_at": key.cancelled_at.isoformat() if key.cancelled_at else None,
        "notes": key.notes,
    }
    if reveal:
        view["key"] = key.token
    else:
        view["masked_key"] = mask_token(key.token)
    return view


# ─── Endpoints ────────────────────────────────────────────────────────────────


@router.post("/register")
@limiter.limit(REGISTRATION_RATE_LIMIT)
async def register(body: RegisterRequest, request: Request) -> dict:
    """Create an account and issue its API keys.

    The account row is committed first, then AccountRegistered is published.
    The issuer runs synchronously inside publish(), so an issuance failure
    is reported here rather than lost.

    Returns:
        JSON: {user_id, keys: [{id, environment, key_type, key, ...}], message}
        Keys are shown in plaintext exactly once.

    Raises:
        HTTP 400: Neither user_name nor email supplied.
        HTTP 409: user_name or email already registered.
        HTTP 500: Key issuance failed (token collision).
    """
    users: LocalSQLiteUserAuthRepository = request.app.state.users
    events: EventBus = request.app.state.events
    provider = _provider(request)

    try:
        user = await users.create_user_auth(
            user_name=body.user_name,
            email=body.email,
            display_name=body.display_name,
            first_name=body.first_name,
            last_name=body.last_name,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except UserAlreadyExistsError as exc:
        raise HTTPException(status_code=409, detail=exc.message) from exc

    try:
        await events.publish(AccountRegistered(owner_id=user.id, user_name=user.user_name))
    except DuplicateTokenError as exc:
        logger.error("ApiKey issuance failed during registration", user_id=user.id)
        raise HTTPException(status_code=500, detail="ApiKey issuance failed") from exc

    keys = await provider.store.list_by_owner(user.id)
    return {
        "user_id": user.id,
        "keys": [_key_view(key, reveal=True) for key in keys],
        "message": "Account registered. Store these keys — they will not be shown again.",
    }


@router.get("/auth/session")
async def current_session(
    request: Request,
    context: RequestContext = Depends(require_authorized_session),
) -> dict:
    """Return the authenticated identity and which key authenticated the call."""
    session = context.session
    api_key = context.api_key
    response = context.auth_response.to_dict() if context.auth_response else {}
    response.update(
        {
            "provider": session.provider,
            "email": session.email,
            "api_key": {
                "id": api_key.id,
                "environment": api_key.environment,
                "key_type": api_key.key_type,
            }
            if api_key is not None
            else None,
        }
    )
    return response


@router.get("/apikeys")
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def list_keys(
    request: Request,
    context: RequestContext = Depends(require_authorized_session),
) -> dict:
    """List every key of the authenticated owner (masked, cancelled included)."""
    keys = await _provider(request).store.list_by_owner(context.session.user_auth_id)
    return {"keys": [_key_view(key) for key in keys]}


@router.post("/apikeys")
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def issue_key(
    body: IssueKeyRequest,
    request: Request,
    context: RequestContext = Depends(require_authorized_session),
) -> dict:
    """Issue one more key for the authenticated owner. Plaintext shown once.

    Raises:
        HTTP 400: environment or key_type outside the configured sets.
    """
    try:
        key = await _provider(request).issuer.issue(
            owner_id=context.session.user_auth_id,
            environment=body.environment,
            key_type=body.key_type,
            expires_at=body.expires_at,
            notes=body.notes,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return {
        **_key_view(key, reveal=True),
        "message": "ApiKey created. Store this key — it will not be shown again.",
    }


@router.post("/apikeys/cancel")
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def cancel_key(
    body: CancelKeyRequest,
    request: Request,
    context: RequestContext = Depends(require_authorized_session),
) -> dict:
    """Cancel one of the caller's keys. Cancellation is permanent.

    Raises:
        HTTP 404: Key not found, not owned by the caller, or already cancelled.
    """
    owner_id = context.session.user_auth_id
    cancelled = await _provider(request).store.cancel(body.key_id, owner_id=owner_id)
    if not cancelled:
        raise HTTPException(
            status_code=404,
            detail=f"ApiKey '{body.key_id}' not found or already cancelled.",
        )

    logger.info("ApiKey cancelled via API", user_id=owner_id, key_id=body.key_id)
    return {"message": "ApiKey cancelled.", "cancelled_id": body.key_id}
