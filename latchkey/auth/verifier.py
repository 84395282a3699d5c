"""ApiKeyVerifier — turns a raw token into an authenticated session.

Verification flow (order is fixed; each stage short-circuits):
  1. Lookup        — token exists in the key store       → NotFoundError
  2. Cancellation  — cancelled_at is unset                → ForbiddenError
  3. Expiry        — expires_at unset or now <= expiry    → ForbiddenError
  4. Owner         — owner_id resolves to an account      → UnauthorizedError
  5. Lock          — account is not locked                → AccountLockedError
  6. Session       — identity fields written into the session

Cancellation is checked before expiry, so a key that is both cancelled and
expired reports "cancelled". Nothing is written to the session or the
request context until every check has passed.

Non-negotiables:
  - No cache: every call performs a fresh store lookup, so a cancelled key
    is rejected on the very next request.
  - The ApiKey record is read, never mutated.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from latchkey.auth.errors import (
    KEY_CANCELLED,
    KEY_EXPIRED,
    OWNER_MISSING,
    AccountLockedError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
)
from latchkey.auth.session import populate_session, resolve_display_name
from latchkey.auth.tokens import mask_token
from latchkey.auth.users import UserAuthRepository
from latchkey.constants import PROVIDER_NAME
from latchkey.models.api_key import ApiKey, utc_now
from latchkey.models.session import (
    AuthenticateRequest,
    AuthenticateResponse,
    AuthSession,
    RequestContext,
)
from latchkey.store.protocol import ApiKeyStore
from latchkey.utils.logger import get_logger, timed_store_call

logger = get_logger(__name__)


class ApiKeyVerifier:
    """Stateless verifier; safe to share across concurrent requests."""

    def __init__(
        self,
        store: ApiKeyStore,
        users: UserAuthRepository,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.users = users
        self._clock = clock

    async def verify_token(self, token: str) -> ApiKey:
        """Stages 1–3: resolve the token to a usable ApiKey record.

        Raises:
            NotFoundError:  No record for ``token``.
            ForbiddenError: Record is cancelled or expired.
        """
        with timed_store_call("find_by_token", logger):
            api_key = await self.store.find_by_token(token)
        if api_key is None:
            raise NotFoundError()

        if api_key.is_cancelled:
            raise ForbiddenError(KEY_CANCELLED)

        if api_key.is_expired(self._clock()):
            raise ForbiddenError(KEY_EXPIRED)

        return api_key

    async def authenticate(
        self,
        auth_request: AuthenticateRequest,
        session: AuthSession,
        context: RequestContext,
    ) -> AuthenticateResponse:
        """Run the full pipeline for ``auth_request.password``.

        On success the session is populated, ``context.api_key``,
        ``context.session`` and ``context.auth_response`` are set, and the
        response is returned.

        Raises:
            NotFoundError, ForbiddenError, UnauthorizedError, AccountLockedError
        """
        api_key = await self.verify_token(auth_request.password)

        user = await self.users.get_user_auth(api_key.owner_id)
        if user is None:
            raise UnauthorizedError(OWNER_MISSING)

        if await self.users.is_account_locked(user):
            raise AccountLockedError()

        populate_session(session, user, provider=auth_request.provider or PROVIDER_NAME)

        context.api_key = api_key
        context.session = session

        response = AuthenticateResponse(
            user_id=session.user_auth_id,
            user_name=session.user_name,
            session_id=session.id,
            display_name=resolve_display_name(session),
            referrer_url=auth_request.continue_url,
        )
        context.auth_response = response

        logger.info(
            "ApiKey authenticated",
            user_id=session.user_auth_id,
            key_id=api_key.id,
            environment=api_key.environment,
            key_type=api_key.key_type,
            token=mask_token(api_key.token),
        )
        return response
