"""ApiKeyAuthProvider — wires the issuer, verifier and challenge together.

One instance is built in the lifespan and stored on ``app.state.apikey_provider``.
The credential middleware and the routes receive it from there; nothing in
this package reaches for a global store or connection.

register() is the startup hook:
  - init_schema on and no key store → KeyStoreNotConfiguredError (startup aborts)
  - init_schema on → ApiKeyStore.ensure_schema() (idempotent)
  - subscribes ApiKeyIssuer.on_registered to AccountRegistered
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from starlette.responses import Response

from latchkey.auth.challenge import challenge_response
from latchkey.auth.errors import KeyStoreNotConfiguredError
from latchkey.auth.events import AccountRegistered, EventBus
from latchkey.auth.issuer import ApiKeyIssuer
from latchkey.auth.session import is_authorized
from latchkey.auth.tokens import RecordMutator, TokenGenerator
from latchkey.auth.users import UserAuthRepository
from latchkey.auth.verifier import ApiKeyVerifier
from latchkey.config import ApiKeyConfig
from latchkey.constants import PROVIDER_NAME, REALM
from latchkey.models.api_key import utc_now
from latchkey.models.session import (
    AuthenticateRequest,
    AuthenticateResponse,
    AuthSession,
    RequestContext,
)
from latchkey.store.protocol import ApiKeyStore
from latchkey.utils.logger import get_logger

logger = get_logger(__name__)


class ApiKeyAuthProvider:
    """API-key identity provider ("apikey")."""

    name: str = PROVIDER_NAME
    realm: str = REALM

    def __init__(
        self,
        config: ApiKeyConfig,
        store: Optional[ApiKeyStore],
        users: UserAuthRepository,
        token_generator: Optional[TokenGenerator] = None,
        record_mutator: Optional[RecordMutator] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self.store = store
        self.users = users
        self._issuer: Optional[ApiKeyIssuer] = None
        self._verifier: Optional[ApiKeyVerifier] = None

        if store is not None:
            self._issuer = ApiKeyIssuer(
                store=store,
                environments=config.environments,
                key_types=config.key_types,
                key_size_bytes=config.key_size_bytes,
                token_generator=token_generator,
                record_mutator=record_mutator,
                clock=clock,
            )
            self._verifier = ApiKeyVerifier(store=store, users=users, clock=clock)

    @property
    def require_secure_connection(self) -> bool:
        return self.config.require_secure_connection

    @property
    def issuer(self) -> ApiKeyIssuer:
        if self._issuer is None:
            raise KeyStoreNotConfiguredError()
        return self._issuer

    @property
    def verifier(self) -> ApiKeyVerifier:
        if self._verifier is None:
            raise KeyStoreNotConfiguredError()
        return self._verifier

    async def register(self, events: EventBus) -> None:
        """Startup hook — schema initialization and issuer subscription.

        Raises:
            KeyStoreNotConfiguredError: init_schema is on but no store was given.
        """
        if self.config.init_schema:
            if self.store is None:
                raise KeyStoreNotConfiguredError()
            await self.store.ensure_schema()

        events.subscribe(AccountRegistered, self.issuer.on_registered)

        logger.info(
            "ApiKey provider registered",
            init_schema=self.config.init_schema,
            require_secure_connection=self.config.require_secure_connection,
            environments=self.config.environments,
            key_types=self.config.key_types,
            key_size_bytes=self.config.key_size_bytes,
        )

    async def authenticate(
        self,
        auth_request: AuthenticateRequest,
        session: AuthSession,
        context: RequestContext,
    ) -> AuthenticateResponse:
        return await self.verifier.authenticate(auth_request, session, context)

    def is_authorized(self, session: Optional[AuthSession]) -> bool:
        return is_authorized(session)

    def on_failed_authentication(self) -> Response:
        return challenge_response(self.realm)
