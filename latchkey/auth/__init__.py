"""Latchkey API-key authentication package.

Public API:
  - ApiKeyAuthProvider          — provider facade: register(), authenticate(), challenge
  - ApiKeyIssuer                — cross-product issuance on AccountRegistered
  - ApiKeyVerifier              — lookup → cancelled → expired → owner → lock → session
  - ApiKeyCredentialMiddleware  — Basic-Auth username extraction + secure-channel gate
  - require_authorized_session  — FastAPI Depends() dependency for protected routes
  - EventBus / AccountRegistered
  - LocalSQLiteUserAuthRepository / UserAuthRepository
  - Base62TokenGenerator, create_random_base62_id, mask_token
  - ApiKeyAuthError and subclasses
"""

from __future__ import annotations

from latchkey.auth.challenge import challenge_header, challenge_response
from latchkey.auth.errors import (
    AccountLockedError,
    ApiKeyAuthError,
    ForbiddenError,
    KeyStoreNotConfiguredError,
    NotFoundError,
    UnauthorizedError,
)
from latchkey.auth.events import AccountRegistered, EventBus
from latchkey.auth.extractor import (
    ApiKeyCredentialMiddleware,
    extract_api_key,
    require_authorized_session,
)
from latchkey.auth.issuer import ApiKeyIssuer
from latchkey.auth.provider import ApiKeyAuthProvider
from latchkey.auth.tokens import (
    Base62TokenGenerator,
    RecordMutator,
    TokenGenerator,
    create_random_base62_id,
    mask_token,
)
from latchkey.auth.users import (
    LocalSQLiteUserAuthRepository,
    UserAlreadyExistsError,
    UserAuthRepository,
)
from latchkey.auth.verifier import ApiKeyVerifier

__all__ = [
    "AccountLockedError",
    "AccountRegistered",
    "ApiKeyAuthError",
    "ApiKeyAuthProvider",
    "ApiKeyCredentialMiddleware",
    "ApiKeyIssuer",
    "ApiKeyVerifier",
    "Base62TokenGenerator",
    "EventBus",
    "ForbiddenError",
    "KeyStoreNotConfiguredError",
    "LocalSQLiteUserAuthRepository",
    "NotFoundError",
    "RecordMutator",
    "TokenGenerator",
    "UnauthorizedError",
    "UserAlreadyExistsError",
    "UserAuthRepository",
    "challenge_header",
    "challenge_response",
    "create_random_base62_id",
    "extract_api_key",
    "mask_token",
    "require_authorized_session",
]
