"""Latchkey authentication errors.

Every verification stage raises one of the ApiKeyAuthError subclasses below
at the failing stage. The credential middleware catches them all and answers
with the same 401 + challenge; ``code`` and ``message`` are for logs only.

  NotFoundError      — token has no matching record           (404 class)
  ForbiddenError     — key cancelled / expired / insecure      (403 class)
  UnauthorizedError  — owner account missing                   (401 class)
  AccountLockedError — owner account locked                    (401 class)

KeyStoreNotConfiguredError is a startup error, never a per-request one.
"""

from __future__ import annotations


class ApiKeyAuthError(Exception):
    """Base class for API-key verification failures."""

    status_code: int = 401
    code: str = "unauthorized"

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ApiKeyAuthError):
    """Raised when no ApiKey matches the presented token.

    Treated as a client credential error, not a server fault.
    """

    status_code = 404
    code = "not_found"

    def __init__(self, message: str = "ApiKey does not exist") -> None:
        super().__init__(message)


class ForbiddenError(ApiKeyAuthError):
    """Raised when a key exists but may not be used.

    Covers cancelled keys, expired keys and keys presented over an insecure
    channel while the secure-connection policy is on.
    """

    status_code = 403
    code = "forbidden"

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)


class UnauthorizedError(ApiKeyAuthError):
    """Raised when the key is valid but its owner cannot be resolved."""

    status_code = 401
    code = "unauthorized"


class AccountLockedError(UnauthorizedError):
    """Raised when the key's owner account is locked."""

    code = "account_locked"

    def __init__(self, message: str = "This account has been locked") -> None:
        super().__init__(message)


class KeyStoreNotConfiguredError(RuntimeError):
    """Raised at startup when schema initialization is requested without a key store.

    Propagated to the FastAPI lifespan so the process refuses to start.
    """

    def __init__(
        self,
        message: str = "ApiKeyAuthProvider requires a registered key store",
    ) -> None:
        super().__init__(message)
        self.message = message


# Reason strings shared by the verifier, the extractor and the tests.
KEY_CANCELLED = "ApiKey has been cancelled"
KEY_EXPIRED = "ApiKey has expired"
OWNER_MISSING = "User for ApiKey does not exist"
REQUIRES_SECURE_CONNECTION = "Sending ApiKeys over insecure connection type not permitted"
