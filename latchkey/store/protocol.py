"""ApiKeyStore Protocol — the persistence contract for ApiKey records.

The verifier and issuer depend only on this interface. LocalSQLiteKeyStore
(store/sqlite_store.py) is the shipped implementation; tests may substitute
AsyncMock-backed fakes.

Contract:
  - find_by_token()  — exact match, backed by a UNIQUE index on token
  - insert_batch()   — all-or-nothing; DuplicateTokenError leaves no row behind
  - ensure_schema()  — idempotent, never destroys data
  - cancel()         — sets cancelled_at once; there is no inverse operation
  - list_by_owner()  — every key owned by an account, oldest first
  - health_check()   — True if the backend is reachable; must not raise
  - close()          — release resources; safe to call more than once

Persistence faults are never retried here — they propagate to the caller.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, runtime_checkable

from latchkey.models.api_key import ApiKey


class DuplicateTokenError(Exception):
    """Raised by insert_batch() when a token collides with an existing record.

    The whole batch is rolled back before this is raised.
    """

    code: str = "duplicate_token"

    def __init__(self, message: str = "ApiKey token already exists") -> None:
        super().__init__(message)
        self.message = message


@runtime_checkable
class ApiKeyStore(Protocol):
    """Pluggable key store interface. All methods are async."""

    async def ensure_schema(self) -> None:
        """Create the api_keys table and its token index if absent."""
        ...

    async def find_by_token(self, token: str) -> Optional[ApiKey]:
        """Return the ApiKey whose token equals ``token``, or None."""
        ...

    async def insert_batch(self, keys: Sequence[ApiKey]) -> list[int]:
        """Persist ``keys`` atomically and return their assigned ids (input order)."""
        ...

    async def cancel(self, key_id: int, owner_id: Optional[str] = None) -> bool:
        """Set cancelled_at on an uncancelled key. Returns False if nothing changed."""
        ...

    async def list_by_owner(self, owner_id: str) -> list[ApiKey]:
        """Return all keys for ``owner_id`` (cancelled and expired included)."""
        ...

    async def health_check(self) -> bool:
        """Returns True if the store is operational. Must not raise."""
        ...

    async def close(self) -> None:
        """Release any held resources. Idempotent."""
        ...
