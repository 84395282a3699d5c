"""ApiKey record — the sole persisted entity of the key store.

Lifecycle:
  - Created in one batch at account registration (or via direct issuance).
  - The only mutation afterwards is setting ``cancelled_at`` (revocation).
  - Never deleted, never re-enabled. ``expires_at`` is fixed at creation and
    evaluated, not mutated, during verification.

``notes``, ``ref_id``, ``ref_id_str`` and ``meta`` are caller annotations with
no effect on verification.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


@dataclass
class ApiKey:
    """One issued API key.

    ``token`` is the secret credential and is globally unique (UNIQUE index in
    the store). ``id`` is None until the store assigns it on insert.
    """

    owner_id: str
    """Identifier of the account this key authenticates as."""
    environment: str
    """Deployment partition tag, e.g. 'Live' or 'Test'."""
    key_type: str
    """Intended-use partition tag, e.g. 'ApiKey'."""
    token: str
    """Secret credential string — base-62 by default."""
    created_at: datetime
    """UTC issuance time. Immutable."""

    id: Optional[int] = None
    expires_at: Optional[datetime] = None
    """Once passed, the key is permanently unusable."""
    cancelled_at: Optional[datetime] = None
    """Once set, the key is permanently unusable."""
    notes: Optional[str] = None
    ref_id: Optional[int] = None
    ref_id_str: Optional[str] = None
    meta: dict[str, str] = field(default_factory=dict)

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None

    def is_expired(self, now: datetime) -> bool:
        """True once ``now`` is strictly past ``expires_at``.

        A key whose expiry equals ``now`` is still valid.
        """
        if self.expires_at is None:
            return False
        return as_utc(now) > as_utc(self.expires_at)


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so comparisons never mix aware/naive."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
