"""UserAuth — the account an API key authenticates as."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class UserAuth:
    """Account record resolved in verifier stage 4 (owner resolution).

    ``locked_at`` set means the account is locked and every key it owns is
    refused in stage 5, even if the key itself is valid.
    """

    id: str
    user_name: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: Optional[datetime] = None
    locked_at: Optional[datetime] = None

    @property
    def is_locked(self) -> bool:
        return self.locked_at is not None
