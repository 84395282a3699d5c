"""ApiKeyIssuer — creates API keys for newly registered accounts.

Registration flow:
  1. Account row committed by the registration endpoint
  2. EventBus.publish(AccountRegistered(owner_id))
  3. on_registered() → issue_for_owner(owner_id)
  4. One key per (environment, key_type) — environments outer, key types inner
  5. Optional RecordMutator applied to each candidate (token must not change)
  6. ApiKeyStore.insert_batch() — every key for the registration, or none

Non-negotiables:
  - Exactly len(environments) × len(key_types) records per registration.
  - One insert_batch() call per registration — never per key.
  - No retry on DuplicateTokenError. At 16 bytes of entropy a collision is
    not a handled case; the error propagates to the registration caller.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, Sequence

from latchkey.auth.events import AccountRegistered
from latchkey.auth.tokens import Base62TokenGenerator, RecordMutator, TokenGenerator
from latchkey.constants import DEFAULT_ENVIRONMENTS, DEFAULT_KEY_SIZE_BYTES, DEFAULT_KEY_TYPES
from latchkey.models.api_key import ApiKey, utc_now
from latchkey.store.protocol import ApiKeyStore
from latchkey.utils.logger import get_logger

logger = get_logger(__name__)


class ApiKeyIssuer:
    """Generates and persists API keys."""

    def __init__(
        self,
        store: ApiKeyStore,
        environments: Sequence[str] = DEFAULT_ENVIRONMENTS,
        key_types: Sequence[str] = DEFAULT_KEY_TYPES,
        key_size_bytes: int = DEFAULT_KEY_SIZE_BYTES,
        token_generator: Optional[TokenGenerator] = None,
        record_mutator: Optional[RecordMutator] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if not environments:
            raise ValueError("At least one environment is required")
        if not key_types:
            raise ValueError("At least one key type is required")
        if key_size_bytes <= 0:
            raise ValueError(f"key_size_bytes must be positive, got {key_size_bytes}")

        self.store = store
        self.environments: tuple[str, ...] = tuple(environments)
        self.key_types: tuple[str, ...] = tuple(key_types)
        self.key_size_bytes = key_size_bytes
        self.token_generator: TokenGenerator = token_generator or Base62TokenGenerator()
        self.record_mutator = record_mutator
        self._clock = clock

    # ── Event handler ─────────────────────────────────────────────────────────

    async def on_registered(self, event: AccountRegistered) -> None:
        """AccountRegistered subscriber. Failures propagate to the publisher."""
        logger.debug("Issuing keys for new account", owner_id=event.owner_id, user_name=event.user_name)
        await self.issue_for_owner(event.owner_id)

    # ── Issuance ──────────────────────────────────────────────────────────────

    async def issue_for_owner(self, owner_id: str) -> list[ApiKey]:
        """Create one key per (environment, key_type) and persist them atomically.

        Returns:
            The persisted ApiKey records (ids assigned), in issuance order.

        Raises:
            DuplicateTokenError: On a token collision — nothing is persisted.
            ValueError: If the record mutator changed a token.
        """
        now = self._clock()
        keys = [
            self._build(owner_id, environment, key_type, now)
            for environment in self.environments
            for key_type in self.key_types
        ]

        await self.store.insert_batch(keys)

        logger.info(
            "ApiKeys issued for registration",
            owner_id=owner_id,
            count=len(keys),
            environments=list(self.environments),
            key_types=list(self.key_types),
        )
        return keys

    async def issue(
        self,
        owner_id: str,
        environment: str,
        key_type: str,
        expires_at: Optional[datetime] = None,
        notes: Optional[str] = None,
        ref_id: Optional[int] = None,
        ref_id_str: Optional[str] = None,
        meta: Optional[dict[str, str]] = None,
    ) -> ApiKey:
        """Issue a single key outside the registration flow.

        ``environment`` and ``key_type`` must belong to the configured sets.
        The record mutator still runs, after the explicit fields are applied.
        """
        if environment not in self.environments:
            raise ValueError(f"Unknown environment: {environment!r}")
        if key_type not in self.key_types:
            raise ValueError(f"Unknown key type: {key_type!r}")

        key = ApiKey(
            owner_id=owner_id,
            environment=environment,
            key_type=key_type,
            token=self.token_generator.generate(environment, key_type, self.key_size_bytes),
            created_at=self._clock(),
            expires_at=expires_at,
            notes=notes,
            ref_id=ref_id,
            ref_id_str=ref_id_str,
            meta=dict(meta or {}),
        )
        key = self._apply_mutator(key)
        await self.store.insert_batch([key])

        logger.info(
            "ApiKey issued",
            owner_id=owner_id,
            key_id=key.id,
            environment=environment,
            key_type=key_type,
        )
        return key

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _build(self, owner_id: str, environment: str, key_type: str, now: datetime) -> ApiKey:
        candidate = ApiKey(
            owner_id=owner_id,
            environment=environment,
            key_type=key_type,
            token=self.token_generator.generate(environment, key_type, self.key_size_bytes),
            created_at=now,
        )
        return self._apply_mutator(candidate)

    def _apply_mutator(self, candidate: ApiKey) -> ApiKey:
        if self.record_mutator is None:
            return candidate
        token = candidate.token
        mutated = self.record_mutator.mutate(candidate)
        if mutated is None:
            mutated = candidate
        if mutated.token != token:
            raise ValueError("RecordMutator must not change the ApiKey token")
        return mutated
