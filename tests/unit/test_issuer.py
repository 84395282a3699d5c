"""Unit tests for latchkey/auth/issuer.py — ApiKeyIssuer.

Covers:
  - Cardinality: |environments| × |key_types| records per registration
  - Issuance order: environments outer, key types inner
  - One insert_batch() per registration; a collision persists nothing
  - RecordMutator applied before persistence, token change rejected
  - AccountRegistered subscription via the EventBus
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from itertools import count
from unittest.mock import AsyncMock

import pytest

from latchkey.auth.events import AccountRegistered, EventBus
from latchkey.auth.issuer import ApiKeyIssuer
from latchkey.models.api_key import ApiKey
from latchkey.store.protocol import DuplicateTokenError

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
_BASE62_22_RE = re.compile(r"^[0-9A-Za-z]{22}$")


class _SequentialTokens:
    """Deterministic TokenGenerator for tests."""

    def __init__(self) -> None:
        self._n = count(1)
        self.calls: list[tuple[str, str, int]] = []

    def generate(self, environment: str, key_type: str, size_bytes: int) -> str:
        self.calls.append((environment, key_type, size_bytes))
        return f"{environment}-{key_type}-{next(self._n)}"


class _FixedToken:
    def generate(self, environment: str, key_type: str, size_bytes: int) -> str:
        return "always-the-same"


def _clock() -> datetime:
    return FIXED_NOW


class TestConstruction:
    def test_empty_environments_rejected(self, key_store) -> None:
        with pytest.raises(ValueError):
            ApiKeyIssuer(key_store, environments=[], key_types=["ApiKey"])

    def test_empty_key_types_rejected(self, key_store) -> None:
        with pytest.raises(ValueError):
            ApiKeyIssuer(key_store, environments=["Live"], key_types=[])

    def test_non_positive_size_rejected(self, key_store) -> None:
        with pytest.raises(ValueError):
            ApiKeyIssuer(key_store, key_size_bytes=0)


class TestIssueForOwner:
    async def test_single_key_defaults(self, key_store) -> None:
        """One env × one type × 16 bytes → one fresh base-62 record."""
        issuer = ApiKeyIssuer(
            key_store, environments=["Live"], key_types=["ApiKey"], key_size_bytes=16
        )

        keys = await issuer.issue_for_owner("U1")

        assert len(keys) == 1
        stored = await key_store.list_by_owner("U1")
        assert len(stored) == 1
        record = stored[0]
        assert _BASE62_22_RE.match(record.token)
        assert record.environment == "Live"
        assert record.key_type == "ApiKey"
        assert record.created_at is not None
        assert record.expires_at is None
        assert record.cancelled_at is None

    async def test_cross_product_cardinality_and_distinct_tokens(self, key_store) -> None:
        issuer = ApiKeyIssuer(
            key_store, environments=["Live", "Test"], key_types=["ApiKey", "Internal"]
        )

        keys = await issuer.issue_for_owner("U1")

        assert len(keys) == 4
        assert len({k.token for k in keys}) == 4
        assert len(await key_store.list_by_owner("U1")) == 4

    async def test_order_environments_outer(self, key_store) -> None:
        tokens = _SequentialTokens()
        issuer = ApiKeyIssuer(
            key_store,
            environments=["Live", "Test"],
            key_types=["ApiKey", "Internal"],
            key_size_bytes=24,
            token_generator=tokens,
        )

        keys = await issuer.issue_for_owner("U1")

        assert [(k.environment, k.key_type) for k in keys] == [
            ("Live", "ApiKey"),
            ("Live", "Internal"),
            ("Test", "ApiKey"),
            ("Test", "Internal"),
        ]
        assert all(size == 24 for _, _, size in tokens.calls)

    async def test_shared_created_at(self) -> None:
        store = AsyncMock()
        issuer = ApiKeyIssuer(
            store, environments=["Live", "Test"], key_types=["ApiKey"], clock=_clock
        )

        keys = await issuer.issue_for_owner("U1")

        assert all(k.created_at == FIXED_NOW for k in keys)

    async def test_single_insert_batch_call(self) -> None:
        store = AsyncMock()
        issuer = ApiKeyIssuer(
            store, environments=["Live", "Test"], key_types=["ApiKey", "Internal"]
        )

        await issuer.issue_for_owner("U1")

        store.insert_batch.assert_awaited_once()
        (batch,), _ = store.insert_batch.call_args
        assert len(batch) == 4

    async def test_collision_persists_nothing_and_is_not_retried(self, key_store) -> None:
        issuer = ApiKeyIssuer(
            key_store,
            environments=["Live", "Test"],
            key_types=["ApiKey"],
            token_generator=_FixedToken(),
        )

        with pytest.raises(DuplicateTokenError):
            await issuer.issue_for_owner("U1")

        assert await key_store.list_by_owner("U1") == []


class TestRecordMutator:
    async def test_mutator_runs_before_persistence(self, key_store) -> None:
        class AnnotateAndExpire:
            def mutate(self, candidate: ApiKey) -> ApiKey:
                candidate.notes = f"{candidate.environment} key"
                candidate.meta = {"source": "signup"}
                candidate.expires_at = FIXED_NOW + timedelta(days=365)
                return candidate

        issuer = ApiKeyIssuer(
            key_store,
            environments=["Live"],
            key_types=["ApiKey"],
            record_mutator=AnnotateAndExpire(),
        )

        await issuer.issue_for_owner("U1")

        (stored,) = await key_store.list_by_owner("U1")
        assert stored.notes == "Live key"
        assert stored.meta == {"source": "signup"}
        assert stored.expires_at == FIXED_NOW + timedelta(days=365)

    async def test_in_place_mutator_returning_none(self, key_store) -> None:
        class InPlace:
            def mutate(self, candidate: ApiKey):
                candidate.notes = "tagged"

        issuer = ApiKeyIssuer(
            key_store, environments=["Live"], key_types=["ApiKey"], record_mutator=InPlace()
        )

        (key,) = await issuer.issue_for_owner("U1")
        assert key.notes == "tagged"

    async def test_mutator_may_not_change_token(self) -> None:
        class Tamper:
            def mutate(self, candidate: ApiKey) -> ApiKey:
                candidate.token = "chosen-by-mutator"
                return candidate

        store = AsyncMock()
        issuer = ApiKeyIssuer(
            store, environments=["Live"], key_types=["ApiKey"], record_mutator=Tamper()
        )

        with pytest.raises(ValueError):
            await issuer.issue_for_owner("U1")
        store.insert_batch.assert_not_awaited()


class TestDirectIssue:
    async def test_issue_single_key(self, key_store) -> None:
        issuer = ApiKeyIssuer(key_store, environments=["Live", "Test"], key_types=["ApiKey"])
        expires = FIXED_NOW + timedelta(days=7)

        key = await issuer.issue(
            "U1", "Test", "ApiKey", expires_at=expires, notes="ci", ref_id=3, meta={"a": "b"}
        )

        assert key.id is not None
        stored = await key_store.find_by_token(key.token)
        assert stored.environment == "Test"
        assert stored.expires_at == expires
        assert stored.notes == "ci"
        assert stored.ref_id == 3
        assert stored.meta == {"a": "b"}

    async def test_unknown_environment(self, key_store) -> None:
        issuer = ApiKeyIssuer(key_store, environments=["Live"], key_types=["ApiKey"])
        with pytest.raises(ValueError, match="environment"):
            await issuer.issue("U1", "Staging", "ApiKey")

    async def test_unknown_key_type(self, key_store) -> None:
        issuer = ApiKeyIssuer(key_store, environments=["Live"], key_types=["ApiKey"])
        with pytest.raises(ValueError, match="key type"):
            await issuer.issue("U1", "Live", "Admin")


class TestEventSubscription:
    async def test_account_registered_triggers_issuance(self, key_store) -> None:
        bus = EventBus()
        issuer = ApiKeyIssuer(key_store, environments=["Live", "Test"], key_types=["ApiKey"])
        bus.subscribe(AccountRegistered, issuer.on_registered)

        await bus.publish(AccountRegistered(owner_id="U7"))

        assert len(await key_store.list_by_owner("U7")) == 2

    async def test_issuance_failure_reaches_publisher(self, key_store) -> None:
        bus = EventBus()
        issuer = ApiKeyIssuer(
            key_store,
            environments=["Live", "Test"],
            key_types=["ApiKey"],
            token_generator=_FixedToken(),
        )
        bus.subscribe(AccountRegistered, issuer.on_registered)

        with pytest.raises(DuplicateTokenError):
            await bus.publish(AccountRegistered(owner_id="U7"))
