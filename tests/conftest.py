"""Root test configuration for Latchkey.

Points LATCHKEY_CONFIG at a path that does not exist and clears the other
LATCHKEY_* overrides so that a developer's own ``.latchkey/config.yaml`` or
environment never leaks into the suite. Tests that need a config file write
one under ``tmp_path`` and pass it explicitly.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pytest

from latchkey.auth.users import LocalSQLiteUserAuthRepository
from latchkey.models.api_key import ApiKey
from latchkey.store.sqlite_store import LocalSQLiteKeyStore

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def isolate_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep config discovery away from the developer's files."""
    monkeypatch.setenv("LATCHKEY_CONFIG", str(tmp_path / "no-such-config.yaml"))
    monkeypatch.delenv("LATCHKEY_PORT", raising=False)
    monkeypatch.delenv("LATCHKEY_KEYS_DB_PATH", raising=False)
    monkeypatch.delenv("LATCHKEY_REQUIRE_SECURE_CONNECTION", raising=False)
    monkeypatch.setattr(
        "latchkey.config.DEFAULT_CONFIG_PATHS",
        [str(tmp_path / "cwd" / "config.yaml"), str(tmp_path / "home" / "config.yaml")],
    )


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Reset the in-memory rate limiter storage between tests.

    Prevents test-to-test rate limit bleed where multiple tests hitting the
    same endpoint within the same minute would trigger a 429.
    """
    from latchkey.auth.limiter import limiter

    limiter._storage.reset()


@pytest.fixture
async def key_store(tmp_path: Path) -> LocalSQLiteKeyStore:
    store = LocalSQLiteKeyStore(tmp_path / "keys.db")
    await store.ensure_schema()
    return store


@pytest.fixture
async def users(tmp_path: Path) -> LocalSQLiteUserAuthRepository:
    repo = LocalSQLiteUserAuthRepository(tmp_path / "keys.db")
    await repo.ensure_schema()
    return repo


def make_key(
    token: str,
    owner_id: str = "1",
    environment: str = "Live",
    key_type: str = "ApiKey",
    expires_at: Optional[datetime] = None,
    cancelled_at: Optional[datetime] = None,
) -> ApiKey:
    """Build an unsaved ApiKey with sensible defaults."""
    return ApiKey(
        owner_id=owner_id,
        environment=environment,
        key_type=key_type,
        token=token,
        created_at=FIXED_NOW,
        expires_at=expires_at,
        cancelled_at=cancelled_at,
    )


@pytest.fixture
def api_key_factory():
    """Factory fixture wrapping make_key()."""
    return make_key
