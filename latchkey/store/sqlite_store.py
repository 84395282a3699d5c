"""LocalSQLiteKeyStore — aiosqlite-based ApiKey store.

Uses aiosqlite EXCLUSIVELY — no synchronous sqlite3 calls.

Features:
  - One short-lived connection per operation (``async with aiosqlite.connect``);
    nothing is held open between calls or across requests
  - WAL mode so lookups never wait behind an issuance batch
  - UNIQUE index on token — concurrent issuance cannot produce duplicates
  - insert_batch(): single transaction, rolled back on any IntegrityError
  - Schema version guard: PRAGMA user_version=1 — RuntimeError on mismatch
  - os.chmod(db_path, 0o600) on every ensure_schema() — tokens are secrets
  - No in-process cache: every find_by_token() hits the database, so a
    cancellation is visible to the very next lookup
"""

from __future__ import annotations

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence, Union

import aiosqlite

from latchkey.models.api_key import ApiKey, utc_now
from latchkey.store.protocol import DuplicateTokenError
from latchkey.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Schema DDL ───────────────────────────────────────────────────────────────

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS api_keys (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_id        TEXT NOT NULL,
    environment     TEXT NOT NULL,
    key_type        TEXT NOT NULL,
    token           TEXT NOT NULL,
    created_at      TEXT NOT NULL,
    expires_at      TEXT,
    cancelled_at    TEXT,
    notes           TEXT,
    ref_id          INTEGER,
    ref_id_str      TEXT,
    meta            TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS uidx_api_keys_token
    ON api_keys(token);

CREATE INDEX IF NOT EXISTS idx_api_keys_owner
    ON api_keys(owner_id);
"""

_SCHEMA_VERSION = 1

_INSERT_SQL = (
    "INSERT INTO api_keys (owner_id, environment, key_type, token, created_at, "
    "expires_at, cancelled_at, notes, ref_id, ref_id_str, meta) "
    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
)

_SELECT_COLUMNS = (
    "id, owner_id, environment, key_type, token, created_at, expires_at, "
    "cancelled_at, notes, ref_id, ref_id_str, meta"
)


# ─── Row (de)serialisers ──────────────────────────────────────────────────────


def _to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_text(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_api_key(row: aiosqlite.Row) -> ApiKey:
    """Convert an aiosqlite Row to an ApiKey.

    Field mapping:
      *_at  : ISO 8601 string → datetime.fromisoformat()
      meta  : JSON string     → dict[str, str] ({} when NULL)
    """
    meta_raw: Optional[str] = row["meta"]
    return ApiKey(
        id=row["id"],
        owner_id=row["owner_id"],
        environment=row["environment"],
        key_type=row["key_type"],
        token=row["token"],
        created_at=datetime.fromisoformat(row["created_at"]),
        expires_at=_from_text(row["expires_at"]),
        cancelled_at=_from_text(row["cancelled_at"]),
        notes=row["notes"],
        ref_id=row["ref_id"],
        ref_id_str=row["ref_id_str"],
        meta=json.loads(meta_raw) if meta_raw else {},
    )


def _api_key_params(key: ApiKey) -> tuple:
    return (
        key.owner_id,
        key.environment,
        key.key_type,
        key.token,
        key.created_at.isoformat(),
        _to_text(key.expires_at),
        _to_text(key.cancelled_at),
        key.notes,
        key.ref_id,
        key.ref_id_str,
        json.dumps(key.meta) if key.meta else None,
    )


# ─── LocalSQLiteKeyStore ──────────────────────────────────────────────────────


class LocalSQLiteKeyStore:
    """Async SQLite ApiKey store.

    Usage:
        store = LocalSQLiteKeyStore("~/.latchkey/keys.db")
        await store.ensure_schema()          # idempotent — call on every start
        ids = await store.insert_batch(keys) # all-or-nothing
        key = await store.find_by_token(token)
    """

    def __init__(self, db_path: Union[str, Path] = "~/.latchkey/keys.db") -> None:
        self._db_path: str = os.path.expanduser(str(db_path))

    @property
    def db_path(self) -> str:
        return self._db_path

    # ── Schema ────────────────────────────────────────────────────────────────

    async def ensure_schema(self) -> None:
        """Create the api_keys table + indexes if absent.

        Steps:
          1. Create parent directory if absent
          2. Enable WAL: PRAGMA journal_mode=WAL
          3. Read PRAGMA user_version
             - 0: fresh DB → create schema, set user_version=1
             - 1: compatible schema → re-run CREATE ... IF NOT EXISTS (no-op)
             - other: RuntimeError — refuse to touch an unknown layout
          4. chmod 0600

        Raises:
            RuntimeError: If PRAGMA user_version is neither 0 nor 1.
        """
        parent_dir = os.path.dirname(self._db_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        async with aiosqlite.connect(self._db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL;")

            async with db.execute("PRAGMA user_version;") as cursor:
                row = await cursor.fetchone()
            current_version: int = row[0] if row else 0

            if current_version not in (0, _SCHEMA_VERSION):
                raise RuntimeError(
                    f"Unsupported key store schema version: {current_version}. "
                    f"Expected {_SCHEMA_VERSION} in {self._db_path}."
                )

            await db.executescript(_CREATE_SCHEMA_SQL)
            if current_version == 0:
                await db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION};")
            await db.commit()

        os.chmod(self._db_path, 0o600)

        logger.info(
            "key_store_schema_ready",
            db_path=self._db_path,
            schema_version=_SCHEMA_VERSION,
            created=current_version == 0,
        )

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def find_by_token(self, token: str) -> Optional[ApiKey]:
        """Exact-match lookup on the unique token index."""
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"SELECT {_SELECT_COLUMNS} FROM api_keys WHERE token = ?",
                (token,),
            ) as cursor:
                row = await cursor.fetchone()

        return _row_to_api_key(row) if row is not None else None

    async def list_by_owner(self, owner_id: str) -> list[ApiKey]:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"SELECT {_SELECT_COLUMNS} FROM api_keys WHERE owner_id = ? ORDER BY id",
                (owner_id,),
            ) as cursor:
                rows = await cursor.fetchall()

        return [_row_to_api_key(row) for row in rows]

    # ── Writes ────────────────────────────────────────────────────────────────

    async def insert_batch(self, keys: Sequence[ApiKey]) -> list[int]:
        """Insert every key in one transaction.

        On success each ApiKey.id is set to its assigned rowid and the ids are
        returned in input order. On a token collision the transaction is
        rolled back — no record from the batch is persisted — and
        DuplicateTokenError is raised. Other database errors propagate as-is.
        """
        if not keys:
            return []

        ids: list[int] = []
        async with aiosqlite.connect(self._db_path) as db:
            try:
                for key in keys:
                    cursor = await db.execute(_INSERT_SQL, _api_key_params(key))
                    ids.append(cursor.lastrowid)
                await db.commit()
            except aiosqlite.IntegrityError as exc:
                await db.rollback()
                logger.warning(
                    "ApiKey batch insert rolled back",
                    batch_size=len(keys),
                    error=str(exc),
                )
                if "token" in str(exc):
                    raise DuplicateTokenError() from exc
                raise

        for key, key_id in zip(keys, ids):
            key.id = key_id

        logger.debug("ApiKey batch inserted", batch_size=len(keys), ids=ids)
        return ids

    async def cancel(self, key_id: int, owner_id: Optional[str] = None) -> bool:
        """Set cancelled_at on an uncancelled key.

        Already-cancelled keys keep their original cancellation time. When
        ``owner_id`` is given, keys owned by anyone else are left untouched.
        """
        sql = "UPDATE api_keys SET cancelled_at = ? WHERE id = ? AND cancelled_at IS NULL"
        params: tuple = (utc_now().isoformat(), key_id)
        if owner_id is not None:
            sql += " AND owner_id = ?"
            params = params + (owner_id,)

        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute(sql, params)
            changed = cursor.rowcount
            await db.commit()

        if changed > 0:
            logger.info("ApiKey cancelled", key_id=key_id, owner_id=owner_id)
            return True

        logger.debug("cancel: no matching uncancelled key", key_id=key_id, owner_id=owner_id)
        return False

    # ── Health ────────────────────────────────────────────────────────────────

    async def health_check(self) -> bool:
        """SELECT 1 round-trip. Never raises."""
        try:
            async with aiosqlite.connect(self._db_path) as db:
                async with db.execute("SELECT 1") as cursor:
                    row = await cursor.fetchone()
            return row is not None and row[0] == 1
        except Exception as exc:
            logger.warning("Key store health check failed", error=str(exc))
            return False

    async def close(self) -> None:
        """No-op: connections are opened and closed per operation."""
        logger.debug("key_store_closed", db_path=self._db_path)
