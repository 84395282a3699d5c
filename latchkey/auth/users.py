"""Account repository used for owner resolution and registration.

The verifier needs two things from the account layer:
  - get_user_auth(owner_id) — stage 4 (owner resolution)
  - is_account_locked(user) — stage 5 (lock check)

The registration endpoint additionally needs create_user_auth(). The
LocalSQLiteUserAuthRepository keeps accounts in the same SQLite file as the
key store, one short-lived connection per operation.
"""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol, Union, runtime_checkable

import aiosqlite

from latchkey.models.api_key import utc_now
from latchkey.models.user import UserAuth
from latchkey.utils.logger import get_logger

logger = get_logger(__name__)

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS user_auth (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    user_name       TEXT,
    email           TEXT,
    display_name    TEXT,
    first_name      TEXT,
    last_name       TEXT,
    created_at      TEXT NOT NULL,
    locked_at       TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS uidx_user_auth_user_name
    ON user_auth(user_name);

CREATE UNIQUE INDEX IF NOT EXISTS uidx_user_auth_email
    ON user_auth(email);
"""


class UserAlreadyExistsError(Exception):
    """Raised when a user_name or email is already registered.

    HTTP mapping: 409 Conflict
    """

    code: str = "user_exists"

    def __init__(self, message: str = "User name or email is already registered") -> None:
        super().__init__(message)
        self.message = message


@runtime_checkable
class UserAuthRepository(Protocol):
    """Account lookup contract consumed by the verifier."""

    async def get_user_auth(self, user_id: str) -> Optional[UserAuth]:
        ...

    async def is_account_locked(self, user: UserAuth) -> bool:
        ...


def _row_to_user(row: aiosqlite.Row) -> UserAuth:
    locked_at = row["locked_at"]
    return UserAuth(
        id=str(row["id"]),
        user_name=row["user_name"],
        email=row["email"],
        display_name=row["display_name"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        created_at=datetime.fromisoformat(row["created_at"]),
        locked_at=datetime.fromisoformat(locked_at) if locked_at else None,
    )


class LocalSQLiteUserAuthRepository:
    """aiosqlite-backed account store."""

    def __init__(self, db_path: Union[str, Path] = "~/.latchkey/keys.db") -> None:
        self._db_path: str = os.path.expanduser(str(db_path))

    async def ensure_schema(self) -> None:
        parent_dir = os.path.dirname(self._db_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)
        async with aiosqlite.connect(self._db_path) as db:
            await db.executescript(_CREATE_SCHEMA_SQL)
            await db.commit()
        logger.debug("user_auth schema ready", db_path=self._db_path)

    async def create_user_auth(
        self,
        user_name: Optional[str] = None,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> UserAuth:
        """Insert and commit a new account.

        The row is durable when this returns — the registration flow
        publishes AccountRegistered only afterwards.

        Raises:
            ValueError: If neither user_name nor email is given.
            UserAlreadyExistsError: On a duplicate user_name or email.
        """
        if not user_name and not email:
            raise ValueError("Either user_name or email is required")

        created_at = utc_now()
        async with aiosqlite.connect(self._db_path) as db:
            try:
                cursor = await db.execute(
                    "INSERT INTO user_auth (user_name, email, display_name, first_name, "
                    "last_name, created_at) VALUES (?, ?, ?, ?, ?, ?)",
                    (user_name, email, display_name, first_name, last_name, created_at.isoformat()),
                )
                await db.commit()
            except aiosqlite.IntegrityError as exc:
                raise UserAlreadyExistsError() from exc
            user_id = str(cursor.lastrowid)

        logger.info("Account created", user_id=user_id, user_name=user_name)
        return UserAuth(
            id=user_id,
            user_name=user_name,
            email=email,
            display_name=display_name,
            first_name=first_name,
            last_name=last_name,
            created_at=created_at,
        )

    async def get_user_auth(self, user_id: str) -> Optional[UserAuth]:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM user_auth WHERE id = ?", (user_id,)
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_user(row) if row is not None else None

    async def is_account_locked(self, user: UserAuth) -> bool:
        return user.is_locked

    async def lock_account(self, user_id: str) -> bool:
        """Lock an account. Returns False if it does not exist or is already locked."""
        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute(
                "UPDATE user_auth SET locked_at = ? WHERE id = ? AND locked_at IS NULL",
                (utc_now().isoformat(), user_id),
            )
            changed = cursor.rowcount
            await db.commit()
        if changed > 0:
            logger.info("Account locked", user_id=user_id)
        return changed > 0
