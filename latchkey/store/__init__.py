"""Latchkey key store package.

    from latchkey.store import ApiKeyStore, LocalSQLiteKeyStore, create_key_store

Layout:
    protocol.py      — ApiKeyStore Protocol + DuplicateTokenError
    sqlite_store.py  — LocalSQLiteKeyStore (aiosqlite, WAL, unique token index)
    factory.py       — create_key_store() — store construction from Config
"""

from latchkey.store.factory import create_key_store
from latchkey.store.protocol import ApiKeyStore, DuplicateTokenError
from latchkey.store.sqlite_store import LocalSQLiteKeyStore

__all__ = [
    "ApiKeyStore",
    "DuplicateTokenError",
    "LocalSQLiteKeyStore",
    "create_key_store",
]
