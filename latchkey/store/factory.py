"""Key store factory — builds the ApiKeyStore for a loaded Config.

Path preference:
  1. LATCHKEY_KEYS_DB_PATH environment variable (already folded into
     config.store.path by load_config())
  2. store.path from config.yaml
  3. ~/.latchkey/keys.db (default)

The factory only constructs the store. Schema creation belongs to the
provider's register() step, which honours apikey.init_schema.
"""

from __future__ import annotations

from latchkey.config import Config
from latchkey.store.protocol import ApiKeyStore
from latchkey.utils.logger import get_logger

logger = get_logger(__name__)


def create_key_store(config: Config) -> ApiKeyStore:
    """Create the key store described by ``config.store``.

    Returns:
        An ApiKeyStore ready for ensure_schema().
    """
    from latchkey.store.sqlite_store import LocalSQLiteKeyStore

    store = LocalSQLiteKeyStore(db_path=config.store.path)
    logger.info(
        "key_store_selected",
        backend="LocalSQLiteKeyStore",
        db_path=store.db_path,
    )
    return store
