"""Key store factory: backend selection and initialization.

Backend selection (keys.backend):
  sqlite → SQLiteKeyStore at keys.path (default ~/.vaultgate/keys.db)
  memory → InMemoryKeyStore (keys vanish on restart; tests and demos only)

SQLiteKeyStore.initialize() raises RuntimeError if PRAGMA user_version is
incompatible. The FastAPI lifespan propagates it and refuses startup.
"""

from __future__ import annotations

from vaultgate.auth.sqlite_store import SQLiteKeyStore
from vaultgate.auth.store import InMemoryKeyStore, KeyStore
from vaultgate.config import KeyStoreConfig
from vaultgate.utils.logger import get_logger

logger = get_logger(__name__)


async def create_key_store(config: KeyStoreConfig) -> KeyStore:
    """Create and initialize the configured key store."""
    if config.backend == "memory":
        logger.warning(
            "key_store_selected",
            backend="InMemoryKeyStore",
            note="issued keys are lost on restart",
        )
        return InMemoryKeyStore()

    store = SQLiteKeyStore(db_path=config.path)
    await store.initialize()
    logger.info("key_store_selected", backend="SQLiteKeyStore", db_path=store.db_path)
    return store
