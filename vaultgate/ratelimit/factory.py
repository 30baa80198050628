"""Counter store factory: backend selection and initialization.

Backend selection (rate_limit.backend):
  memory → MemoryCounterStore (default; single worker process)
  sqlite → SQLiteCounterStore (shared by all workers on one host)

SQLiteCounterStore.initialize() raises RuntimeError on an incompatible schema;
the FastAPI lifespan propagates it and refuses startup.
"""

from __future__ import annotations

from vaultgate.config import RateLimitConfig
from vaultgate.ratelimit.memory import MemoryCounterStore
from vaultgate.ratelimit.protocol import CounterStore
from vaultgate.ratelimit.sqlite_backend import SQLiteCounterStore
from vaultgate.utils.logger import get_logger

logger = get_logger(__name__)


async def create_counter_store(config: RateLimitConfig) -> CounterStore:
    """Create and initialize the configured counter store."""
    if config.backend == "sqlite":
        store = SQLiteCounterStore(db_path=config.path)
        await store.initialize()
        logger.info("counter_store_selected", backend="SQLiteCounterStore", db_path=config.path)
        return store

    logger.info(
        "counter_store_selected",
        backend="MemoryCounterStore",
        max_windows=config.max_windows,
    )
    return MemoryCounterStore(max_windows=config.max_windows)
