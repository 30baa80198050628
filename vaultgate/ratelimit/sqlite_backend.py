"""SQLiteCounterStore: aiosqlite-based fixed-window counters.

Shares counters between every worker process on one host (all open the same
file). Each hit() is ONE statement:

    INSERT ... ON CONFLICT(identity) DO UPDATE SET ... RETURNING ...

so the read, the admit-or-deny decision and the write happen inside a single
SQLite write transaction. No read-modify-write round trip exists for two
requests to race through. SET expressions read the pre-update row, which is
what lets ``admitted`` be computed from the old count.

Requires SQLite >= 3.35 (RETURNING), bundled with every supported CPython.

SQLite serialises writers database-wide, so hits for different identities
queue behind each other for the duration of one statement. The lock is never
held across an await in application code.
"""

from __future__ import annotations

import os
import sqlite3
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import aiosqlite

from vaultgate.errors import StoreUnavailableError
from vaultgate.ratelimit.models import WindowState
from vaultgate.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Schema DDL ───────────────────────────────────────────────────────────────

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS rate_limit_windows (
    identity        TEXT PRIMARY KEY,
    window_start    REAL NOT NULL,
    count           INTEGER NOT NULL,
    admitted        INTEGER NOT NULL
);
"""

_SCHEMA_VERSION = 1

_HIT_SQL = """
INSERT INTO rate_limit_windows (identity, window_start, count, admitted)
VALUES (:identity, :now, 1, 1)
ON CONFLICT(identity) DO UPDATE SET
    admitted = CASE
        WHEN :now >= window_start + :window THEN 1
        WHEN count < :limit THEN 1
        ELSE 0
    END,
    count = CASE
        WHEN :now >= window_start + :window THEN 1
        WHEN count < :limit THEN count + 1
        ELSE count
    END,
    window_start = CASE
        WHEN :now >= window_start + :window THEN :now
        ELSE window_start
    END
RETURNING window_start, count, admitted
"""


class SQLiteCounterStore:
    """Async SQLite counter store. Long-lived connection, WAL mode.

    Usage:
        store = SQLiteCounterStore("~/.vaultgate/ratelimit.db")
        await store.initialize()
        state = await store.hit("01HZ...", limit=60, window_seconds=60, now=time.time())
        await store.close()
    """

    def __init__(self, db_path: str = "~/.vaultgate/ratelimit.db") -> None:
        self._db_path: str = os.path.expanduser(db_path)
        self._db: Optional[aiosqlite.Connection] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Open the connection and create/verify the schema.

        Raises:
            RuntimeError: If PRAGMA user_version is neither 0 nor 1.
        """
        parent_dir = os.path.dirname(self._db_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        self._db = await aiosqlite.connect(self._db_path)
        await self._db.execute("PRAGMA journal_mode=WAL;")

        cursor = await self._db.execute("PRAGMA user_version;")
        row = await cursor.fetchone()
        current_version: int = row[0] if row else 0

        if current_version == 0:
            await self._db.executescript(_CREATE_SCHEMA_SQL)
            await self._db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION};")
            await self._db.commit()
            logger.info("counter_store_schema_created", db_path=self._db_path)
        elif current_version != _SCHEMA_VERSION:
            await self._db.close()
            self._db = None
            raise RuntimeError(
                f"Unsupported rate limit database schema version: {current_version}. "
                f"Delete {self._db_path} to reset (counters are ephemeral)."
            )

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.debug("counter_store_closed", db_path=self._db_path)

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[aiosqlite.Connection]:
        if self._db is None:
            raise StoreUnavailableError("Counter store not initialized")
        try:
            yield self._db
        except (sqlite3.Error, ValueError, OSError) as exc:
            logger.error("counter_store_error", error=str(exc), error_type=type(exc).__name__)
            raise StoreUnavailableError(f"Counter store error: {type(exc).__name__}") from exc

    # ── CounterStore Protocol Methods ─────────────────────────────────────────

    async def hit(
        self, identity: str, limit: int, window_seconds: float, now: float
    ) -> WindowState:
        async with self._connection() as db:
            async with db.execute(
                _HIT_SQL,
                {"identity": identity, "now": now, "window": window_seconds, "limit": limit},
            ) as cursor:
                row = await cursor.fetchone()
            await db.commit()
        if row is None:
            raise StoreUnavailableError("Counter store returned no row")
        window_start, count, admitted = row
        return WindowState(identity, float(window_start), int(count), bool(admitted))

    async def peek(self, identity: str) -> Optional[WindowState]:
        async with self._connection() as db:
            async with db.execute(
                "SELECT window_start, count FROM rate_limit_windows WHERE identity = ?",
                (identity,),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return WindowState(identity, float(row[0]), int(row[1]))

    async def reset(self, identity: str) -> None:
        async with self._connection() as db:
            await db.execute("DELETE FROM rate_limit_windows WHERE identity = ?", (identity,))
            await db.commit()

    async def prune(self, now: float, window_seconds: float) -> int:
        async with self._connection() as db:
            cursor = await db.execute(
                "DELETE FROM rate_limit_windows WHERE window_start + ? <= ?",
                (window_seconds, now),
            )
            await db.commit()
            count: int = cursor.rowcount
        if count > 0:
            logger.info("rate_limit_windows_pruned", deleted_count=count)
        return count

    async def health_check(self) -> bool:
        try:
            async with self._connection() as db:
                await db.execute("SELECT 1")
            return True
        except StoreUnavailableError:
            return False
