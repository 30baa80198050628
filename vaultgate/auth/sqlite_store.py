"""SQLiteKeyStore: aiosqlite-based API key store (default backend).

Features:
  - Single long-lived connection (open in initialize(), close in close())
  - WAL mode: PRAGMA journal_mode=WAL: concurrent readers while writing
  - Schema version guard: PRAGMA user_version=1: RuntimeError on mismatch
  - os.chmod(db_path, 0o600) on every initialize() call
  - UNIQUE key_digest column: find_by_digest() is one indexed equality lookup,
    and a duplicate digest surfaces as KeyConflictError

Non-negotiables:
  - Plaintext secrets NEVER reach this module: records carry digest + last4 only
  - aiosqlite ONLY: no sqlite3 synchronous calls
  - Driver errors are translated: IntegrityError → KeyConflictError,
    everything else → StoreUnavailableError (no silent retries)
"""

from __future__ import annotations

import os
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional

import aiosqlite

from vaultgate.auth.store import ApiKeyRecord
from vaultgate.errors import KeyConflictError, StoreUnavailableError
from vaultgate.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Schema DDL ───────────────────────────────────────────────────────────────

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS api_keys (
    id              TEXT PRIMARY KEY,
    owner_name      TEXT NOT NULL,
    key_digest      TEXT NOT NULL UNIQUE,
    last4           TEXT NOT NULL,
    created_at      TEXT NOT NULL,
    revoked         INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_keys_created_at
    ON api_keys(created_at DESC);
"""

_SCHEMA_VERSION = 1

_SELECT_COLUMNS = "id, owner_name, key_digest, last4, created_at, revoked"


def _row_to_record(row: aiosqlite.Row) -> ApiKeyRecord:
    """Convert an aiosqlite Row to an ApiKeyRecord.

    created_at : ISO 8601 string → datetime.fromisoformat()
    revoked    : int (0/1)       → bool()
    """
    return ApiKeyRecord(
        id=row["id"],
        owner_name=row["owner_name"],
        digest=row["key_digest"],
        last4=row["last4"],
        created_at=datetime.fromisoformat(row["created_at"]),
        revoked=bool(row["revoked"]),
    )


# ─── SQLiteKeyStore ───────────────────────────────────────────────────────────


class SQLiteKeyStore:
    """Async SQLite key store using aiosqlite exclusively.

    Default path: ~/.vaultgate/keys.db
    Override via the keys.path config value or VAULTGATE_KEYS_DB_PATH,
    or pass db_path explicitly (used in tests).

    Usage:
        store = SQLiteKeyStore(db_path)
        await store.initialize()   # raises RuntimeError on schema version mismatch
        record = await store.find_by_digest(codec.digest(secret))
        await store.close()
    """

    def __init__(self, db_path: str = "~/.vaultgate/keys.db") -> None:
        self._db_path: str = os.path.expanduser(db_path)
        self._db: Optional[aiosqlite.Connection] = None

    @property
    def db_path(self) -> str:
        return self._db_path

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Open the connection, enable WAL mode, and create/verify the schema.

        Idempotent: safe to call on an existing database.

        Raises:
            RuntimeError: If PRAGMA user_version is neither 0 nor 1.
                          The FastAPI lifespan propagates this and refuses startup.
        """
        parent_dir = os.path.dirname(self._db_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("PRAGMA journal_mode=WAL;")

        cursor = await self._db.execute("PRAGMA user_version;")
        row = await cursor.fetchone()
        current_version: int = row[0] if row else 0

        if current_version == 0:
            await self._db.executescript(_CREATE_SCHEMA_SQL)
            await self._db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION};")
            await self._db.commit()
            logger.info(
                "key_store_schema_created",
                db_path=self._db_path,
                schema_version=_SCHEMA_VERSION,
            )
        elif current_version == _SCHEMA_VERSION:
            logger.info(
                "key_store_schema_ok",
                db_path=self._db_path,
                schema_version=current_version,
            )
        else:
            await self._db.close()
            self._db = None
            raise RuntimeError(
                f"Unsupported key store schema version: {current_version}. "
                f"Expected {_SCHEMA_VERSION}; move {self._db_path} aside to start fresh."
            )

        # Owner read/write only, regardless of umask at creation time.
        os.chmod(self._db_path, 0o600)

    async def close(self) -> None:
        """Close the aiosqlite connection gracefully."""
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.debug("key_store_closed", db_path=self._db_path)

    # ── Error translation ─────────────────────────────────────────────────────

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield the live connection, translating driver errors to store errors."""
        if self._db is None:
            raise StoreUnavailableError("Key store not initialized")
        try:
            yield self._db
        except sqlite3.IntegrityError as exc:
            raise KeyConflictError() from exc
        except (sqlite3.Error, ValueError, OSError) as exc:
            # aiosqlite raises ValueError when the connection thread is gone.
            logger.error("key_store_error", error=str(exc), error_type=type(exc).__name__)
            raise StoreUnavailableError(f"Key store error: {type(exc).__name__}") from exc

    # ── KeyStore Protocol Methods ─────────────────────────────────────────────

    async def insert(self, record: ApiKeyRecord) -> None:
        """Insert a new record. Duplicate digest or id → KeyConflictError."""
        async with self._connection() as db:
            await db.execute(
                "INSERT INTO api_keys (id, owner_name, key_digest, last4, created_at, revoked) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    record.owner_name,
                    record.digest,
                    record.last4,
                    record.created_at.isoformat(),
                    int(record.revoked),
                ),
            )
            await db.commit()

    async def find_by_digest(self, digest: str) -> Optional[ApiKeyRecord]:
        """Indexed equality lookup on the UNIQUE key_digest column."""
        async with self._connection() as db:
            async with db.execute(
                f"SELECT {_SELECT_COLUMNS} FROM api_keys WHERE key_digest = ?",
                (digest,),
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_record(row) if row is not None else None

    async def list_all(self) -> list[ApiKeyRecord]:
        """Return every record sorted by created_at DESC (newest first)."""
        async with self._connection() as db:
            async with db.execute(
                f"SELECT {_SELECT_COLUMNS} FROM api_keys ORDER BY created_at DESC, id DESC"
            ) as cursor:
                rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def mark_revoked(self, key_id: str) -> bool:
        """Set revoked=1. SQLite counts matched rows, so an already revoked key still returns True."""
        async with self._connection() as db:
            cursor = await db.execute(
                "UPDATE api_keys SET revoked = 1 WHERE id = ?",
                (key_id,),
            )
            await db.commit()
            return cursor.rowcount > 0

    async def health_check(self) -> bool:
        """Returns True if the connection is alive and queryable."""
        try:
            async with self._connection() as db:
                await db.execute("SELECT 1")
            return True
        except StoreUnavailableError:
            return False
