"""KeyStore Protocol + ApiKeyRecord dataclass + InMemoryKeyStore.

Layout:
    store.py       : ApiKeyRecord + KeyStore Protocol + InMemoryKeyStore
    sqlite_store.py: SQLiteKeyStore (aiosqlite, default backend)

The KeyStore contract is all the rest of the auth package depends on:

  insert(record)         : store a new record; KeyConflictError on duplicate digest/id
  find_by_digest(digest) : equality lookup, record or None
  list_all()             : every record, newest first (ownership scoping is the caller's job)
  mark_revoked(key_id)   : idempotent soft delete; True if the id exists

Infrastructure failures raise StoreUnavailableError. Implementations never
retry internally.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from vaultgate.errors import KeyConflictError
from vaultgate.utils.logger import get_logger

logger = get_logger(__name__)


# ─── ApiKeyRecord ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ApiKeyRecord:
    """One issued credential.

    The plaintext secret is never part of a record: only its digest and the
    display suffix. Records are never deleted; revocation is a one-way flag.
    """

    id: str
    """ULID assigned at creation. Immutable."""
    owner_name: str
    """Human label supplied at creation."""
    digest: str
    """SHA-256 hex digest of the full secret. Unique across the store."""
    last4: str
    """Last 4 characters of the plaintext secret (display only)."""
    created_at: datetime
    """UTC creation timestamp."""
    revoked: bool = False
    """Set to True at most once by revocation; never reset."""


# ─── KeyStore Protocol ────────────────────────────────────────────────────────


@runtime_checkable
class KeyStore(Protocol):
    """Persistence contract for API key records.

    Implementations: SQLiteKeyStore (default), InMemoryKeyStore.
    Selection via create_key_store() (auth/factory.py).
    """

    async def insert(self, record: ApiKeyRecord) -> None:
        """Persist a new record.

        Raises:
            KeyConflictError: digest or id already present.
            StoreUnavailableError: backing store failure.
        """
        ...

    async def find_by_digest(self, digest: str) -> Optional[ApiKeyRecord]:
        """Return the record whose digest equals ``digest``, or None."""
        ...

    async def list_all(self) -> list[ApiKeyRecord]:
        """Return every record, newest first."""
        ...

    async def mark_revoked(self, key_id: str) -> bool:
        """Set revoked=True. Returns True if the id exists (even if already revoked)."""
        ...

    async def health_check(self) -> bool:
        """Returns True if the store is operational. Must not raise."""
        ...

    async def close(self) -> None:
        """Release connections and resources. Called during graceful shutdown."""
        ...


# ─── InMemoryKeyStore ─────────────────────────────────────────────────────────


class InMemoryKeyStore:
    """Dict-backed KeyStore for tests and ephemeral deployments.

    Records are indexed both by id and by digest so lookups never scan.
    A single asyncio.Lock serialises writes so the uniqueness check and the
    insert cannot interleave.
    """

    def __init__(self) -> None:
        self._by_id: dict[str, ApiKeyRecord] = {}
        self._id_by_digest: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def insert(self, record: ApiKeyRecord) -> None:
        async with self._lock:
            if record.digest in self._id_by_digest or record.id in self._by_id:
                raise KeyConflictError()
            self._by_id[record.id] = record
            self._id_by_digest[record.digest] = record.id

    async def find_by_digest(self, digest: str) -> Optional[ApiKeyRecord]:
        key_id = self._id_by_digest.get(digest)
        if key_id is None:
            return None
        return self._by_id[key_id]

    async def list_all(self) -> list[ApiKeyRecord]:
        return sorted(self._by_id.values(), key=lambda r: (r.created_at, r.id), reverse=True)

    async def mark_revoked(self, key_id: str) -> bool:
        async with self._lock:
            record = self._by_id.get(key_id)
            if record is None:
                return False
            if not record.revoked:
                self._by_id[key_id] = replace(record, revoked=True)
            return True

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        logger.debug("InMemoryKeyStore closed", records=len(self._by_id))


# Protocol drift check at import time.
assert isinstance(InMemoryKeyStore(), KeyStore), (
    "InMemoryKeyStore does not satisfy the KeyStore protocol"
)
