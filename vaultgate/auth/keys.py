"""VaultGate API key lifecycle operations.

Implements:
  - issue_api_key()  : mint secret, store digest + last4, return plaintext ONCE
  - list_keys()      : masked listing for display (sk_live_...wxyz)
  - revoke_api_key() : one-way soft delete; unknown id → False, never raises

Non-negotiables (enforced unconditionally):
  - Plaintext NEVER stored: only codec.digest() and codec.last4() outputs
  - Plaintext and digest NEVER logged: keys are identified by id + last4
  - Digest conflict on insert → regenerate (bounded by MAX_ISSUE_ATTEMPTS)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from vaultgate.auth import codec
from vaultgate.auth.store import ApiKeyRecord, KeyStore
from vaultgate.constants import MAX_ISSUE_ATTEMPTS, OWNER_NAME_MAX_LENGTH
from vaultgate.errors import KeyConflictError
from vaultgate.utils.logger import get_logger
from vaultgate.utils.ulid import generate_ulid

logger = get_logger(__name__)


@dataclass(frozen=True)
class IssuedKey:
    """Result of issuance. ``secret`` must be shown to the caller once and dropped."""

    secret: str
    record: ApiKeyRecord

    @property
    def masked(self) -> str:
        return codec.mask(self.record.last4)


def _normalize_owner_name(owner_name: str) -> str:
    name = (owner_name or "").strip()
    if not name:
        raise ValueError("Key name must not be empty")
    if len(name) > OWNER_NAME_MAX_LENGTH:
        raise ValueError(f"Key name must be at most {OWNER_NAME_MAX_LENGTH} characters")
    return name


# ─── Issuance ─────────────────────────────────────────────────────────────────


async def issue_api_key(store: KeyStore, owner_name: str) -> IssuedKey:
    """Generate a new API key, store its digest, and return the plaintext once.

    Key format: sk_live_<43 url-safe base64 chars>

    Args:
        store:       KeyStore receiving the record.
        owner_name:  Human label for the key (1–256 chars after stripping).

    Returns:
        IssuedKey(secret, record): show ``secret`` ONCE, never again.

    Raises:
        ValueError:            owner_name empty or too long.
        KeyConflictError:      MAX_ISSUE_ATTEMPTS consecutive digest/id conflicts.
        StoreUnavailableError: the store failed (not retried).
    """
    name = _normalize_owner_name(owner_name)

    for attempt in range(1, MAX_ISSUE_ATTEMPTS + 1):
        secret = codec.generate()
        record = ApiKeyRecord(
            id=generate_ulid(),
            owner_name=name,
            digest=codec.digest(secret),
            last4=codec.last4(secret),
            created_at=datetime.now(timezone.utc),
        )
        try:
            await store.insert(record)
        except KeyConflictError:
            logger.warning("API key digest conflict, regenerating", attempt=attempt)
            continue

        logger.info("api_key_issued", key_id=record.id, last4=record.last4, owner=name)
        return IssuedKey(secret=secret, record=record)

    raise KeyConflictError(
        f"Could not mint a unique API key after {MAX_ISSUE_ATTEMPTS} attempts"
    )


# ─── Listing (Masked) ─────────────────────────────────────────────────────────


def masked_view(record: ApiKeyRecord) -> dict[str, Any]:
    """Display representation of a record. Contains no secret material."""
    return {
        "id": record.id,
        "name": record.owner_name,
        "masked": codec.mask(record.last4),
        "created_at": record.created_at.isoformat(),
        "revoked": record.revoked,
    }


async def list_keys(store: KeyStore) -> list[dict[str, Any]]:
    """Return every key as a masked representation, newest first.

    The masked format is ``sk_live_...XXXX`` where XXXX is the last 4
    characters of the original secret. The full secret is never returned.
    """
    return [masked_view(record) for record in await store.list_all()]


# ─── Revocation ───────────────────────────────────────────────────────────────


async def revoke_api_key(store: KeyStore, key_id: str) -> bool:
    """Revoke a key by id. Irreversible.

    Returns:
        True if the id exists (idempotent for already revoked keys),
        False if no such key: the caller maps this to "not found".
    """
    if not key_id:
        return False

    found = await store.mark_revoked(key_id)
    if found:
        logger.info("api_key_revoked", key_id=key_id)
    else:
        logger.debug("revoke_api_key: no matching key", key_id=key_id)
    return found
