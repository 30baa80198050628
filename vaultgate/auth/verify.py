"""Key verification for VaultGate.

A presented key moves through exactly one of five states:

  MISSING  : empty / absent                 → "Unauthorized: missing key"
  MALFORMED: wrong shape                    → "Unauthorized: invalid key"
  UNKNOWN  : digest has no record           → "Unauthorized: invalid key"
  REVOKED  : record found, revoked          → "Unauthorized: key revoked"
  VALID    : record found, not revoked      → identity = record.id

MALFORMED and UNKNOWN share one message so a caller cannot use the response
to learn whether a guess was structurally plausible.

verify() is a pure function of (input, store state): a single read, no
retries, no writes. StoreUnavailableError from the store propagates to the
caller (the request gate renders it as 503).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from vaultgate.auth import codec
from vaultgate.auth.store import ApiKeyRecord, KeyStore

MISSING_KEY_MESSAGE = "Unauthorized: missing key"
INVALID_KEY_MESSAGE = "Unauthorized: invalid key"
REVOKED_KEY_MESSAGE = "Unauthorized: key revoked"


class VerificationStatus(str, Enum):
    MISSING = "missing"
    MALFORMED = "malformed"
    UNKNOWN = "unknown"
    REVOKED = "revoked"
    VALID = "valid"


_MESSAGES: dict[VerificationStatus, Optional[str]] = {
    VerificationStatus.MISSING: MISSING_KEY_MESSAGE,
    VerificationStatus.MALFORMED: INVALID_KEY_MESSAGE,
    VerificationStatus.UNKNOWN: INVALID_KEY_MESSAGE,
    VerificationStatus.REVOKED: REVOKED_KEY_MESSAGE,
    VerificationStatus.VALID: None,
}


@dataclass(frozen=True)
class VerificationResult:
    status: VerificationStatus
    record: Optional[ApiKeyRecord] = None

    @property
    def valid(self) -> bool:
        return self.status is VerificationStatus.VALID

    @property
    def key_id(self) -> Optional[str]:
        """Identity of the caller; only set for VALID results."""
        return self.record.id if self.valid and self.record is not None else None

    @property
    def reason(self) -> Optional[str]:
        """Client-facing message; None when valid."""
        return _MESSAGES[self.status]


class KeyVerifier:
    """Resolve a presented secret to a key record through the KeyStore."""

    def __init__(self, store: KeyStore) -> None:
        self._store = store

    async def verify(self, presented: Optional[str]) -> VerificationResult:
        if presented is None or not presented.strip():
            return VerificationResult(VerificationStatus.MISSING)

        candidate = presented.strip()
        if not codec.is_well_formed(candidate):
            return VerificationResult(VerificationStatus.MALFORMED)

        presented_digest = codec.digest(candidate)
        record = await self._store.find_by_digest(presented_digest)
        if record is None or not codec.digests_equal(record.digest, presented_digest):
            return VerificationResult(VerificationStatus.UNKNOWN)

        if record.revoked:
            return VerificationResult(VerificationStatus.REVOKED, record)

        return VerificationResult(VerificationStatus.VALID, record)
