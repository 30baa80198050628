"""VaultGate API key package.

Public API:
  - issue_api_key()    : mint sk_live_ secret, store SHA-256 digest + last4
  - list_keys()        : masked listing (sk_live_...XXXX)
  - revoke_api_key()   : one-way soft delete by id
  - KeyVerifier        : presented secret → VerificationResult
  - RequestGate        : verify-then-limit decision per request
  - require_api_key()  : FastAPI Depends() dependency
  - ApiKeyRecord, KeyStore, InMemoryKeyStore, SQLiteKeyStore
"""

from __future__ import annotations

from vaultgate.auth.gate import GateDecision, GateOutcome, RequestGate
from vaultgate.auth.keys import IssuedKey, issue_api_key, list_keys, revoke_api_key
from vaultgate.auth.middleware import require_api_key
from vaultgate.auth.sqlite_store import SQLiteKeyStore
from vaultgate.auth.store import ApiKeyRecord, InMemoryKeyStore, KeyStore
from vaultgate.auth.verify import KeyVerifier, VerificationResult, VerificationStatus

__all__ = [
    "ApiKeyRecord",
    "GateDecision",
    "GateOutcome",
    "InMemoryKeyStore",
    "IssuedKey",
    "KeyStore",
    "KeyVerifier",
    "RequestGate",
    "SQLiteKeyStore",
    "VerificationResult",
    "VerificationStatus",
    "issue_api_key",
    "list_keys",
    "require_api_key",
    "revoke_api_key",
]
