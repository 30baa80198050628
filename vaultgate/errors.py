"""Error taxonomy for VaultGate.

Authentication and throttling failures are NOT exceptions: they are ordinary
outcomes of the request gate (see ``vaultgate.auth.gate.GateOutcome``) and are
rendered as 401 / 429 responses. Exceptions are reserved for conditions the
gate cannot decide on its own:

  - StoreUnavailableError: the key store or the counter store failed.
                            Never retried inside the core; rendered as 503.
  - KeyConflictError     : a freshly minted digest (or id) already exists.
                            Handled by regenerating during issuance.
"""

from __future__ import annotations


class VaultGateError(Exception):
    """Base class for all VaultGate errors."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class StoreUnavailableError(VaultGateError):
    """Raised when a backing store (keys or counters) cannot be read or written.

    HTTP mapping: 503 Service Unavailable.
    """

    code: str = "store_unavailable"

    def __init__(self, message: str = "Backing store unavailable") -> None:
        super().__init__(message)


class KeyConflictError(VaultGateError):
    """Raised when inserting a key record whose digest or id already exists."""

    code: str = "key_conflict"

    def __init__(self, message: str = "API key digest already exists") -> None:
        super().__init__(message)
