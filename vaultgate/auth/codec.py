"""Secret codec for VaultGate API keys.

Implements:
  - generate()       : mint a fresh ``sk_live_<43 url-safe chars>`` secret
  - digest()         : SHA-256 hex fingerprint used for equality lookup
  - last4()          : trailing display suffix
  - mask()           : ``sk_live_...wxyz`` display form
  - is_well_formed() : shape check run before any store access
  - digests_equal()  : constant-time digest comparison

Security notes:
  • digest() is deterministic (plain SHA-256 over a 256-bit random secret), so
    the store resolves a presented key with one indexed equality query.
  • The plaintext secret is returned by generate() exactly once and is never
    persisted; only digest() and last4() outputs are stored.
  • last4 is a usability feature for masked listings, not a security boundary.
"""

from __future__ import annotations

import hashlib
import hmac
import re
import secrets

from vaultgate.constants import (
    DISPLAY_SUFFIX_LENGTH,
    KEY_PREFIX,
    MASK_ELLIPSIS,
    SECRET_BODY_LENGTH,
    SECRET_RANDOM_BYTES,
)

# sk_live_ followed by exactly the URL-safe base64 body token_urlsafe() produces.
_SECRET_RE = re.compile(
    rf"^{re.escape(KEY_PREFIX)}[A-Za-z0-9_-]{{{SECRET_BODY_LENGTH}}}$"
)


def generate() -> str:
    """Generate a new API key secret.

    Draws SECRET_RANDOM_BYTES from the OS CSPRNG via ``secrets``. If the random
    source is unavailable the underlying error propagates: issuing a weak key
    is never an acceptable fallback.

    Returns:
        The plaintext secret, e.g. ``sk_live_3q2-7wEjJ...`` (51 chars total).
    """
    return f"{KEY_PREFIX}{secrets.token_urlsafe(SECRET_RANDOM_BYTES)}"


def digest(secret: str) -> str:
    """Return the SHA-256 hex digest of a secret (64 lowercase hex chars)."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def last4(secret: str) -> str:
    """Return the final DISPLAY_SUFFIX_LENGTH characters of a secret."""
    return secret[-DISPLAY_SUFFIX_LENGTH:]


def mask(suffix: str) -> str:
    """Render the masked display form ``sk_live_...<suffix>``."""
    return f"{KEY_PREFIX}{MASK_ELLIPSIS}{suffix}"


def is_well_formed(candidate: str) -> bool:
    """Return True if candidate has the exact shape of an issued secret."""
    return bool(_SECRET_RE.match(candidate))


def digests_equal(a: str, b: str) -> bool:
    """Compare two digests in constant time."""
    return hmac.compare_digest(a.encode("ascii"), b.encode("ascii"))
