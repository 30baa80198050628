"""Shared constants for VaultGate.

All key-format parameters and numeric defaults used across modules are defined
here. No magic numbers in other modules: import from here.
"""

# ─── Key Format ───────────────────────────────────────────────────────────────

# Prefix carried by every issued secret. Convention only, not a security control.
KEY_PREFIX: str = "sk_live_"

# Bytes of CSPRNG output per secret (256 bits). token_urlsafe(32) yields a
# 43-character URL-safe base64 body with no padding.
SECRET_RANDOM_BYTES: int = 32
SECRET_BODY_LENGTH: int = 43

# Number of trailing plaintext characters stored for masked display.
DISPLAY_SUFFIX_LENGTH: int = 4

# Masked display form: "sk_live_...wxyz"
MASK_ELLIPSIS: str = "..."

# ─── Issuance ─────────────────────────────────────────────────────────────────

# Digest collisions are astronomically unlikely; regenerate at most this many times.
MAX_ISSUE_ATTEMPTS: int = 3

# Bounds on the human label attached to a key.
OWNER_NAME_MAX_LENGTH: int = 256

# ─── Request Surface ──────────────────────────────────────────────────────────

# Header carrying the presented secret on protected endpoints.
DEFAULT_API_KEY_HEADER: str = "x-api-key"

# ─── Rate Limiting Defaults ───────────────────────────────────────────────────

DEFAULT_RATE_LIMIT: int = 60            # admitted requests per window
DEFAULT_RATE_WINDOW_SECONDS: int = 60   # fixed window length

# In-memory counter table size that triggers an opportunistic sweep of expired windows.
DEFAULT_MAX_WINDOWS: int = 100_000

# Minimum Retry-After reported to throttled callers (seconds).
MIN_RETRY_AFTER_SECONDS: int = 1

# Rate limit for the key-management endpoints (slowapi limit string, per client IP).
KEY_MANAGEMENT_RATE_LIMIT: str = "20/minute"
