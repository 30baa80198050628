"""VaultGate rate limiting package.

Layout:
    models.py        : RateLimitPolicy, RateLimitResult, WindowState, FailMode
    protocol.py      : CounterStore Protocol
    memory.py        : MemoryCounterStore (per-process, per-identity locks)
    sqlite_backend.py: SQLiteCounterStore (atomic UPSERT, shared across workers)
    factory.py       : create_counter_store(): backend selection by config
    limiter.py       : RateLimiter (fixed window, injected store and clock)
"""

from vaultgate.ratelimit.limiter import RateLimiter
from vaultgate.ratelimit.models import (
    FailMode,
    RateLimitPolicy,
    RateLimitResult,
    WindowState,
    retry_after_seconds,
)
from vaultgate.ratelimit.protocol import CounterStore

__all__ = [
    "CounterStore",
    "FailMode",
    "RateLimitPolicy",
    "RateLimitResult",
    "RateLimiter",
    "WindowState",
    "retry_after_seconds",
]
