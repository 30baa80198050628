"""CounterStore Protocol: shared fixed-window counters keyed by identity.

Implementations:
  MemoryCounterStore  (memory.py)         : per-process, per-identity locks
  SQLiteCounterStore  (sqlite_backend.py) : shared across worker processes on one host

Selection via create_counter_store() (ratelimit/factory.py).

The central contract is hit(): a single atomic admit-or-deny step.

  - no window, or now >= window_start + window_seconds → new window, count = 1, admitted
  - count < limit                                      → count += 1, admitted
  - count >= limit                                     → unchanged, denied

Two concurrent hit() calls for the same identity must never both be admitted
past ``limit``. Calls for different identities must not wait on each other's
critical section.

Failures raise StoreUnavailableError; stores never retry internally.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from vaultgate.ratelimit.models import WindowState


@runtime_checkable
class CounterStore(Protocol):

    async def hit(
        self, identity: str, limit: int, window_seconds: float, now: float
    ) -> WindowState:
        """Atomically admit-or-deny one request for identity. See module docstring."""
        ...

    async def peek(self, identity: str) -> Optional[WindowState]:
        """Current window for identity without consuming quota, or None."""
        ...

    async def reset(self, identity: str) -> None:
        """Forget identity's window (next hit starts a fresh one)."""
        ...

    async def prune(self, now: float, window_seconds: float) -> int:
        """Evict windows that ended before ``now``. Returns the number evicted."""
        ...

    async def health_check(self) -> bool:
        """Returns True if the store is operational. Must not raise."""
        ...

    async def close(self) -> None:
        """Release resources. Called during graceful shutdown."""
        ...
