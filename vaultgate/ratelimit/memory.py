"""MemoryCounterStore: in-process fixed-window counters.

Locking model:
  - One threading.Lock per identity slot guards that identity's counter.
    The whole admit-or-deny decision runs under it, with no await inside,
    so it is atomic for coroutines on one event loop AND for worker threads.
  - A guard lock is taken only to create or evict slots. Hits for different
    identities never wait on each other's counter lock.
  - Eviction marks a slot ``evicted`` while holding its lock; a hit that raced
    with eviction sees the flag and re-fetches a fresh slot, so no admission is
    ever counted against a detached slot.

Stale windows are evicted by prune(), and opportunistically whenever the slot
table grows past ``max_windows``.

Counters are per-process: with N worker processes each identity effectively
gets N × limit. Use SQLiteCounterStore when running more than one worker.
"""

from __future__ import annotations

import threading
from typing import Optional

from vaultgate.constants import DEFAULT_MAX_WINDOWS
from vaultgate.ratelimit.models import WindowState
from vaultgate.utils.logger import get_logger

logger = get_logger(__name__)


class _Slot:
    __slots__ = ("lock", "window_start", "count", "evicted")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.window_start: float = 0.0
        self.count: int = 0
        self.evicted: bool = False


class MemoryCounterStore:
    """Per-identity fixed-window counters held in process memory."""

    def __init__(self, max_windows: int = DEFAULT_MAX_WINDOWS) -> None:
        self._slots: dict[str, _Slot] = {}
        self._guard = threading.Lock()
        self._max_windows = max_windows

    def __len__(self) -> int:
        return len(self._slots)

    def _get_slot(self, identity: str) -> _Slot:
        slot = self._slots.get(identity)
        if slot is not None:
            return slot
        with self._guard:
            slot = self._slots.get(identity)
            if slot is None:
                slot = _Slot()
                self._slots[identity] = slot
            return slot

    # ── CounterStore Protocol Methods ─────────────────────────────────────────

    async def hit(
        self, identity: str, limit: int, window_seconds: float, now: float
    ) -> WindowState:
        if len(self._slots) > self._max_windows:
            self._sweep(now, window_seconds)

        while True:
            slot = self._get_slot(identity)
            with slot.lock:
                if slot.evicted:
                    continue
                if slot.count == 0 or now >= slot.window_start + window_seconds:
                    slot.window_start = now
                    slot.count = 1
                    admitted = True
                elif slot.count < limit:
                    slot.count += 1
                    admitted = True
                else:
                    admitted = False
                return WindowState(identity, slot.window_start, slot.count, admitted)

    async def peek(self, identity: str) -> Optional[WindowState]:
        slot = self._slots.get(identity)
        if slot is None:
            return None
        with slot.lock:
            if slot.evicted or slot.count == 0:
                return None
            return WindowState(identity, slot.window_start, slot.count)

    async def reset(self, identity: str) -> None:
        with self._guard:
            slot = self._slots.pop(identity, None)
        if slot is not None:
            with slot.lock:
                slot.evicted = True

    async def prune(self, now: float, window_seconds: float) -> int:
        return self._sweep(now, window_seconds)

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        with self._guard:
            self._slots.clear()

    # ── Eviction ──────────────────────────────────────────────────────────────

    def _sweep(self, now: float, window_seconds: float) -> int:
        """Evict expired windows. Slots locked by an in-flight hit are skipped."""
        evicted = 0
        with self._guard:
            for identity, slot in list(self._slots.items()):
                if now < slot.window_start + window_seconds:
                    continue
                if not slot.lock.acquire(blocking=False):
                    continue
                try:
                    if now >= slot.window_start + window_seconds:
                        slot.evicted = True
                        del self._slots[identity]
                        evicted += 1
                finally:
                    slot.lock.release()
        if evicted:
            logger.debug("rate_limit_windows_evicted", count=evicted, remaining=len(self._slots))
        return evicted
