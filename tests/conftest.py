"""Root test configuration for VaultGate.

Disables the loopback-only check on /api/keys for the whole suite so HTTP
tests can use arbitrary ASGITransport client addresses. Tests that verify the
check (test_admin_middleware.py) re-enable it with their own fixture.
"""

from __future__ import annotations

import pytest

from vaultgate.auth.store import InMemoryKeyStore
from vaultgate.ratelimit.memory import MemoryCounterStore


class FakeClock:
    """Manually advanced clock, injectable wherever ``time.time`` is expected."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def disable_admin_localhost_check(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VAULTGATE_ADMIN_LOCALHOST_ONLY", "false")


@pytest.fixture(autouse=True)
def isolate_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's VAULTGATE_* overrides out of the test run."""
    for name in (
        "VAULTGATE_CONFIG",
        "VAULTGATE_PORT",
        "VAULTGATE_KEYS_DB_PATH",
        "VAULTGATE_RATE_LIMIT",
        "VAULTGATE_RATE_WINDOW_SECONDS",
        "VAULTGATE_RATE_FAIL_MODE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_key_management_limiter() -> None:
    """Clear slowapi's per-IP counters so /api/keys tests never bleed into each other."""
    from vaultgate.auth.limiter import limiter

    limiter.reset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def key_store() -> InMemoryKeyStore:
    return InMemoryKeyStore()


@pytest.fixture
def counter_store() -> MemoryCounterStore:
    return MemoryCounterStore()
