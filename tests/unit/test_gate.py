"""Unit tests for vaultgate/auth/gate.py: RequestGate.

Verifies the verify-then-limit ordering and the status mapping:
  invalid key        → 401, limiter never consulted
  quota exhausted    → 429 with Retry-After >= 1
  admitted           → 200 with quota metadata
  store unavailable  → 503, never a partial admission
"""

from __future__ import annotations

from typing import Optional

import pytest

from vaultgate.auth import codec
from vaultgate.auth.gate import GateOutcome, RequestGate
from vaultgate.auth.keys import issue_api_key, revoke_api_key
from vaultgate.auth.store import ApiKeyRecord, InMemoryKeyStore
from vaultgate.auth.verify import (
    INVALID_KEY_MESSAGE,
    MISSING_KEY_MESSAGE,
    REVOKED_KEY_MESSAGE,
    KeyVerifier,
)
from vaultgate.errors import StoreUnavailableError
from vaultgate.ratelimit.limiter import RateLimiter
from vaultgate.ratelimit.memory import MemoryCounterStore
from vaultgate.ratelimit.models import FailMode, RateLimitPolicy, WindowState

pytestmark = pytest.mark.asyncio


class _UnavailableKeyStore(InMemoryKeyStore):
    async def find_by_digest(self, digest: str) -> Optional[ApiKeyRecord]:
        raise StoreUnavailableError()


class _UnavailableCounterStore(MemoryCounterStore):
    async def hit(
        self, identity: str, limit: int, window_seconds: float, now: float
    ) -> WindowState:
        raise StoreUnavailableError()


def _make_gate(
    key_store: InMemoryKeyStore,
    counter_store: MemoryCounterStore,
    clock,
    limit: int = 3,
    window: float = 60,
    fail_mode: FailMode = FailMode.CLOSED,
) -> RequestGate:
    limiter = RateLimiter(
        counter_store, RateLimitPolicy(limit, window), fail_mode=fail_mode, clock=clock
    )
    return RequestGate(KeyVerifier(key_store), limiter, clock=clock)


class TestRequestGate:

    async def test_valid_key_admitted(self, key_store, counter_store, clock) -> None:
        issued = await issue_api_key(key_store, "svc")
        gate = _make_gate(key_store, counter_store, clock)

        decision = await gate.check(issued.secret)

        assert decision.allowed is True
        assert decision.outcome is GateOutcome.ADMITTED
        assert decision.status_code == 200
        assert decision.identity == issued.record.id
        assert decision.limit == 3
        assert decision.remaining == 2
        assert decision.retry_after_seconds is None

    @pytest.mark.parametrize(
        "presented,reason",
        [
            (None, MISSING_KEY_MESSAGE),
            ("", MISSING_KEY_MESSAGE),
            ("junk", INVALID_KEY_MESSAGE),
        ],
    )
    async def test_invalid_key_401(
        self, key_store, counter_store, clock, presented, reason
    ) -> None:
        gate = _make_gate(key_store, counter_store, clock)
        decision = await gate.check(presented)
        assert decision.outcome is GateOutcome.UNAUTHORIZED
        assert decision.status_code == 401
        assert decision.reason == reason
        assert decision.headers == {}

    async def test_unknown_key_401(self, key_store, counter_store, clock) -> None:
        gate = _make_gate(key_store, counter_store, clock)
        decision = await gate.check(codec.generate())
        assert decision.status_code == 401
        assert decision.reason == INVALID_KEY_MESSAGE

    async def test_revoked_key_401(self, key_store, counter_store, clock) -> None:
        issued = await issue_api_key(key_store, "svc")
        await revoke_api_key(key_store, issued.record.id)
        gate = _make_gate(key_store, counter_store, clock)
        decision = await gate.check(issued.secret)
        assert decision.status_code == 401
        assert decision.reason == REVOKED_KEY_MESSAGE

    async def test_unauthenticated_requests_consume_no_quota(
        self, key_store, counter_store, clock
    ) -> None:
        gate = _make_gate(key_store, counter_store, clock)
        for _ in range(20):
            await gate.check("junk")
            await gate.check(codec.generate())
        assert len(counter_store) == 0

    async def test_quota_exhausted_429(self, key_store, counter_store, clock) -> None:
        issued = await issue_api_key(key_store, "svc")
        gate = _make_gate(key_store, counter_store, clock, limit=2, window=60)
        await gate.check(issued.secret)
        await gate.check(issued.secret)
        clock.advance(15.5)

        decision = await gate.check(issued.secret)

        assert decision.outcome is GateOutcome.RATE_LIMITED
        assert decision.status_code == 429
        assert decision.identity == issued.record.id
        assert decision.remaining == 0
        assert decision.retry_after_seconds == 45

    async def test_retry_after_at_least_one(self, key_store, counter_store, clock) -> None:
        issued = await issue_api_key(key_store, "svc")
        gate = _make_gate(key_store, counter_store, clock, limit=1, window=1)
        await gate.check(issued.secret)
        clock.advance(0.9999)
        decision = await gate.check(issued.secret)
        assert decision.status_code == 429
        assert decision.retry_after_seconds >= 1

    async def test_keys_have_separate_quotas(self, key_store, counter_store, clock) -> None:
        a = await issue_api_key(key_store, "a")
        b = await issue_api_key(key_store, "b")
        gate = _make_gate(key_store, counter_store, clock, limit=1)
        assert (await gate.check(a.secret)).allowed is True
        assert (await gate.check(a.secret)).status_code == 429
        assert (await gate.check(b.secret)).allowed is True

    async def test_key_store_unavailable_503(self, counter_store, clock) -> None:
        gate = _make_gate(_UnavailableKeyStore(), counter_store, clock)
        decision = await gate.check(codec.generate())
        assert decision.outcome is GateOutcome.UNAVAILABLE
        assert decision.status_code == 503
        assert decision.allowed is False

    async def test_counter_store_unavailable_fail_closed_503(self, key_store, clock) -> None:
        issued = await issue_api_key(key_store, "svc")
        gate = _make_gate(key_store, _UnavailableCounterStore(), clock)
        decision = await gate.check(issued.secret)
        assert decision.status_code == 503
        assert decision.allowed is False

    async def test_counter_store_unavailable_fail_open_admits(self, key_store, clock) -> None:
        issued = await issue_api_key(key_store, "svc")
        gate = _make_gate(
            key_store, _UnavailableCounterStore(), clock, fail_mode=FailMode.OPEN
        )
        decision = await gate.check(issued.secret)
        assert decision.allowed is True
        assert decision.degraded is True
        assert decision.identity == issued.record.id


class TestGateDecisionHeaders:

    async def test_admitted_headers(self, key_store, counter_store, clock) -> None:
        clock.now = 1_700_000_000.25
        issued = await issue_api_key(key_store, "svc")
        gate = _make_gate(key_store, counter_store, clock, limit=5, window=60)

        headers = (await gate.check(issued.secret)).headers

        assert headers == {
            "X-RateLimit-Limit": "5",
            "X-RateLimit-Remaining": "4",
            "X-RateLimit-Reset": "1700000061",
        }

    async def test_rate_limited_headers_include_retry_after(
        self, key_store, counter_store, clock
    ) -> None:
        issued = await issue_api_key(key_store, "svc")
        gate = _make_gate(key_store, counter_store, clock, limit=1, window=30)
        await gate.check(issued.secret)
        clock.advance(10)

        headers = (await gate.check(issued.secret)).headers

        assert headers["X-RateLimit-Remaining"] == "0"
        assert headers["Retry-After"] == "20"
