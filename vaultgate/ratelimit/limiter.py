"""Fixed-window rate limiter.

``RateLimiter.limit(identity)`` returns ``RateLimitResult(success, remaining,
limit, reset)``:

  - first request of a window       → success, remaining = limit - 1
  - count < limit                   → success, remaining = limit - count
  - count >= limit                  → denied, remaining = 0, counter unchanged
  - reset = window_start + window_seconds (epoch seconds)

The limiter owns no counter state. The atomic admit-or-deny step is delegated
to the injected CounterStore; the clock is injected so tests can move time.

Counter store outage (StoreUnavailableError) follows the FailMode:
  CLOSED → re-raise; the request gate denies with 503
  OPEN   → admit with degraded=True and log a warning
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from vaultgate.errors import StoreUnavailableError
from vaultgate.ratelimit.models import FailMode, RateLimitPolicy, RateLimitResult
from vaultgate.ratelimit.protocol import CounterStore
from vaultgate.utils.logger import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """Fixed-window limiter over a shared CounterStore."""

    def __init__(
        self,
        store: CounterStore,
        policy: RateLimitPolicy,
        *,
        fail_mode: FailMode = FailMode.CLOSED,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.policy = policy
        self.fail_mode = fail_mode
        self._clock = clock

    async def limit(self, identity: str) -> RateLimitResult:
        """Consume one admission for identity if the current window allows it.

        Raises:
            StoreUnavailableError: counter store failed and fail_mode is CLOSED.
        """
        now = self._clock()
        try:
            state = await self.store.hit(
                identity, self.policy.limit, self.policy.window_seconds, now
            )
        except StoreUnavailableError as exc:
            if self.fail_mode is FailMode.OPEN:
                logger.warning(
                    "Counter store unavailable, admitting request (fail-open)",
                    error=exc.message,
                )
                return RateLimitResult(
                    success=True,
                    remaining=self.policy.limit,
                    limit=self.policy.limit,
                    reset=now + self.policy.window_seconds,
                    degraded=True,
                )
            logger.error(
                "Counter store unavailable, denying request (fail-closed)",
                error=exc.message,
            )
            raise

        reset = state.window_start + self.policy.window_seconds
        if not state.admitted:
            return RateLimitResult(
                success=False, remaining=0, limit=self.policy.limit, reset=reset
            )
        return RateLimitResult(
            success=True,
            remaining=max(0, self.policy.limit - state.count),
            limit=self.policy.limit,
            reset=reset,
        )

    async def peek(self, identity: str) -> RateLimitResult:
        """Report identity's quota without consuming any of it."""
        now = self._clock()
        state = await self.store.peek(identity)
        if state is None or now >= state.window_start + self.policy.window_seconds:
            return RateLimitResult(
                success=True,
                remaining=self.policy.limit,
                limit=self.policy.limit,
                reset=now + self.policy.window_seconds,
            )
        remaining = max(0, self.policy.limit - state.count)
        return RateLimitResult(
            success=remaining > 0,
            remaining=remaining,
            limit=self.policy.limit,
            reset=state.window_start + self.policy.window_seconds,
        )

    async def reset(self, identity: str) -> None:
        await self.store.reset(identity)

    async def prune(self, now: Optional[float] = None) -> int:
        """Evict windows that have already ended."""
        return await self.store.prune(
            self._clock() if now is None else now, self.policy.window_seconds
        )
