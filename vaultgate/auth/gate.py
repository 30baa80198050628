"""Request gate: composes key verification and rate limiting per request.

Order (non-negotiable):
  1. verify the presented key        → invalid: 401, limiter NOT consulted
  2. rate-limit keyed by the key id  → denied: 429 + Retry-After
  3. admitted                        → 200 + quota metadata

An unauthenticated caller therefore never consumes anyone's quota, and two
secrets can never share a counter: the limiter identity is the verified
record id, not the presented string or the client address.

StoreUnavailableError from either stage → 503 "service unavailable". No
partial admission is ever returned.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from vaultgate.auth.verify import KeyVerifier
from vaultgate.errors import StoreUnavailableError
from vaultgate.ratelimit.limiter import RateLimiter
from vaultgate.ratelimit.models import retry_after_seconds
from vaultgate.utils.logger import get_logger

logger = get_logger(__name__)

RATE_LIMITED_MESSAGE = "Too many requests"
UNAVAILABLE_MESSAGE = "service unavailable"


class GateOutcome(str, Enum):
    ADMITTED = "admitted"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"


_STATUS_CODES: dict[GateOutcome, int] = {
    GateOutcome.ADMITTED: 200,
    GateOutcome.UNAUTHORIZED: 401,
    GateOutcome.RATE_LIMITED: 429,
    GateOutcome.UNAVAILABLE: 503,
}


@dataclass(frozen=True)
class GateDecision:
    """Result of RequestGate.check().

    Quota fields (limit, remaining, reset) are populated only when the
    limiter was consulted, i.e. for ADMITTED and RATE_LIMITED outcomes.
    """

    outcome: GateOutcome
    identity: Optional[str] = None
    reason: Optional[str] = None
    limit: Optional[int] = None
    remaining: Optional[int] = None
    reset: Optional[float] = None
    retry_after_seconds: Optional[int] = None
    degraded: bool = False

    @property
    def allowed(self) -> bool:
        return self.outcome is GateOutcome.ADMITTED

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self.outcome]

    @property
    def headers(self) -> dict[str, str]:
        """Quota headers for the HTTP response. Empty when no quota applies."""
        headers: dict[str, str] = {}
        if self.limit is not None and self.remaining is not None and self.reset is not None:
            headers["X-RateLimit-Limit"] = str(self.limit)
            headers["X-RateLimit-Remaining"] = str(self.remaining)
            headers["X-RateLimit-Reset"] = str(math.ceil(self.reset))
        if self.retry_after_seconds is not None:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers


class RequestGate:
    """Per-request admission decision: verify first, then limit."""

    def __init__(
        self,
        verifier: KeyVerifier,
        limiter: RateLimiter,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._verifier = verifier
        self._limiter = limiter
        self._clock = clock

    async def check(self, presented_key: Optional[str]) -> GateDecision:
        try:
            verification = await self._verifier.verify(presented_key)
        except StoreUnavailableError as exc:
            logger.error("Key store unavailable during verification", error=exc.message)
            return GateDecision(GateOutcome.UNAVAILABLE, reason=UNAVAILABLE_MESSAGE)

        if not verification.valid:
            return GateDecision(
                GateOutcome.UNAUTHORIZED,
                reason=verification.reason,
            )

        identity = verification.key_id
        assert identity is not None

        try:
            result = await self._limiter.limit(identity)
        except StoreUnavailableError:
            return GateDecision(
                GateOutcome.UNAVAILABLE, identity=identity, reason=UNAVAILABLE_MESSAGE
            )

        if not result.success:
            return GateDecision(
                GateOutcome.RATE_LIMITED,
                identity=identity,
                reason=RATE_LIMITED_MESSAGE,
                limit=result.limit,
                remaining=0,
                reset=result.reset,
                retry_after_seconds=retry_after_seconds(result.reset, self._clock()),
            )

        return GateDecision(
            GateOutcome.ADMITTED,
            identity=identity,
            limit=result.limit,
            remaining=result.remaining,
            reset=result.reset,
            degraded=result.degraded,
        )
