"""Rate limit value types.

  RateLimitPolicy : limit + window length (configuration, not hardcoded)
  RateLimitResult : outcome of one limit() call: success / remaining / limit / reset
  WindowState     : snapshot of one identity's fixed-window counter
  FailMode        : behaviour when the counter store is unavailable
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from vaultgate.constants import MIN_RETRY_AFTER_SECONDS


class FailMode(str, Enum):
    """Counter store outage policy.

    CLOSED: deny (StoreUnavailableError surfaces to the gate as 503)
    OPEN  : admit, flag the result as degraded, log a warning
    """

    CLOSED = "closed"
    OPEN = "open"


@dataclass(frozen=True)
class RateLimitPolicy:
    limit: int
    window_seconds: float

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError(f"limit must be >= 1, got {self.limit}")
        if self.window_seconds <= 0:
            raise ValueError(f"window_seconds must be > 0, got {self.window_seconds}")


@dataclass(frozen=True)
class WindowState:
    """Counter snapshot for one identity.

    ``admitted`` reports whether the hit() that produced this snapshot admitted
    a request. Always False for snapshots returned by peek().
    """

    identity: str
    window_start: float
    count: int
    admitted: bool = False


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of RateLimiter.limit().

    Attributes:
        success:   True if the request is admitted.
        remaining: Admissions left in the current window (0 when denied, never negative).
        limit:     Maximum admissions per window.
        reset:     Epoch seconds at which the current window ends.
        degraded:  True when admitted without counting (counter store down, fail-open).
    """

    success: bool
    remaining: int
    limit: int
    reset: float
    degraded: bool = False


def retry_after_seconds(reset: float, now: float) -> int:
    """Whole seconds a throttled caller should wait: max(1, ceil(reset - now)).

    Never zero or negative, even when reset is already in the past at read time.
    """
    return max(MIN_RETRY_AFTER_SECONDS, math.ceil(reset - now))
