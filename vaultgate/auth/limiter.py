"""Shared slowapi limiter for the key-management endpoints.

Throttles POST/GET/DELETE /api/keys per client IP. This is separate from the
fixed-window limiter in ``vaultgate.ratelimit``, which meters the protected
data API per key id.

The Limiter instance is shared between:
  - vaultgate/auth/router.py  (route decorators)
  - vaultgate/main.py         (app.state.limiter + SlowAPIMiddleware registration)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from vaultgate.constants import KEY_MANAGEMENT_RATE_LIMIT

limiter = Limiter(key_func=get_remote_address)

__all__ = ["KEY_MANAGEMENT_RATE_LIMIT", "limiter"]
