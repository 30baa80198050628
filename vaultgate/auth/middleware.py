"""VaultGate API key dependency for protected routes.

Provides ``require_api_key()``: a FastAPI Depends()-compatible async
dependency that runs the request gate for the incoming request.

CRITICAL INVARIANT: the route handler never runs unless the gate admitted the
request. Denials surface as HTTPException so FastAPI short-circuits before the
handler body:

  401: missing / invalid / revoked key
  429: quota exhausted for the key id (Retry-After + X-RateLimit-* headers)
  503: key store or counter store unavailable

The header name comes from ``config.auth.header`` (default ``x-api-key``).
The presented key is never logged.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, Response

from vaultgate.auth.gate import GateDecision, RequestGate
from vaultgate.constants import DEFAULT_API_KEY_HEADER
from vaultgate.utils.logger import bind_request_context, clear_request_context, get_logger

logger = get_logger(__name__)


def _header_name(request: Request) -> str:
    config = getattr(request.app.state, "config", None)
    if config is None:
        return DEFAULT_API_KEY_HEADER
    return config.auth.header


async def require_api_key(request: Request, response: Response) -> str:
    """FastAPI dependency: admit the request or raise.

    Returns:
        The verified key id (the caller's identity).

    Raises:
        HTTPException(401 | 429 | 503) with ``detail`` set to the gate's reason
        and the quota headers attached.
    """
    gate: RequestGate | None = getattr(request.app.state, "gate", None)
    if gate is None:
        raise HTTPException(status_code=503, detail="service unavailable")

    clear_request_context()
    presented = request.headers.get(_header_name(request))
    decision: GateDecision = await gate.check(presented)

    if not decision.allowed:
        logger.warning(
            "Request denied by gate",
            outcome=decision.outcome.value,
            status_code=decision.status_code,
            key_id=decision.identity,
            path=str(request.url.path),
            method=request.method,
        )
        raise HTTPException(
            status_code=decision.status_code,
            detail=decision.reason,
            headers=decision.headers or None,
        )

    for name, value in decision.headers.items():
        response.headers[name] = value

    if decision.degraded:
        logger.warning(
            "Request admitted without rate limiting (counter store degraded)",
            key_id=decision.identity,
            path=str(request.url.path),
        )

    assert decision.identity is not None
    bind_request_context(key_id=decision.identity)
    return decision.identity
