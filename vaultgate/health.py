"""Health endpoint for VaultGate.

  GET /health: 503 before ``app.state.ready`` is set, 200 afterwards

The 200 body reports both backing stores. A failed store makes the status
"degraded" but never changes the status code: /health answers "is the
process up", while the gate itself renders store outages as 503 per request.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from vaultgate import __version__
from vaultgate.config import Config

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Primary health check.

    Response body (200):
        {
          "status": "ok" | "degraded",
          "version": "1.0.0",
          "key_store": "healthy" | "error",
          "counter_store": "healthy" | "error",
          "rate_limit": {"limit": 60, "window_seconds": 60, "fail_mode": "closed"}
        }
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={"status": "starting", "message": "VaultGate is starting up."},
        )

    config: Config = request.app.state.config
    key_store_ok = await request.app.state.key_store.health_check()
    counter_store_ok = await request.app.state.counter_store.health_check()

    return {
        "status": "ok" if key_store_ok and counter_store_ok else "degraded",
        "version": __version__,
        "key_store": "healthy" if key_store_ok else "error",
        "counter_store": "healthy" if counter_store_ok else "error",
        "rate_limit": {
            "limit": config.rate_limit.limit,
            "window_seconds": config.rate_limit.window_seconds,
            "fail_mode": config.rate_limit.fail_mode,
        },
    }
