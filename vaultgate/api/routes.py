"""Protected data endpoints.

  GET  /api/ping : liveness of the authenticated path
  POST /api/echo : echoes the JSON body back

Both depend on ``require_api_key``: the handler body only runs for requests
the gate admitted, and the X-RateLimit-* headers are already on the response.
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from vaultgate.auth.middleware import require_api_key

router = APIRouter(tags=["api"])


@router.get("/ping")
async def ping(key_id: str = Depends(require_api_key)) -> dict[str, Any]:
    return {"ok": True, "message": "Hello GET", "key_id": key_id}


@router.post("/echo")
async def echo(
    request: Request, key_id: str = Depends(require_api_key)
) -> dict[str, Any]:
    """Echo the request body. An empty body echoes as null."""
    raw = await request.body()
    try:
        received = json.loads(raw) if raw.strip() else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Request body must be JSON") from exc
    return {"ok": True, "message": "Hello POST", "received": received, "key_id": key_id}
