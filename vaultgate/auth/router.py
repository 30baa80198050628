"""Key-management endpoints.

Provides:
  POST   /api/keys            : issue a key (plaintext returned ONCE)
  GET    /api/keys            : list keys (masked representation only)
  DELETE /api/keys?keyId=<id> : revoke a key by id

These routes take no API key. They are protected by AdminLocalhostMiddleware
(loopback clients only) and throttled per client IP by slowapi.
"""

# No postponed annotations here: FastAPI would resolve them in slowapi's wrapper globals.
from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from vaultgate.auth.keys import issue_api_key, list_keys, revoke_api_key
from vaultgate.auth.limiter import KEY_MANAGEMENT_RATE_LIMIT, limiter
from vaultgate.auth.store import KeyStore
from vaultgate.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["api-keys"])

ISSUED_KEY_MESSAGE = "API key created. Store this key, it will not be shown again."


# ─── Request Models ───────────────────────────────────────────────────────────


class CreateKeyRequest(BaseModel):
    """Request body for POST /api/keys."""

    name: str = ""
    """Human label for the key; 1-256 characters after stripping."""


def _key_store(request: Request) -> KeyStore:
    return request.app.state.key_store


# ─── Endpoints ────────────────────────────────────────────────────────────────


@router.post("/keys", status_code=201)
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def create_key(body: CreateKeyRequest, request: Request) -> dict:
    """Issue a new API key. Returns the plaintext key ONCE in the response.

    Returns:
        JSON: {id, name, key, masked, created_at, message}

    Raises:
        HTTP 400: name empty or longer than 256 characters.
    """
    try:
        issued = await issue_api_key(_key_store(request), body.name)
    except ValueError as exc:
        logger.info("Key issuance rejected", reason=str(exc))
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    record = issued.record
    return {
        "id": record.id,
        "name": record.owner_name,
        "key": issued.secret,
        "masked": issued.masked,
        "created_at": record.created_at.isoformat(),
        "message": ISSUED_KEY_MESSAGE,
    }


@router.get("/keys")
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def get_keys(request: Request) -> dict:
    """List every key, newest first. The full secret is NEVER returned."""
    return {"items": await list_keys(_key_store(request))}


@router.delete("/keys")
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def delete_key(
    request: Request,
    key_id: str = Query("", alias="keyId"),
) -> JSONResponse:
    """Revoke a key by id. Irreversible.

    Raises:
        HTTP 400: keyId missing.
        HTTP 404: no key with that id.
    """
    key_id = key_id.strip()
    if not key_id:
        raise HTTPException(status_code=400, detail="keyId is required")

    if not await revoke_api_key(_key_store(request), key_id):
        return JSONResponse(status_code=404, content={"error": "Key not found"})

    return JSONResponse(status_code=200, content={"success": True})
