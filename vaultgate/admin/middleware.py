"""Loopback enforcement for the key-management endpoints.

Every /api/keys request must originate from 127.0.0.1 or ::1. Issuing and
revoking keys requires no API key of its own, so the binding address would
otherwise be the only thing standing between the network and key issuance.
With server.host: 0.0.0.0 the data API becomes reachable while key
management stays local.

Returns HTTP 403 for non-loopback clients. Other paths pass through unchanged.
"""

from __future__ import annotations

import os

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from vaultgate.utils.logger import get_logger

logger = get_logger(__name__)

_LOOPBACK_HOSTS: frozenset[str] = frozenset({"127.0.0.1", "::1", "localhost"})

_ADMIN_PREFIX = "/api/keys"

_FORBIDDEN_BODY: dict = {
    "error": {
        "message": "Key management is restricted to localhost",
        "code": "forbidden",
    }
}


def _localhost_check_enabled() -> bool:
    """Return True unless VAULTGATE_ADMIN_LOCALHOST_ONLY=false.

    Read per request so tests can toggle it with monkeypatch.
    """
    return os.environ.get("VAULTGATE_ADMIN_LOCALHOST_ONLY", "true").lower() != "false"


class AdminLocalhostMiddleware(BaseHTTPMiddleware):
    """Restrict /api/keys* to loopback clients."""

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        if not request.url.path.startswith(_ADMIN_PREFIX):
            return await call_next(request)

        if not _localhost_check_enabled():
            return await call_next(request)

        client_host = request.client.host if request.client else None
        if client_host not in _LOOPBACK_HOSTS:
            logger.warning(
                "Key management access denied: non-localhost origin",
                client_host=client_host,
                path=request.url.path,
                method=request.method,
            )
            return JSONResponse(status_code=403, content=_FORBIDDEN_BODY)

        return await call_next(request)
