"""VaultGate FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app(): testable application factory
  - lifespan    : @asynccontextmanager startup/shutdown sequence
  - app = create_app(): module-level instance for uvicorn

Startup sequence:
  1. load_config()                → app.state.config
  2. codec.generate() probe       → aborts startup if the CSPRNG is unusable
  3. create_key_store()           → app.state.key_store
  4. create_counter_store()       → app.state.counter_store
  5. KeyVerifier + RateLimiter    → app.state.verifier, app.state.rate_limiter
     + RequestGate                → app.state.gate
  6. app.state.ready = True

Shutdown sequence (reverse):
  app.state.ready = False → close counter store → close key store

Uvicorn hardened defaults (see vaultgate/run.py):
  uvicorn vaultgate.main:app \\
    --host 127.0.0.1 \\
    --port 8080 \\
    --limit-concurrency 100 \\
    --backlog 50 \\
    --timeout-keep-alive 5
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from vaultgate import __version__
from vaultgate.admin.middleware import AdminLocalhostMiddleware
from vaultgate.api.routes import router as api_router
from vaultgate.auth import codec
from vaultgate.auth.factory import create_key_store
from vaultgate.auth.gate import RequestGate
from vaultgate.auth.limiter import limiter
from vaultgate.auth.router import router as keys_router
from vaultgate.auth.verify import KeyVerifier
from vaultgate.config import Config, load_config
from vaultgate.errors import StoreUnavailableError
from vaultgate.health import router as health_router
from vaultgate.ratelimit.factory import create_counter_store
from vaultgate.ratelimit.limiter import RateLimiter
from vaultgate.ratelimit.models import FailMode, RateLimitPolicy
from vaultgate.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build the gate from config, tear it down on exit."""
    logger.info("VaultGate starting up...")

    # ── Step 1: Load configuration ────────────────────────────────────────────
    # load_config() raises SystemExit on parse errors, before ready=True is set.
    config: Config = load_config()
    app.state.config = config

    # ── Step 2: Random source probe ───────────────────────────────────────────
    # A broken CSPRNG must stop the process here rather than fail on first issue.
    codec.generate()

    # ── Step 3: Key store ─────────────────────────────────────────────────────
    key_store = await create_key_store(config.keys)
    app.state.key_store = key_store

    # ── Step 4: Counter store ─────────────────────────────────────────────────
    try:
        counter_store = await create_counter_store(config.rate_limit)
    except BaseException:
        await key_store.close()
        raise
    app.state.counter_store = counter_store

    # ── Step 5: Verifier, limiter, gate ───────────────────────────────────────
    policy = RateLimitPolicy(
        limit=config.rate_limit.limit,
        window_seconds=config.rate_limit.window_seconds,
    )
    verifier = KeyVerifier(key_store)
    rate_limiter = RateLimiter(
        counter_store, policy, fail_mode=FailMode(config.rate_limit.fail_mode)
    )
    app.state.verifier = verifier
    app.state.rate_limiter = rate_limiter
    app.state.gate = RequestGate(verifier, rate_limiter)

    logger.info(
        "Config loaded",
        keys_backend=config.keys.backend,
        counter_backend=config.rate_limit.backend,
        rate_limit=policy.limit,
        window_seconds=policy.window_seconds,
        fail_mode=config.rate_limit.fail_mode,
        api_key_header=config.auth.header,
    )

    # ── Step 6: Mark as ready ─────────────────────────────────────────────────
    app.state.ready = True
    logger.info("VaultGate ready", version=__version__)

    yield

    # ── Shutdown (reverse order) ──────────────────────────────────────────────
    logger.info("VaultGate shutting down...")
    app.state.ready = False
    app.state.gate = None

    await counter_store.close()
    await key_store.close()

    logger.info("VaultGate shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the VaultGate FastAPI application.

    Call this directly in tests to get an isolated app instance:
        app = create_app()

    Returns:
        Configured FastAPI application with lifespan, routers, and middleware.
    """
    # Swagger UI / ReDoc only with DEBUG=true.
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="VaultGate",
        description="API key authentication and per-key rate limiting",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    # /health returns 503 until the lifespan finishes startup.
    application.state.ready = False

    # slowapi requires the limiter on app.state.
    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # In Starlette the LAST-added middleware is OUTERMOST.
    # AdminLocalhostMiddleware runs before slowapi so foreign clients never
    # consume the key-management quota.
    application.add_middleware(SlowAPIMiddleware)
    application.add_middleware(AdminLocalhostMiddleware)

    # health_router: /health
    application.include_router(health_router)
    # keys_router: /api/keys (loopback-only key management)
    application.include_router(keys_router, prefix="/api")
    # api_router: /api/ping, /api/echo (x-api-key protected)
    application.include_router(api_router, prefix="/api")

    # Global exception handlers
    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning(
                "HTTP exception",
                status_code=exc.status_code,
                detail=exc.detail,
                path=str(request.url.path),
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @application.exception_handler(StoreUnavailableError)
    async def store_unavailable_handler(
        request: Request, exc: StoreUnavailableError
    ) -> JSONResponse:
        logger.error(
            "Backing store unavailable",
            error=exc.message,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=503, content={"error": "service unavailable"})

    @application.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=500, content={"error": "Internal server error"}
        )

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────

app = create_app()
