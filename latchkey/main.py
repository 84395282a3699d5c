"""Latchkey FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan — @asynccontextmanager startup/shutdown sequence
  - /health router — delegated to latchkey/health.py
  - /        route  — service discovery root
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()                       → app.state.config
  2. create_key_store()                  → app.state.key_store
  3. LocalSQLiteUserAuthRepository       → app.state.users (schema ensured)
  4. EventBus()                          → app.state.events
  5. ApiKeyAuthProvider.register(events) → app.state.apikey_provider
                                           (schema init + issuer subscription)
  6. app.state.ready = True

A failure in step 5 (init_schema on without a key store, or an
incompatible schema version) propagates and aborts startup.

Shutdown:
  app.state.ready = False → key_store.close()
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from latchkey.auth.events import EventBus
from latchkey.auth.extractor import ApiKeyCredentialMiddleware
from latchkey.auth.limiter import limiter
from latchkey.auth.provider import ApiKeyAuthProvider
from latchkey.auth.router import router as auth_router
from latchkey.auth.users import LocalSQLiteUserAuthRepository
from latchkey.config import Config, load_config
from latchkey.health import router as health_router
from latchkey.store.factory import create_key_store
from latchkey.store.protocol import ApiKeyStore
from latchkey.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)

_ERROR_CODES: dict[int, str] = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    409: "conflict",
    429: "rate_limited",
    500: "internal_error",
    503: "not_ready",
}


# ─── Routers ──────────────────────────────────────────────────────────────────

root_router = APIRouter(tags=["root"])


@root_router.get("/")
async def root() -> dict[str, str]:
    """Root endpoint — service identity / discovery."""
    return {
        "service": "Latchkey",
        "docs": "/docs",
        "health": "/health",
        "session": "/auth/session",
    }


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence."""
    logger.info("Latchkey starting up...")

    # ── Step 1: Load configuration ────────────────────────────────────────────
    # load_config() raises SystemExit on parse error or missing version field.
    config: Config = load_config()
    app.state.config = config
    logger.info(
        "Config loaded",
        environments=config.apikey.environments,
        key_types=config.apikey.key_types,
        require_secure_connection=config.apikey.require_secure_connection,
    )

    # ── Step 2: Key store ─────────────────────────────────────────────────────
    key_store: ApiKeyStore = create_key_store(config)
    app.state.key_store = key_store

    # ── Step 3: Account repository (shares the store's database file) ────────
    users = LocalSQLiteUserAuthRepository(config.store.path)
    await users.ensure_schema()
    app.state.users = users

    # ── Step 4: Event bus ─────────────────────────────────────────────────────
    events = EventBus()
    app.state.events = events

    # ── Step 5: Provider registration ─────────────────────────────────────────
    provider = ApiKeyAuthProvider(config=config.apikey, store=key_store, users=users)
    await provider.register(events)
    app.state.apikey_provider = provider

    # ── Step 6: Mark as ready ─────────────────────────────────────────────────
    app.state.ready = True
    logger.info("Latchkey ready", host=config.server.host, port=config.server.port)

    yield

    logger.info("Latchkey shutting down...")
    app.state.ready = False
    await key_store.close()
    logger.info("Latchkey shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the Latchkey FastAPI application.

    Call this function directly in unit tests to get an isolated app instance:
        app = create_app()

    Returns:
        Configured FastAPI application with lifespan, routers, and middleware.
    """
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="Latchkey",
        description="API-key credentials: issuance at registration, Basic-Auth verification",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    # /health answers 503 until the lifespan finishes.
    application.state.ready = False

    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # In Starlette the LAST-added middleware is OUTERMOST.
    # ApiKeyCredentialMiddleware runs inside the rate limiter, before routing.
    application.add_middleware(ApiKeyCredentialMiddleware)
    application.add_middleware(SlowAPIMiddleware)

    application.include_router(root_router)
    application.include_router(health_router)
    application.include_router(auth_router)

    # Global exception handlers
    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        if isinstance(exc.detail, dict):
            error = exc.detail
        else:
            error = {
                "message": exc.detail,
                "code": _ERROR_CODES.get(exc.status_code, "error"),
            }
        # WWW-Authenticate on 401 challenges must reach the client.
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": error},
            headers=getattr(exc, "headers", None),
        )

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
            status_code=500,
            content={"error": {"message": "Internal server error", "code": "internal_error"}},
        )

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────

app = create_app()
