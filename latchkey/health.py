"""Health endpoint for Latchkey.

  GET /health — 503 before ``app.state.ready``, 200 after

The body reports whether the key store answers a trivial query. A failing
store downgrades ``status`` to "degraded" but never raises.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from latchkey.config import Config

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Primary health check endpoint.

    Response body (200):
        {
          "status": "ok" | "degraded",
          "key_store": "healthy" | "error",
          "require_secure_connection": true,
          "environments": ["Live", "Test"],
          "key_types": ["ApiKey"]
        }

    Response body (503):
        {"error": {"status": "starting", "message": "..."}}
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={
                "status": "starting",
                "message": "Latchkey is starting up",
                "code": "not_ready",
            },
        )

    config: Config = request.app.state.config
    store_ok = await request.app.state.key_store.health_check()

    return {
        "status": "ok" if store_ok else "degraded",
        "key_store": "healthy" if store_ok else "error",
        "require_secure_connection": config.apikey.require_secure_connection,
        "environments": config.apikey.environments,
        "key_types": config.apikey.key_types,
    }
