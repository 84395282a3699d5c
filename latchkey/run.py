"""Programmatic uvicorn entry point for Latchkey.

Reads host and port from the loaded config (127.0.0.1:4343 by default) and
starts uvicorn with hardened connection limits.

Usage:
    python -m latchkey.run     # reads .latchkey/config.yaml
    latchkey                   # via pyproject.toml [project.scripts]

API keys travel in the Authorization header, so anything other than a
loopback bind should sit behind TLS termination (see
apikey.require_secure_connection).
"""

from __future__ import annotations

import uvicorn

from latchkey.config import load_config

# ─── Uvicorn hardened defaults ────────────────────────────────────────────────

# New connections receive HTTP 503 when this limit is exceeded.
UVICORN_LIMIT_CONCURRENCY: int = 100

# OS-level TCP connection backlog queue size.
UVICORN_BACKLOG: int = 50

# HTTP keep-alive timeout in seconds.
UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def main() -> None:
    """Start the Latchkey server.

    Raises:
        SystemExit: Propagated from load_config() on config parse errors.
    """
    config = load_config()

    uvicorn.run(
        "latchkey.main:app",
        host=config.server.host,
        port=config.server.port,
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
        # Honour X-Forwarded-Proto from a local TLS terminator so the
        # secure-connection policy sees the client's real scheme.
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
