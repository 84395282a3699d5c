"""Unit tests for latchkey/main.py — application factory + lifespan lifecycle.

Covers:
  - create_app() importable, independent instances, ready=False before startup
  - /health 503 before ready, 200 with store health after
  - Lifespan wires config, key store, users, events and provider on app.state
  - Provider registration failure aborts startup
  - HTTPException handler keeps the WWW-Authenticate header
"""

from __future__ import annotations

import base64
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from starlette.testclient import TestClient

from latchkey.auth.events import AccountRegistered, EventBus
from latchkey.auth.provider import ApiKeyAuthProvider
from latchkey.auth.users import LocalSQLiteUserAuthRepository
from latchkey.config import Config, load_config
from latchkey.main import create_app
from latchkey.store.protocol import ApiKeyStore

# ─── Helpers ──────────────────────────────────────────────────────────────────


def _stub_config(tmp_path: Path) -> Config:
    config = Config.defaults()
    config.store.path = str(tmp_path / "keys.db")
    return config


def _patch_load_config(monkeypatch: pytest.MonkeyPatch, config: Config) -> None:
    monkeypatch.setattr("latchkey.main.load_config", lambda: config)


# ─── Factory ──────────────────────────────────────────────────────────────────


class TestCreateAppFactory:
    def test_returns_fastapi_instance(self) -> None:
        assert isinstance(create_app(), FastAPI)

    def test_independent_instances(self) -> None:
        assert create_app() is not create_app()

    def test_ready_false_before_lifespan(self) -> None:
        assert create_app().state.ready is False

    def test_limiter_attached(self) -> None:
        from latchkey.auth.limiter import limiter

        assert create_app().state.limiter is limiter


# ─── /health ──────────────────────────────────────────────────────────────────


class TestHealth:
    @pytest.mark.asyncio
    async def test_503_before_ready(self) -> None:
        application = create_app()
        transport = ASGITransport(app=application)  # type: ignore[arg-type]
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/health")

        assert response.status_code == 503
        error = response.json()["error"]
        assert error["status"] == "starting"
        assert error["code"] == "not_ready"

    def test_200_after_startup(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        _patch_load_config(monkeypatch, _stub_config(tmp_path))
        application = create_app()

        with TestClient(application) as client:
            response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["key_store"] == "healthy"
        assert body["require_secure_connection"] is True
        assert body["environments"] == ["Live", "Test"]
        assert body["key_types"] == ["ApiKey"]

    def test_degraded_when_store_unhealthy(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        _patch_load_config(monkeypatch, _stub_config(tmp_path))
        application = create_app()

        with TestClient(application) as client:
            application.state.key_store.health_check = AsyncMock(return_value=False)
            body = client.get("/health").json()

        assert body["status"] == "degraded"
        assert body["key_store"] == "error"

    def test_root(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        _patch_load_config(monkeypatch, _stub_config(tmp_path))
        with TestClient(create_app()) as client:
            body = client.get("/").json()
        assert body["service"] == "Latchkey"


# ─── Lifespan wiring ──────────────────────────────────────────────────────────


class TestLifespan:
    def test_state_populated(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        config = _stub_config(tmp_path)
        _patch_load_config(monkeypatch, config)
        application = create_app()

        with TestClient(application):
            assert application.state.ready is True
            assert application.state.config is config
            assert isinstance(application.state.key_store, ApiKeyStore)
            assert isinstance(application.state.users, LocalSQLiteUserAuthRepository)
            assert isinstance(application.state.events, EventBus)
            assert isinstance(application.state.apikey_provider, ApiKeyAuthProvider)
            assert application.state.events.handlers_for(AccountRegistered)

        assert application.state.ready is False

    def test_schema_created_on_startup(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        _patch_load_config(monkeypatch, _stub_config(tmp_path))

        with TestClient(create_app()):
            pass

        assert (tmp_path / "keys.db").exists()

    def test_registration_failure_aborts_startup(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        _patch_load_config(monkeypatch, _stub_config(tmp_path))
        broken_store = AsyncMock()
        broken_store.ensure_schema.side_effect = RuntimeError("Unsupported key store schema version: 9")
        monkeypatch.setattr("latchkey.main.create_key_store", lambda config: broken_store)
        application = create_app()

        with pytest.raises(RuntimeError, match="schema version"):
            with TestClient(application):
                pass

        assert application.state.ready is False

    def test_bad_config_exits(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        bad = tmp_path / "config.yaml"
        bad.write_text("apikey:\n  environments: Live\n")
        monkeypatch.setenv("LATCHKEY_CONFIG", str(bad))

        with pytest.raises(SystemExit) as exc_info:
            load_config()

        assert exc_info.value.code == 1

    def test_bad_config_aborts_startup(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        bad = tmp_path / "config.yaml"
        bad.write_text("apikey:\n  environments: Live\n")
        monkeypatch.setenv("LATCHKEY_CONFIG", str(bad))
        application = create_app()

        # The exit surfaces as SystemExit or as the portal's cancellation,
        # depending on the anyio version driving TestClient.
        with pytest.raises(BaseException):
            with TestClient(application):
                pass

        assert application.state.ready is False


# ─── Exception handlers ───────────────────────────────────────────────────────


class TestExceptionHandlers:
    def test_protected_route_challenge_keeps_header(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        _patch_load_config(monkeypatch, _stub_config(tmp_path))

        with TestClient(create_app()) as client:
            response = client.get("/auth/session")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == 'Basic realm="/auth/apikey"'
        assert response.json() == {
            "error": {"message": "Unauthorized", "code": "unauthorized"}
        }

    def test_api_key_over_plain_http_forbidden(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        _patch_load_config(monkeypatch, _stub_config(tmp_path))
        header = "Basic " + base64.b64encode(b"SomeToken:").decode()

        with TestClient(create_app()) as client:
            response = client.get("/auth/session", headers={"Authorization": header})

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "forbidden"
