from __future__ import annotations

import logging
import math

import pytest
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.testclient import TestClient

from app.api import routes
from app.api.dependencies import rate_limited
from app.config import Settings
from app.domain.service import RateLimitService
from app.security.rate_limiter import InMemoryFixedWindowStore


class BrokenStore:
    """Store whose every call fails, to exercise the 500 path."""

    def peek(self, key, category, now_ms):
        raise RuntimeError("store offline")

    def hit(self, key, category, now_ms):
        raise RuntimeError("store offline")

    def clear(self, key):
        raise RuntimeError("store offline")

    def purge_expired(self, now_ms):
        return 0


@pytest.fixture
def api_client(service: RateLimitService):
    """Provide a FastAPI test client with isolated limiter state."""
    app = FastAPI()
    app.include_router(routes.router)
    app.state.rate_limit_service = service

    @app.post("/v1/keys", dependencies=[Depends(rate_limited("auth_attempts"))])
    def create_key(request: Request) -> dict[str, int]:
        return {"remaining": request.state.rate_limit.remaining}

    with TestClient(app) as client:
        yield client, service


def _call(client: TestClient, action: str | None, limit_type: str | None = "auth_attempts", identifier: str | None = "user-1"):
    body = {"action": action, "limit_type": limit_type, "identifier": identifier}
    return client.post("/v1/rate-limit", json={k: v for k, v in body.items() if v is not None})


def test_increment_returns_decision_and_headers(api_client, clock):
    client, _ = api_client
    response = _call(client, "increment")
    assert response.status_code == 200
    reset_ms = clock.now_ms + 300_000
    assert response.json() == {"allowed": True, "count": 1, "limit": 5, "resetTime": reset_ms}
    assert response.headers["X-RateLimit-Limit"] == "5"
    assert response.headers["X-RateLimit-Remaining"] == "4"
    assert response.headers["X-RateLimit-Reset"] == str(math.ceil(reset_ms / 1000))


def test_sixth_increment_is_rejected_with_429(api_client):
    client, _ = api_client
    for _ in range(5):
        assert _call(client, "increment").status_code == 200

    response = _call(client, "increment")
    assert response.status_code == 429
    body = response.json()
    assert body["allowed"] is False
    assert body["count"] == 6
    assert body["limit"] == 5
    assert response.headers["X-RateLimit-Remaining"] == "0"


def test_check_previews_without_counting(api_client):
    client, service = api_client
    response = _call(client, "check")
    assert response.status_code == 200
    assert response.json()["count"] == 0
    assert service.check("auth_attempts", "user-1").count == 0

    for _ in range(5):
        _call(client, "increment")
    blocked = _call(client, "check")
    assert blocked.status_code == 429
    assert blocked.json()["count"] == 5


def test_reset_returns_success(api_client):
    client, service = api_client
    _call(client, "increment")
    response = _call(client, "reset")
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Rate limit reset successfully"}
    assert service.check("auth_attempts", "user-1").count == 0

    again = _call(client, "reset", identifier="never-seen")
    assert again.status_code == 200
    assert again.json()["success"] is True


@pytest.mark.parametrize(
    "action, limit_type, identifier, message",
    [
        ("check", None, "user-1", "Limit type and identifier are required"),
        ("check", "auth_attempts", None, "Limit type and identifier are required"),
        ("check", "auth_attempts", "", "Limit type and identifier are required"),
        ("check", "uploads", "user-1", "Invalid limit type"),
        ("delete", "auth_attempts", "user-1", "Invalid action"),
        (None, "auth_attempts", "user-1", "Invalid action"),
        ("delete", "uploads", "user-1", "Invalid limit type"),
    ],
)
def test_validation_errors_return_400(api_client, action, limit_type, identifier, message):
    client, _ = api_client
    body = {"action": action, "limit_type": limit_type}
    if identifier is not None:
        body["identifier"] = identifier
    response = client.post("/v1/rate-limit", json=body)
    assert response.status_code == 400
    assert response.json() == {"error": message}


def test_numeric_identifier_is_accepted(api_client):
    client, _ = api_client
    response = client.post(
        "/v1/rate-limit",
        json={"action": "increment", "limit_type": "api_calls", "identifier": 42},
    )
    assert response.status_code == 200
    assert response.json()["count"] == 1


def test_malformed_body_returns_400(api_client):
    client, _ = api_client
    response = client.post(
        "/v1/rate-limit",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert "error" in response.json()


def test_unexpected_fault_returns_500(api_client):
    client, service = api_client
    client.app.state.rate_limit_service = RateLimitService(service.categories, BrokenStore())
    response = _call(client, "increment")
    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error", "details": "store offline"}


def test_plain_options_has_empty_body(api_client):
    client, _ = api_client
    response = client.options("/v1/rate-limit")
    assert response.status_code == 200
    assert response.content == b""


def test_categories_endpoint(api_client):
    client, _ = api_client
    response = client.get("/v1/rate-limit/categories")
    assert response.status_code == 200
    assert {item["name"]: item["max_requests"] for item in response.json()} == {
        "api_key_operations": 10,
        "api_calls": 100,
        "auth_attempts": 5,
    }


def test_gate_dependency_blocks_after_limit(api_client):
    client, service = api_client
    headers = {"X-Client-ID": "key-owner"}
    remaining = [client.post("/v1/keys", headers=headers).json()["remaining"] for _ in range(5)]
    assert remaining == [4, 3, 2, 1, 0]

    blocked = client.post("/v1/keys", headers=headers)
    assert blocked.status_code == 429
    assert blocked.json()["detail"] == "rate limited"
    assert blocked.headers["X-RateLimit-Limit"] == "5"

    # other callers have their own window
    assert client.post("/v1/keys", headers={"X-Client-ID": "someone-else"}).status_code == 200


def test_gate_dependency_falls_back_to_client_host(api_client):
    client, service = api_client
    assert client.post("/v1/keys").status_code == 200
    assert service.check("auth_attempts", "testclient").count == 1


def test_application_lifespan_wires_service():
    from app.main import app

    with TestClient(app) as client:
        assert client.get("/healthz").json() == {"status": "ok"}
        assert app.state.sweeper.running
        response = client.post(
            "/v1/rate-limit",
            json={"action": "increment", "limit_type": "api_calls", "identifier": "lifespan"},
        )
        assert response.status_code == 200
        assert client.get("/metrics").status_code == 200

        preflight = client.options(
            "/v1/rate-limit",
            headers={"Origin": "https://example.com", "Access-Control-Request-Method": "POST"},
        )
        assert preflight.status_code == 200
        assert preflight.headers["access-control-allow-origin"] == "*"
        assert preflight.content == b""

        with_client_id = client.options(
            "/v1/rate-limit",
            headers={
                "Origin": "https://example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type, x-client-id",
            },
        )
        assert with_client_id.status_code == 200
        assert with_client_id.content == b""
        assert "x-client-id" in with_client_id.headers["access-control-allow-headers"].lower()

    assert not app.state.sweeper.running


def test_non_utf8_body_returns_400(api_client):
    client, _ = api_client
    response = client.post(
        "/v1/rate-limit",
        content=b'{"action": "\xff"}',
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request body"}


def test_gate_dependency_without_any_identifier_returns_400(api_client):
    client, _ = api_client
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/v1/keys",
        "headers": [],
        "query_string": b"",
        "app": client.app,
    }
    with pytest.raises(HTTPException) as excinfo:
        rate_limited("auth_attempts")(Request(scope))
    assert excinfo.value.status_code == 400
    assert excinfo.value.detail == "Limit type and identifier are required"


def test_redis_backend_without_url_warns_and_uses_memory(caplog):
    from app.main import build_store

    with caplog.at_level(logging.WARNING, logger="app.main"):
        store = build_store(Settings(rate_limit_backend="redis", redis_url=""))
    assert isinstance(store, InMemoryFixedWindowStore)
    assert any("REDIS_URL is empty" in record.getMessage() for record in caplog.records)
