from __future__ import annotations

from fastapi.testclient import TestClient

from wpauth.main import app

client = TestClient(app, follow_redirects=False)


def test_routes_registered() -> None:
    paths = {route.path for route in app.routes}
    for path in (
        "/login",
        "/oauth2/v1/authorize",
        "/oauth2/v1/token",
        "/oauth2/v1/userinfo",
        "/oauth2/v1/refresh",
        "/oauth2/v1/logout",
        "/resource/me",
        "/resource/users",
        "/api/login",
        "/api/refresh",
        "/api/logout",
        "/api/me",
        "/health",
        "/ready",
        "/metrics",
    ):
        assert path in paths, path


def test_oauth2_errors_render_as_json() -> None:
    resp = client.post("/oauth2/v1/token", data={"grant_type": "password"})
    assert resp.status_code == 400
    assert resp.json() == {
        "error": "unsupported_grant_type",
        "error_description": "Only authorization_code is supported.",
    }
    assert resp.headers["cache-control"] == "no-store"


def test_cors_allows_configured_origin() -> None:
    resp = client.options(
        "/oauth2/v1/token",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
        },
    )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "http://localhost:5173"
    assert resp.headers["access-control-allow-credentials"] == "true"
