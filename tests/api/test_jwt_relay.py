"""JWT relay: /api/login, /api/refresh, /api/logout, /api/me.

WordPress is replaced by an httpx.MockTransport; no network is used.
"""

from __future__ import annotations

import json

import httpx
import jwt as pyjwt
import pytest
from fastapi.testclient import TestClient

from wpauth.api import jwt_relay
from wpauth.core.config import SETTINGS
from wpauth.services.relay_service import WordPressJwtClient

WP_ENDPOINT = "http://wordpress.test/wp-json/jwt-auth/v1/token"


def _wordpress(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    if body == {"username": "alice", "password": "correct horse"}:
        return httpx.Response(
            200,
            json={
                "token": "wp-issued-token",
                "user_id": 7,
                "user_email": "alice@example.com",
                "user_nicename": "alice",
                "user_display_name": "Alice",
            },
        )
    return httpx.Response(
        403,
        json={
            "code": "[jwt_auth] incorrect_password",
            "message": "The password you entered is incorrect.",
        },
    )


@pytest.fixture(autouse=True)
def fake_wordpress() -> None:
    jwt_relay.wordpress = WordPressJwtClient(
        WP_ENDPOINT, transport=httpx.MockTransport(_wordpress)
    )


def _login(client: TestClient, password: str = "correct horse"):
    return client.post("/api/login", json={"username": "alice", "password": password})


def test_login_returns_access_token_and_sets_cookie(client: TestClient) -> None:
    resp = _login(client)
    assert resp.status_code == 200
    body = resp.json()
    assert body["expires_in"] == 900
    assert body["user"] == {
        "id": 7,
        "email": "alice@example.com",
        "nicename": "alice",
        "displayName": "Alice",
    }
    assert "refresh_token" not in body

    claims = pyjwt.decode(
        body["access_token"], SETTINGS.relay_access_secret, algorithms=["HS256"]
    )
    assert claims["sub"] == "7"
    assert claims["typ"] == "access"
    assert "wp-issued-token" not in body["access_token"]

    set_cookie = resp.headers["set-cookie"]
    assert "refresh_token=" in set_cookie
    assert "HttpOnly" in set_cookie
    assert "Path=/api" in set_cookie
    assert "SameSite=strict" in set_cookie


def test_login_requires_both_fields(client: TestClient) -> None:
    resp = client.post("/api/login", json={"username": "alice"})
    assert resp.status_code == 400


def test_login_passes_through_wordpress_rejection(client: TestClient) -> None:
    resp = _login(client, password="wrong")
    assert resp.status_code == 403
    assert resp.json()["detail"] == "The password you entered is incorrect."


def test_login_upstream_unreachable_is_502(client: TestClient) -> None:
    def _down(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    jwt_relay.wordpress = WordPressJwtClient(
        WP_ENDPOINT, transport=httpx.MockTransport(_down)
    )
    resp = _login(client)
    assert resp.status_code == 502


def test_me_with_access_token(client: TestClient) -> None:
    token = _login(client).json()["access_token"]
    resp = client.get("/api/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json()["user"]["id"] == 7


def test_me_rejects_missing_and_bad_tokens(client: TestClient) -> None:
    assert client.get("/api/me").status_code == 401
    resp = client.get("/api/me", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401


def test_refresh_token_cannot_be_used_as_access_token(client: TestClient) -> None:
    _login(client)
    refresh_token = client.cookies.get("refresh_token")
    resp = client.get("/api/me", headers={"Authorization": f"Bearer {refresh_token}"})
    assert resp.status_code == 401


def test_refresh_issues_new_access_token(client: TestClient) -> None:
    _login(client)
    resp = client.post("/api/refresh")
    assert resp.status_code == 200
    body = resp.json()
    assert body["expires_in"] == 900
    me = client.get("/api/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.json()["user"]["displayName"] == "Alice"


def test_refresh_without_cookie_is_401(client: TestClient) -> None:
    assert client.post("/api/refresh").status_code == 401


def test_refresh_fails_after_logout(client: TestClient) -> None:
    _login(client)
    refresh_token = client.cookies.get("refresh_token")

    resp = client.post("/api/logout")
    assert resp.status_code == 200
    assert resp.json() == {"message": "Logged out successfully"}

    # Even replaying the old cookie explicitly must fail.
    client.cookies.set("refresh_token", refresh_token, path="/api")
    assert client.post("/api/refresh").status_code == 401
