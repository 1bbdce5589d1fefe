"""Login endpoint tests: session cookie issuance and the ``next`` replay."""

from __future__ import annotations

from fastapi.testclient import TestClient

from tests.conftest import ADMIN
from wpauth.api.login import safe_next
from wpauth.services import token_service

# ---- GET /login ----


def test_login_page_renders(client: TestClient) -> None:
    resp = client.get("/login")
    assert resp.status_code == 200
    assert "text/html" in resp.headers["content-type"]
    assert '<form method="post"' in resp.text
    assert 'name="log"' in resp.text
    assert 'name="pwd"' in resp.text


def test_login_page_preserves_next(client: TestClient) -> None:
    resp = client.get("/login", params={"next": "/oauth2/v1/authorize?client_id=x"})
    assert resp.status_code == 200
    assert 'value="/oauth2/v1/authorize?client_id=x"' in resp.text


def test_login_page_escapes_next(client: TestClient) -> None:
    resp = client.get("/login", params={"next": '/"><script>alert(1)</script>'})
    assert "<script>alert(1)</script>" not in resp.text


# ---- POST /login ----


def test_login_success_sets_session_cookie(client: TestClient) -> None:
    resp = client.post(
        "/login",
        data={"log": ADMIN[0], "pwd": ADMIN[1], "next": "/oauth2/v1/authorize?foo=bar"},
    )
    assert resp.status_code == 302
    assert resp.headers["location"] == "/oauth2/v1/authorize?foo=bar"

    cookie = resp.cookies.get(token_service.SESSION_COOKIE)
    assert cookie is not None
    claims = token_service.decode_session_token(cookie)
    assert claims["sub"] == "1"

    set_cookie = resp.headers["set-cookie"]
    assert "HttpOnly" in set_cookie
    assert "SameSite=lax" in set_cookie


def test_login_accepts_email(client: TestClient) -> None:
    resp = client.post(
        "/login", data={"log": "ADMIN@example.com", "pwd": ADMIN[1], "next": "/"}
    )
    assert resp.status_code == 200
    assert "Welcome, Site Admin" in resp.text


def test_login_wrong_password(client: TestClient) -> None:
    resp = client.post("/login", data={"log": ADMIN[0], "pwd": "nope", "next": "/"})
    assert resp.status_code == 401
    assert "Invalid username" in resp.text
    assert token_service.SESSION_COOKIE not in resp.cookies


def test_login_refuses_absolute_next(client: TestClient) -> None:
    resp = client.post(
        "/login",
        data={"log": ADMIN[0], "pwd": ADMIN[1], "next": "https://evil.example/"},
    )
    # Falls back to the signed-in page instead of an open redirect.
    assert resp.status_code == 200


def test_safe_next() -> None:
    assert safe_next("/oauth2/v1/authorize?x=1") == "/oauth2/v1/authorize?x=1"
    assert safe_next(None) == "/"
    assert safe_next("") == "/"
    assert safe_next("//evil.example/") == "/"
    assert safe_next("https://evil.example/") == "/"
    assert safe_next("/\\evil.example") == "/"


def test_expired_or_garbage_session_means_login_again(client: TestClient) -> None:
    client.cookies.set(token_service.SESSION_COOKIE, "garbage")
    resp = client.get(
        "/oauth2/v1/authorize",
        params={
            "response_type": "code",
            "client_id": "demo-client",
            "redirect_uri": "http://localhost:5173/callback",
        },
    )
    assert resp.status_code == 302
    assert resp.headers["location"].startswith("/login?")
