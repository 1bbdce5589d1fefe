from __future__ import annotations

import sys
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import wpauth` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from wpauth.api import jwt_relay  # noqa: E402
from wpauth.api.dependencies import (  # noqa: E402
    DEMO_CLIENT_ID,
    DEMO_CLIENT_SECRET,
    DEMO_REDIRECT_URIS,
    client_registry,
    seed_demo_client,
)
from wpauth.api.login import user_repo  # noqa: E402
from wpauth.main import app  # noqa: E402
from wpauth.services import pkce_service  # noqa: E402
from wpauth.services.token_store import token_store  # noqa: E402

CONFIDENTIAL_CLIENT_ID = DEMO_CLIENT_ID
CONFIDENTIAL_SECRET = DEMO_CLIENT_SECRET
REDIRECT_URI = DEMO_REDIRECT_URIS[0]

PUBLIC_CLIENT_ID = "spa-client"
PUBLIC_REDIRECT_URI = "http://localhost:5173/spa/callback"

ADMIN = ("admin", "admin-password")
EDITOR = ("editor", "editor-password")
SUBSCRIBER = ("subscriber", "subscriber-password")

# Snapshot of the seeded demo users, restored before every test.
_SEEDED_BY_ID = dict(user_repo._by_id)
_SEEDED_BY_LOGIN = dict(user_repo._by_login)


@pytest.fixture(autouse=True)
def reset_token_store() -> None:
    """Drop every code and token between tests."""
    if hasattr(token_store, "_entries"):
        token_store._entries.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_users() -> None:
    user_repo._by_id.clear()
    user_repo._by_id.update(_SEEDED_BY_ID)
    user_repo._by_login.clear()
    user_repo._by_login.update(_SEEDED_BY_LOGIN)


@pytest.fixture(autouse=True)
def reset_clients() -> None:
    """Registry holds exactly the demo client and one public client."""
    client_registry._by_client_id.clear()
    seed_demo_client()
    client_registry.register(
        PUBLIC_CLIENT_ID, None, [PUBLIC_REDIRECT_URI], name="Single-Page App"
    )


@pytest.fixture(autouse=True)
def restore_relay_upstream():
    original = jwt_relay.wordpress
    yield
    jwt_relay.wordpress = original


@pytest.fixture
def client() -> TestClient:
    return TestClient(app, follow_redirects=False)


# ---------------------------------------------------------------------------
# OAuth2 flow helpers
# ---------------------------------------------------------------------------


def login_as(client: TestClient, user: tuple[str, str] = ADMIN) -> None:
    """POST /login so the session cookie is set on *client*."""
    username, password = user
    resp = client.post("/login", data={"log": username, "pwd": password, "next": "/"})
    assert resp.status_code == 200, f"Login failed: {resp.status_code}"


def authorize_params(**overrides: str | None) -> dict[str, str]:
    params: dict[str, str | None] = {
        "response_type": "code",
        "client_id": CONFIDENTIAL_CLIENT_ID,
        "redirect_uri": REDIRECT_URI,
        "state": "xyz-anti-csrf",
        "scope": "read write",
    }
    params.update(overrides)
    return {k: v for k, v in params.items() if v is not None}


def consent_form(params: dict[str, str], decision: str = "approve") -> dict[str, str]:
    """The hidden fields the consent page would post back."""
    form = {
        k: params[k]
        for k in (
            "client_id",
            "redirect_uri",
            "state",
            "scope",
            "code_challenge",
            "code_challenge_method",
        )
        if k in params
    }
    form["oauth2_consent"] = decision
    return form


def redirect_query(location: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlparse(location).query).items()}


def obtain_code(
    client: TestClient,
    *,
    pkce: bool = True,
    **overrides: str | None,
) -> tuple[str, str | None, dict[str, str]]:
    """Drive authorize + consent for an already signed-in *client*.

    Returns (code, code_verifier, authorize params).
    """
    verifier = None
    if pkce:
        verifier = pkce_service.generate_code_verifier()
        overrides.setdefault("code_challenge", pkce_service.compute_code_challenge(verifier))
        overrides.setdefault("code_challenge_method", "S256")
    params = authorize_params(**overrides)

    page = client.get("/oauth2/v1/authorize", params=params)
    assert page.status_code == 200, f"Expected consent page, got {page.status_code}"

    resp = client.post("/oauth2/v1/authorize", data=consent_form(params))
    assert resp.status_code == 302
    query = redirect_query(resp.headers["location"])
    assert "code" in query, f"No code in redirect: {resp.headers['location']}"
    return query["code"], verifier, params


def token_form(
    code: str,
    *,
    verifier: str | None = None,
    secret: str | None = None,
    client_id: str = CONFIDENTIAL_CLIENT_ID,
    redirect_uri: str = REDIRECT_URI,
) -> dict[str, str]:
    form = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "client_id": client_id,
    }
    if verifier:
        form["code_verifier"] = verifier
    if secret:
        form["client_secret"] = secret
    return form


def issue_tokens(
    client: TestClient, user: tuple[str, str] = ADMIN, scope: str = "read write"
) -> dict:
    """Full flow for *user*; returns the /token JSON body."""
    login_as(client, user)
    code, verifier, _ = obtain_code(client, scope=scope)
    resp = client.post("/oauth2/v1/token", data=token_form(code, verifier=verifier))
    assert resp.status_code == 200, resp.text
    return resp.json()
