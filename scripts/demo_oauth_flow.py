"""Demo: one full authorization-code round-trip, in process.

The "browser" is a FastAPI TestClient (login form and consent screen);
the "app" is a TokenLifecycleManager talking to the same ASGI app over
httpx.ASGITransport, so its cookie jar holds the refresh cookie.

Run with:
    python scripts/demo_oauth_flow.py
"""

from __future__ import annotations

import asyncio
from urllib.parse import parse_qs, urlsplit

import httpx
from fastapi.testclient import TestClient

from wpauth.api.dependencies import DEMO_CLIENT_ID, DEMO_CLIENT_SECRET, DEMO_REDIRECT_URIS
from wpauth.client.config import OAuthClientConfig
from wpauth.client.lifecycle import TokenLifecycleManager
from wpauth.client.oauth_api import OAuthApi
from wpauth.main import app

BASE_URL = "http://auth.test"
SCOPES = ["read", "write", "manage_users"]


def _browser_authorize(browser: TestClient, authorize_url: str) -> str:
    """Sign in, approve the consent screen, return the callback URL."""
    parts = urlsplit(authorize_url)

    # ── Step 1: unauthenticated /authorize bounces to /login ───────
    r = browser.get(f"{parts.path}?{parts.query}")
    print(f"1. GET  /authorize (no session)  → {r.status_code}  {r.headers['location'][:40]}…")

    # ── Step 2: POST /login ────────────────────────────────────────
    r = browser.post("/login", data={"log": "admin", "pwd": "admin-password", "next": "/"})
    print(f"2. POST /login                   → {r.status_code}  (session cookie set)")

    # ── Step 3: consent screen ─────────────────────────────────────
    r = browser.get(f"{parts.path}?{parts.query}")
    print(f"3. GET  /authorize (signed in)   → {r.status_code}  (consent screen)")

    # ── Step 4: approve ────────────────────────────────────────────
    form = {k: v[0] for k, v in parse_qs(parts.query).items() if k != "response_type"}
    form["oauth2_consent"] = "approve"
    r = browser.post(parts.path, data=form)
    print(f"4. POST /authorize (approve)     → {r.status_code}  code issued")
    return r.headers["location"]


async def _app_side(manager: TokenLifecycleManager, browser: TestClient) -> None:
    callback_url = _browser_authorize(browser, manager.login(SCOPES))

    # ── Step 5: callback → token exchange + userinfo ───────────────
    ok = await manager.handle_callback(callback_url)
    print(
        f"5. handle_callback               → {ok}  user={manager.user['username']}  "
        f"scopes={' '.join(manager.granted_scopes)}"
    )

    # ── Step 6: protected resource ─────────────────────────────────
    r = browser.get(
        "/resource/users", headers={"Authorization": f"Bearer {manager.access_token}"}
    )
    print(f"6. GET  /resource/users (bearer) → {r.status_code}  {len(r.json())} users")

    # ── Step 7: duplicate callback is a no-op ──────────────────────
    print(f"7. handle_callback (again)       → {await manager.handle_callback(callback_url)}")

    # ── Step 8: silent refresh ─────────────────────────────────────
    before = manager.access_token
    ok = await manager.refresh()
    print(f"8. refresh                       → {ok}  rotated={manager.access_token != before}")

    # ── Step 9: logout ─────────────────────────────────────────────
    await manager.logout()
    print(f"9. logout                        → state={manager.state.value}")

    await manager.close()


def main() -> None:
    browser = TestClient(app, follow_redirects=False)
    config = OAuthClientConfig(
        base_url=BASE_URL,
        client_id=DEMO_CLIENT_ID,
        client_secret=DEMO_CLIENT_SECRET,
        redirect_uri=DEMO_REDIRECT_URIS[0],
    )
    api = OAuthApi(config, transport=httpx.ASGITransport(app=app))
    asyncio.run(_app_side(TokenLifecycleManager(config, api=api), browser))
    print("\nAll steps completed.")


if __name__ == "__main__":
    main()
