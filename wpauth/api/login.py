"""Login UI: the authorization server's own sign-in form.

When /oauth2/v1/authorize finds no session cookie it redirects here with
the full authorize URL in ``next``.  A successful login sets an HttpOnly
session cookie and replays that URL.
"""

from __future__ import annotations

import html
import logging

from fastapi import APIRouter, Form, Query
from fastapi.responses import HTMLResponse, RedirectResponse

from wpauth.core.config import SETTINGS
from wpauth.core.logging import bind_request_context
from wpauth.models.user import User
from wpauth.repos.user_repo import InMemoryUserRepo
from wpauth.services import auth_service, token_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["login"])

# ---------------------------------------------------------------------------
# Module-level singleton (shared with the OAuth2 dependencies)
# ---------------------------------------------------------------------------
user_repo = InMemoryUserRepo()

DEMO_USERS: tuple[tuple[str, str, str, tuple[str, ...]], ...] = (
    # username, display name, password, roles
    ("admin", "Site Admin", "admin-password", ("administrator",)),
    ("editor", "Eddie Editor", "editor-password", ("editor",)),
    ("subscriber", "Sam Subscriber", "subscriber-password", ("subscriber",)),
)


def seed_demo_users() -> None:
    """Seed one user per interesting role. Skip the ones already present."""
    for username, display_name, password, roles in DEMO_USERS:
        if user_repo.get_by_login(username) is not None:
            continue
        user_repo.add(
            User(
                id=user_repo.next_id(),
                username=username,
                email=f"{username}@example.com",
                display_name=display_name,
                password_hash=auth_service.hash_secret(password),
                roles=roles,
            )
        )


if not SETTINGS.is_prod:
    seed_demo_users()


def safe_next(next_url: str | None) -> str:
    """Only same-origin relative paths are replayed after login."""
    if not next_url or not next_url.startswith("/") or next_url.startswith("//"):
        return "/"
    if "\\" in next_url:
        return "/"
    return next_url


# ---------------------------------------------------------------------------
# Minimal login form (inline HTML)
# ---------------------------------------------------------------------------

_LOGIN_HTML = """\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>Log In &lsaquo; {site}</title>
  <style>
    * {{ margin: 0; padding: 0; box-sizing: border-box; }}
    body {{
      font-family: system-ui, -apple-system, sans-serif;
      display: flex; justify-content: center; align-items: center;
      min-height: 100vh; background: #f0f0f1;
    }}
    .card {{
      background: #fff; padding: 2rem; border-radius: 4px;
      box-shadow: 0 1px 3px rgba(0,0,0,.13); width: 320px;
    }}
    h1 {{ font-size: 1.25rem; margin-bottom: 1.5rem; text-align: center; }}
    label {{ display: block; font-size: .85rem; margin-bottom: .25rem; }}
    input[type=text], input[type=password] {{
      width: 100%; padding: .5rem; margin-bottom: 1rem;
      border: 1px solid #8c8f94; border-radius: 4px; font-size: .95rem;
    }}
    button {{
      width: 100%; padding: .6rem; background: #2271b1; color: #fff;
      border: none; border-radius: 4px; font-size: .95rem; cursor: pointer;
    }}
    button:hover {{ background: #135e96; }}
    .error {{ color: #d63638; font-size: .85rem; margin-bottom: 1rem; }}
  </style>
</head>
<body>
  <div class="card">
    <h1>{site}</h1>
    {error}
    <form method="post" action="/login">
      <label for="log">Username or Email Address</label>
      <input id="log" name="log" type="text" required autofocus>
      <label for="pwd">Password</label>
      <input id="pwd" name="pwd" type="password" required>
      <input type="hidden" name="next" value="{next_url}">
      <button type="submit">Log In</button>
    </form>
  </div>
</body>
</html>
"""


def _render(next_url: str, error: str | None = None) -> str:
    error_block = f'<p class="error">{html.escape(error)}</p>' if error else ""
    return _LOGIN_HTML.format(
        site=html.escape(SETTINGS.site_name),
        next_url=html.escape(next_url, quote=True),
        error=error_block,
    )


# ========================== GET /login ======================================


@router.get("/login")
def login_page(
    next: str | None = Query(None),
    error: str | None = Query(None),
) -> HTMLResponse:
    """Render the login form. Preserves ?next so we redirect after login."""
    return HTMLResponse(_render(safe_next(next), error))


# ========================== POST /login =====================================


@router.post("/login", response_model=None)
def login_submit(
    log: str = Form(...),
    pwd: str = Form(...),
    next: str = Form("/"),
) -> RedirectResponse | HTMLResponse:
    """Validate credentials, set session cookie, redirect to *next*."""
    target = safe_next(next)
    logger.info("Login attempt  login=%s", log)

    user = auth_service.authenticate_user(user_repo, log, pwd)
    if user is None:
        logger.warning("Login failed  login=%s", log)
        return HTMLResponse(
            _render(target, "Invalid username, email address or password."),
            status_code=401,
        )

    bind_request_context(user_id=user.id)
    session_jwt = token_service.create_session_token(sub=str(user.id))

    if target != "/":
        response: RedirectResponse | HTMLResponse = RedirectResponse(
            url=target, status_code=302
        )
    else:
        response = HTMLResponse(
            "<!DOCTYPE html><html><head>"
            "<meta charset='utf-8'>"
            "<title>Logged in</title>"
            "</head><body>"
            "<h1>Signed in</h1>"
            f"<p>Welcome, {html.escape(user.display_name)}</p>"
            "</body></html>"
        )

    response.set_cookie(
        key=token_service.SESSION_COOKIE,
        value=session_jwt,
        httponly=True,
        samesite="lax",
        secure=SETTINGS.cookie_secure,
        path="/",
        max_age=token_service.SESSION_TTL_MIN * 60,
    )
    logger.info("Login succeeded  user_id=%s", user.id)
    return response
