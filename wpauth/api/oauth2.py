from __future__ import annotations

import logging
from typing import Annotated
from urllib.parse import urlencode

from fastapi import APIRouter, Cookie, Depends, Form, Query, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from wpauth.api import consent_page
from wpauth.api.dependencies import (
    authorization_server,
    get_session_principal,
    oauth2_scheme,
    require_bearer,
)
from wpauth.core.config import SETTINGS
from wpauth.core.logging import bind_request_context
from wpauth.core.metrics import AUTHORIZE_DECISIONS
from wpauth.models.access_token import IssuedTokens
from wpauth.models.principal import Principal
from wpauth.services.authorization_server import (
    REFRESH_TTL,
    AuthorizeRequest,
    CodeIssued,
    ConsentRequired,
    ErrorPage,
    ErrorRedirect,
    LoginRequired,
    OAuth2Error,
    outcome_of,
)

# ---------------------------------------------------------------------------
# Authorization Server: OAuth2 authorization code (+ optional PKCE)
#
# Endpoints:
#   GET  /oauth2/v1/authorize  login / consent screen, or error redirect
#   POST /oauth2/v1/authorize  consent decision, redirect with code
#   POST /oauth2/v1/token      code → access token (+ refresh cookie)
#   GET  /oauth2/v1/userinfo   profile filtered by granted scopes
#   POST /oauth2/v1/refresh    rotate the refresh cookie
#   POST /oauth2/v1/logout     revoke tokens, clear the cookie
# ---------------------------------------------------------------------------

logger = logging.getLogger(__name__)

PREFIX = "/oauth2/v1"
REFRESH_COOKIE = "wpauth_refresh"

router = APIRouter(prefix=PREFIX, tags=["oauth2"])

# Token responses must never be cached (RFC 6749 §5.1).
_NO_STORE = {"Cache-Control": "no-store", "Pragma": "no-cache"}


def _render_decision(
    decision: ErrorRedirect | ErrorPage | LoginRequired | ConsentRequired | CodeIssued,
) -> Response:
    AUTHORIZE_DECISIONS.labels(outcome=outcome_of(decision)).inc()

    if isinstance(decision, (ErrorRedirect, CodeIssued)):
        return RedirectResponse(decision.location, status_code=status.HTTP_302_FOUND)
    if isinstance(decision, ErrorPage):
        return HTMLResponse(
            consent_page.render_error(
                decision.error, decision.description, site_name=SETTINGS.site_name
            ),
            status_code=status.HTTP_400_BAD_REQUEST,
        )
    if isinstance(decision, LoginRequired):
        authorize_url = f"{PREFIX}/authorize?{urlencode(decision.request.to_params())}"
        return RedirectResponse(
            f"/login?{urlencode({'next': authorize_url})}",
            status_code=status.HTTP_302_FOUND,
        )
    return HTMLResponse(
        consent_page.render_consent(decision, site_name=SETTINGS.site_name)
    )


def _set_refresh_cookie(response: Response, tokens: IssuedTokens) -> None:
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=tokens.refresh_token,
        httponly=True,
        samesite="lax",
        secure=SETTINGS.cookie_secure,
        path=PREFIX,
        max_age=REFRESH_TTL,
    )


def _clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(
        REFRESH_COOKIE,
        path=PREFIX,
        httponly=True,
        samesite="lax",
        secure=SETTINGS.cookie_secure,
    )


def _token_response(tokens: IssuedTokens) -> JSONResponse:
    response = JSONResponse(tokens.to_response(), headers=_NO_STORE)
    _set_refresh_cookie(response, tokens)
    return response


# ========================== GET /authorize =================================


@router.get("/authorize", response_model=None)
def authorize(
    principal: Annotated[Principal | None, Depends(get_session_principal)],
    response_type: str | None = Query(None),
    client_id: str | None = Query(None),
    redirect_uri: str | None = Query(None),
    state: str | None = Query(None),
    scope: str | None = Query(None),
    code_challenge: str | None = Query(None),
    code_challenge_method: str | None = Query(None),
) -> Response:
    req = AuthorizeRequest(
        response_type=response_type,
        client_id=client_id,
        redirect_uri=redirect_uri,
        state=state,
        scope=scope,
        code_challenge=code_challenge,
        code_challenge_method=code_challenge_method,
    )
    bind_request_context(
        client_id=client_id, user_id=principal.user_id if principal else None
    )
    logger.info(
        "OAUTH2 [authorize] request  client_id=%s signed_in=%s",
        client_id,
        principal is not None,
        extra={"client_id": client_id},
    )
    return _render_decision(authorization_server.evaluate_authorize(req, principal))


# ========================== POST /authorize ================================


@router.post("/authorize", response_model=None)
async def consent(
    principal: Annotated[Principal | None, Depends(get_session_principal)],
    client_id: str | None = Form(None),
    redirect_uri: str | None = Form(None),
    state: str | None = Form(None),
    scope: str | None = Form(None),
    code_challenge: str | None = Form(None),
    code_challenge_method: str | None = Form(None),
    oauth2_consent: str | None = Form(None),
) -> Response:
    # The consent form implies response_type=code; anything but an explicit
    # "approve" counts as a denial.
    req = AuthorizeRequest(
        response_type="code",
        client_id=client_id,
        redirect_uri=redirect_uri,
        state=state,
        scope=scope,
        code_challenge=code_challenge or None,
        code_challenge_method=code_challenge_method or None,
    )
    bind_request_context(
        client_id=client_id, user_id=principal.user_id if principal else None
    )
    decision = await authorization_server.decide_consent(
        req, principal, approve=oauth2_consent == "approve"
    )
    return _render_decision(decision)


# ========================== POST /token ====================================


@router.post("/token", response_model=None)
async def token(
    grant_type: str | None = Form(None),
    code: str | None = Form(None),
    redirect_uri: str | None = Form(None),
    client_id: str | None = Form(None),
    client_secret: str | None = Form(None),
    code_verifier: str | None = Form(None),
) -> JSONResponse:
    bind_request_context(client_id=client_id)
    tokens = await authorization_server.exchange_code(
        grant_type=grant_type,
        code=code,
        redirect_uri=redirect_uri,
        client_id=client_id,
        client_secret=client_secret,
        code_verifier=code_verifier,
    )
    return _token_response(tokens)


# ========================== GET /userinfo ==================================


@router.get("/userinfo")
def userinfo(principal: Annotated[Principal, Depends(require_bearer)]) -> dict:
    return authorization_server.userinfo(principal)


# ========================== POST /refresh ==================================


@router.post("/refresh", response_model=None)
async def refresh(
    refresh_token: Annotated[str | None, Cookie(alias=REFRESH_COOKIE)] = None,
) -> JSONResponse:
    try:
        tokens = await authorization_server.refresh(refresh_token)
    except OAuth2Error as e:
        logger.warning("OAUTH2 [refresh] FAIL: %s", e)
        response = JSONResponse(
            {"error": e.error, "error_description": e.description},
            status_code=e.status_code,
            headers=_NO_STORE,
        )
        _clear_refresh_cookie(response)
        return response
    return _token_response(tokens)


# ========================== POST /logout ===================================


@router.post("/logout")
async def logout(
    access_token: Annotated[str | None, Depends(oauth2_scheme)],
    refresh_token: Annotated[str | None, Cookie(alias=REFRESH_COOKIE)] = None,
) -> JSONResponse:
    revoked = await authorization_server.revoke(
        access_token=access_token, refresh_token=refresh_token
    )
    logger.info(
        "OAUTH2 [logout] bearer=%s cookie=%s revoked=%s",
        access_token is not None,
        refresh_token is not None,
        revoked,
    )
    response = JSONResponse({"revoked": revoked})
    _clear_refresh_cookie(response)
    return response
