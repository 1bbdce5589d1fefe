"""JWT password-grant relay in front of the WordPress JWT plugin.

  POST /api/login    username + password → access token, refresh cookie
  POST /api/refresh  refresh cookie → new access token
  POST /api/logout   deactivate the refresh token, clear the cookie
  GET  /api/me       the user behind a relay access token
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Cookie, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from wpauth.core.config import SETTINGS
from wpauth.services.relay_service import (
    ACCESS_TTL,
    REFRESH_TTL,
    RelayAuthError,
    RelayTokenService,
    UpstreamAuthError,
    UpstreamUnavailable,
    WordPressJwtClient,
)
from wpauth.services.token_store import token_store

logger = logging.getLogger(__name__)

PREFIX = "/api"
REFRESH_COOKIE = "refresh_token"

router = APIRouter(prefix=PREFIX, tags=["jwt-relay"])

# Module-level singletons; tests replace ``wordpress`` with a client on a
# MockTransport.
wordpress = WordPressJwtClient(SETTINGS.wp_jwt_endpoint)
relay_tokens = RelayTokenService(
    token_store,
    access_secret=SETTINGS.relay_access_secret,
    refresh_secret=SETTINGS.relay_refresh_secret,
)

_bearer = HTTPBearer(auto_error=False)


class LoginIn(BaseModel):
    username: str | None = None
    password: str | None = None


def _clear_refresh_cookie(response: JSONResponse) -> None:
    response.delete_cookie(
        REFRESH_COOKIE,
        path=PREFIX,
        httponly=True,
        samesite="strict",
        secure=SETTINGS.cookie_secure,
    )


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


@router.post("/login")
async def login(body: LoginIn) -> JSONResponse:
    if not body.username or not body.password:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST, "Username and password are required"
        )

    try:
        user = await wordpress.authenticate(body.username, body.password)
    except UpstreamAuthError as e:
        logger.warning(
            "Relay login rejected by WordPress  username=%s status=%d",
            body.username,
            e.status_code,
        )
        raise HTTPException(e.status_code, e.message) from None
    except UpstreamUnavailable:
        raise HTTPException(
            status.HTTP_502_BAD_GATEWAY, "WordPress authentication is unavailable"
        ) from None

    access_token = relay_tokens.issue_access_token(user)
    refresh_token = await relay_tokens.issue_refresh_token(user)

    response = JSONResponse(
        {"access_token": access_token, "user": user.public(), "expires_in": ACCESS_TTL}
    )
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=refresh_token,
        httponly=True,
        samesite="strict",
        secure=SETTINGS.cookie_secure,
        path=PREFIX,
        max_age=REFRESH_TTL,
    )
    logger.info("Relay login succeeded  user_id=%s", user.id)
    return response


@router.post("/refresh")
async def refresh(
    refresh_token: Annotated[str | None, Cookie(alias=REFRESH_COOKIE)] = None,
) -> JSONResponse:
    try:
        access_token, user = await relay_tokens.refresh(refresh_token)
    except RelayAuthError as e:
        response = JSONResponse(
            {"detail": str(e)}, status_code=status.HTTP_401_UNAUTHORIZED
        )
        _clear_refresh_cookie(response)
        return response
    logger.info("Relay access token refreshed  user_id=%s", user.id)
    return JSONResponse({"access_token": access_token, "expires_in": ACCESS_TTL})


@router.post("/logout")
async def logout(
    refresh_token: Annotated[str | None, Cookie(alias=REFRESH_COOKIE)] = None,
) -> JSONResponse:
    revoked = await relay_tokens.revoke(refresh_token)
    logger.info("Relay logout  revoked=%s", revoked)
    response = JSONResponse({"message": "Logged out successfully"})
    _clear_refresh_cookie(response)
    return response


@router.get("/me")
def me(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
) -> dict:
    try:
        user = relay_tokens.verify_access_token(
            credentials.credentials if credentials else None
        )
    except RelayAuthError as e:
        raise _unauthorized(str(e)) from None
    return {"user": user.public()}
