from __future__ import annotations

import logging
from typing import Annotated

import jwt
from fastapi import Depends, Request
from fastapi.security import OAuth2AuthorizationCodeBearer

from wpauth.api.login import user_repo
from wpauth.core.config import SETTINGS
from wpauth.core.logging import bind_request_context
from wpauth.models.client import Client
from wpauth.models.principal import Principal
from wpauth.repos.client_registry import InMemoryClientRegistry
from wpauth.services import token_service
from wpauth.services.authorization_server import AuthorizationServer, OAuth2Error
from wpauth.services.token_store import token_store

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singletons shared by the OAuth2 router and resource endpoints
# ---------------------------------------------------------------------------
client_registry = InMemoryClientRegistry()
authorization_server = AuthorizationServer(client_registry, token_store, user_repo)

DEMO_CLIENT_ID = "demo-client"
DEMO_CLIENT_SECRET = "demo-secret"
DEMO_REDIRECT_URIS = (
    "http://localhost:5173/callback",
    "http://localhost:3000/callback",
)


def seed_demo_client() -> Client:
    """The React demo app: confidential, PKCE optional."""
    return client_registry.register(
        DEMO_CLIENT_ID,
        DEMO_CLIENT_SECRET,
        DEMO_REDIRECT_URIS,
        name="React WordPress OAuth2 Demo",
    )


if not SETTINGS.is_prod:
    seed_demo_client()


oauth2_scheme = OAuth2AuthorizationCodeBearer(
    authorizationUrl="/oauth2/v1/authorize",
    tokenUrl="/oauth2/v1/token",
    auto_error=False,
)


def get_session_principal(request: Request) -> Principal | None:
    """The user signed in to the auth server itself, or None.

    An invalid or expired session cookie is treated as no session: the
    user is simply sent to the login page again.
    """
    raw = request.cookies.get(token_service.SESSION_COOKIE)
    if not raw:
        return None
    try:
        claims = token_service.decode_session_token(raw)
    except jwt.InvalidTokenError as e:
        logger.info("Session cookie ignored: %s", e)
        return None

    try:
        user_id = int(claims["sub"])
    except ValueError:
        return None
    user = user_repo.get_by_id(user_id)
    if user is None:
        logger.warning("Session for missing user=%s ignored", claims["sub"])
        return None
    return Principal.from_user(user)


async def require_bearer(
    raw_token: Annotated[str | None, Depends(oauth2_scheme)],
) -> Principal:
    """Resolve an opaque OAuth2 access token. Raises invalid_token (401)."""
    principal = await authorization_server.authenticate_bearer(raw_token)
    bind_request_context(client_id=principal.client_id, user_id=principal.user_id)
    logger.debug(
        "Bearer token accepted  user=%s client_id=%s scopes=%s",
        principal.user_id,
        principal.client_id,
        principal.scopes,
    )
    return principal


def require_scope(scope: str):
    """Dependency factory: demand a granted scope.

    Usage: Depends(require_scope("manage_users"))
    """

    def _check(principal: Annotated[Principal, Depends(require_bearer)]) -> Principal:
        if not principal.has_scope(scope):
            logger.warning(
                "Scope denied  user=%s required=%s granted=%s",
                principal.user_id,
                scope,
                principal.scopes,
            )
            raise OAuth2Error(
                "insufficient_scope", f"This resource requires the {scope!r} scope.", 403
            )
        return principal

    return _check
