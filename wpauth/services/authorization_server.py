"""OAuth2 authorization-code server: the decision layer.

Nothing in here knows about HTTP.  ``evaluate_authorize`` and
``decide_consent`` return decision values that the router turns into
redirects or pages; the token-side operations raise ``OAuth2Error``,
which the app's exception handler renders as RFC 6749 JSON.

Validation order matters and is part of the contract:

  authorize:  response_type → client_id/redirect_uri present → client known
              → exact redirect_uri → PKCE params → scope availability
              → signed in → capability filter → consent
  token:      grant_type → client authentication → code (atomic take)
              → client_id bound → redirect_uri bound → PKCE

Until the redirect_uri has been verified against the registry, errors are
shown as a page and never redirected: an unverified URI is exactly what an
attacker would supply.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from wpauth.core.logging import fingerprint
from wpauth.core.metrics import TOKEN_REQUESTS
from wpauth.models.access_token import IssuedTokens, TokenGrant
from wpauth.models.authorization_code import AuthorizationCode
from wpauth.models.client import Client
from wpauth.models.principal import Principal
from wpauth.repos.client_registry import ClientRegistry
from wpauth.repos.user_repo import UserRepo
from wpauth.services import pkce_service, scope_policy
from wpauth.services.token_store import TokenStore, credential_key

logger = logging.getLogger(__name__)

CODE_TTL = 300  # 5 minutes
TOKEN_TTL = 3600  # 1 hour
REFRESH_TTL = 7 * 24 * 3600  # 7 days


class OAuth2Error(Exception):
    """A protocol failure rendered as ``{"error", "error_description"}``."""

    def __init__(self, error: str, description: str, status_code: int = 400) -> None:
        super().__init__(f"{error}: {description}")
        self.error = error
        self.description = description
        self.status_code = status_code


def add_query_params(url: str, params: dict[str, str | None]) -> str:
    """Append non-empty *params* to *url*, keeping any query it already has."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend((k, v) for k, v in params.items() if v)
    return urlunsplit(parts._replace(query=urlencode(query)))


# ---------------------------------------------------------------------------
# Request and decision values
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AuthorizeRequest:
    response_type: str | None = None
    client_id: str | None = None
    redirect_uri: str | None = None
    state: str | None = None
    scope: str | None = None
    code_challenge: str | None = None
    code_challenge_method: str | None = None

    def to_params(self) -> dict[str, str]:
        """Non-empty parameters, in a stable order, for replaying the request."""
        return {
            k: v
            for k, v in (
                ("response_type", self.response_type),
                ("client_id", self.client_id),
                ("redirect_uri", self.redirect_uri),
                ("scope", self.scope),
                ("state", self.state),
                ("code_challenge", self.code_challenge),
                ("code_challenge_method", self.code_challenge_method),
            )
            if v
        }


@dataclass(frozen=True, slots=True)
class ErrorRedirect:
    redirect_uri: str
    error: str
    state: str | None = None

    @property
    def location(self) -> str:
        return add_query_params(
            self.redirect_uri, {"error": self.error, "state": self.state}
        )


@dataclass(frozen=True, slots=True)
class ErrorPage:
    error: str
    description: str


@dataclass(frozen=True, slots=True)
class LoginRequired:
    request: AuthorizeRequest


@dataclass(frozen=True, slots=True)
class ConsentRequired:
    client: Client
    request: AuthorizeRequest
    principal: Principal
    scopes: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class CodeIssued:
    redirect_uri: str
    code: str
    state: str | None = None

    @property
    def location(self) -> str:
        return add_query_params(self.redirect_uri, {"code": self.code, "state": self.state})


AuthorizeDecision = ErrorRedirect | ErrorPage | LoginRequired | ConsentRequired
ConsentDecision = ErrorRedirect | ErrorPage | LoginRequired | CodeIssued


def outcome_of(decision: AuthorizeDecision | ConsentDecision) -> str:
    """Metric label for a decision: an OAuth2 error code or a step name."""
    if isinstance(decision, (ErrorRedirect, ErrorPage)):
        return decision.error
    if isinstance(decision, LoginRequired):
        return "login_required"
    if isinstance(decision, ConsentRequired):
        return "consent_required"
    return "code_issued"


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


class AuthorizationServer:
    def __init__(
        self,
        clients: ClientRegistry,
        store: TokenStore,
        users: UserRepo,
    ) -> None:
        self.clients = clients
        self.store = store
        self.users = users

    # -- authorize ---------------------------------------------------------

    def evaluate_authorize(
        self, req: AuthorizeRequest, principal: Principal | None
    ) -> AuthorizeDecision:
        client = self.clients.lookup(req.client_id or "")
        redirect_verified = (
            client is not None
            and bool(req.redirect_uri)
            and self.clients.validate_redirect_uri(client.client_id, req.redirect_uri)
        )

        if req.response_type != "code":
            logger.warning(
                "OAUTH2 [authorize] FAIL: unsupported response_type=%r", req.response_type
            )
            if redirect_verified:
                return ErrorRedirect(req.redirect_uri, "unsupported_response_type", req.state)
            return ErrorPage(
                "unsupported_response_type", "Only response_type=code is supported."
            )

        if not req.client_id or not req.redirect_uri:
            logger.warning("OAUTH2 [authorize] FAIL: client_id or redirect_uri missing")
            return ErrorPage("invalid_request", "client_id and redirect_uri are required.")

        if client is None:
            logger.warning("OAUTH2 [authorize] FAIL: unknown client_id=%s", req.client_id)
            return ErrorPage("unauthorized_client", "Unknown client_id.")

        if not redirect_verified:
            logger.warning(
                "OAUTH2 [authorize] FAIL: redirect_uri not registered for client_id=%s",
                client.client_id,
            )
            return ErrorRedirect(
                client.default_redirect_uri, "invalid_redirect_uri", req.state
            )
        logger.debug("OAUTH2 [authorize] client and redirect_uri verified  ✓")

        pkce_error = self._check_pkce_params(req, client)
        if pkce_error is not None:
            logger.warning("OAUTH2 [authorize] FAIL: %s", pkce_error)
            return ErrorRedirect(req.redirect_uri, "invalid_request", req.state)

        requested = scope_policy.parse_scopes(req.scope or scope_policy.DEFAULT_SCOPE)
        if not scope_policy.filter_requestable(requested, None):
            logger.warning("OAUTH2 [authorize] FAIL: no available scope in %r", req.scope)
            return ErrorRedirect(req.redirect_uri, "invalid_scope", req.state)

        if principal is None:
            logger.info(
                "OAUTH2 [authorize] login required  client_id=%s", client.client_id
            )
            return LoginRequired(req)

        approved = scope_policy.filter_requestable(requested, principal)
        if not approved:
            logger.warning(
                "OAUTH2 [authorize] FAIL: user=%s holds none of the requested scopes %s",
                principal.user_id,
                requested,
            )
            return ErrorRedirect(req.redirect_uri, "invalid_scope", req.state)

        logger.info(
            "OAUTH2 [authorize] consent required  client_id=%s user=%s scopes=%s",
            client.client_id,
            principal.user_id,
            approved,
        )
        return ConsentRequired(
            client=client, request=req, principal=principal, scopes=tuple(approved)
        )

    @staticmethod
    def _check_pkce_params(req: AuthorizeRequest, client: Client) -> str | None:
        if req.code_challenge or req.code_challenge_method:
            if req.code_challenge_method != pkce_service.SUPPORTED_METHOD:
                return "code_challenge_method must be S256"
            if not req.code_challenge or not pkce_service.is_valid_challenge(
                req.code_challenge
            ):
                return "code_challenge missing or malformed"
        elif client.is_public:
            return "public clients must send a code_challenge"
        return None

    async def decide_consent(
        self, req: AuthorizeRequest, principal: Principal | None, *, approve: bool
    ) -> ConsentDecision:
        """Re-validate the posted consent form from scratch, then act on it.

        The hidden fields are attacker-controlled, so the scopes that end up
        on the code are the capability-filtered subset of what was posted.
        """
        decision = self.evaluate_authorize(req, principal)
        if not isinstance(decision, ConsentRequired):
            return decision

        if not approve:
            logger.info(
                "OAUTH2 [consent] denied  client_id=%s user=%s",
                decision.client.client_id,
                decision.principal.user_id,
            )
            return ErrorRedirect(req.redirect_uri, "access_denied", req.state)

        code = secrets.token_urlsafe(32)
        record = AuthorizationCode.new(
            client_id=decision.client.client_id,
            user_id=decision.principal.user_id,
            redirect_uri=req.redirect_uri,
            scopes=decision.scopes,
            code_challenge=req.code_challenge,
            code_challenge_method=req.code_challenge_method,
        )
        await self.store.put(credential_key("code", code), record.to_record(), CODE_TTL)
        logger.info(
            "OAUTH2 [consent] approved, code issued  client_id=%s user=%s scopes=%s "
            "code=%s pkce=%s",
            record.client_id,
            record.user_id,
            list(record.scopes),
            fingerprint(code),
            record.code_challenge is not None,
        )
        return CodeIssued(req.redirect_uri, code, req.state)

    # -- token -------------------------------------------------------------

    async def exchange_code(
        self,
        *,
        grant_type: str | None,
        code: str | None,
        redirect_uri: str | None,
        client_id: str | None,
        client_secret: str | None = None,
        code_verifier: str | None = None,
    ) -> IssuedTokens:
        try:
            tokens = await self._exchange_code(
                grant_type=grant_type,
                code=code,
                redirect_uri=redirect_uri,
                client_id=client_id,
                client_secret=client_secret,
                code_verifier=code_verifier,
            )
        except OAuth2Error as e:
            TOKEN_REQUESTS.labels(result=e.error).inc()
            logger.warning("OAUTH2 [token] FAIL: %s", e)
            raise
        TOKEN_REQUESTS.labels(result="issued").inc()
        return tokens

    async def _exchange_code(
        self,
        *,
        grant_type: str | None,
        code: str | None,
        redirect_uri: str | None,
        client_id: str | None,
        client_secret: str | None,
        code_verifier: str | None,
    ) -> IssuedTokens:
        if grant_type != "authorization_code":
            raise OAuth2Error(
                "unsupported_grant_type", "Only authorization_code is supported."
            )

        client = self.clients.lookup(client_id or "")
        if client is None:
            raise OAuth2Error("invalid_client", "Unknown client.", 401)
        if client_secret:
            if not self.clients.verify_secret(client.client_id, client_secret):
                raise OAuth2Error("invalid_client", "Client authentication failed.", 401)
            secret_verified = True
        elif code_verifier:
            # A public client authenticates by proving possession of the
            # verifier; checked against the stored challenge below.
            secret_verified = False
        else:
            raise OAuth2Error(
                "invalid_client", "client_secret or code_verifier is required.", 401
            )

        raw = await self.store.take(credential_key("code", code)) if code else None
        if raw is None:
            raise OAuth2Error("invalid_grant", "Invalid or expired authorization code.")
        # From here on the code is consumed, whatever happens next.
        record = AuthorizationCode.from_record(raw)

        if record.client_id != client.client_id:
            raise OAuth2Error("invalid_grant", "Code was not issued to this client.")
        if record.redirect_uri != redirect_uri:
            raise OAuth2Error("invalid_grant", "redirect_uri does not match.")

        if record.code_challenge:
            if not code_verifier or not pkce_service.verify_code_challenge(
                code_verifier, record.code_challenge
            ):
                raise OAuth2Error("invalid_grant", "PKCE verification failed.")
        elif not secret_verified:
            raise OAuth2Error(
                "invalid_grant", "Code was not issued with a PKCE challenge."
            )

        tokens = await self._issue(
            TokenGrant.new(
                user_id=record.user_id,
                client_id=record.client_id,
                scopes=record.scopes,
            )
        )
        logger.info(
            "OAUTH2 [token] code redeemed  client_id=%s user=%s code=%s access=%s",
            record.client_id,
            record.user_id,
            fingerprint(code),
            fingerprint(tokens.access_token),
        )
        return tokens

    async def _issue(self, grant: TokenGrant) -> IssuedTokens:
        access_token = secrets.token_urlsafe(48)
        refresh_token = secrets.token_urlsafe(48)
        record = grant.to_record()
        await self.store.put(credential_key("access", access_token), record, TOKEN_TTL)
        await self.store.put(credential_key("refresh", refresh_token), record, REFRESH_TTL)
        return IssuedTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=TOKEN_TTL,
            grant=grant,
        )

    # -- bearer ------------------------------------------------------------

    async def authenticate_bearer(self, access_token: str | None) -> Principal:
        if not access_token:
            raise OAuth2Error("invalid_token", "Missing access token.", 401)
        raw = await self.store.get(credential_key("access", access_token))
        if raw is None:
            logger.warning(
                "Bearer token rejected  token=%s", fingerprint(access_token)
            )
            raise OAuth2Error("invalid_token", "Invalid or expired access token.", 401)
        grant = TokenGrant.from_record(raw)
        user = self.users.get_by_id(grant.user_id)
        if user is None:
            logger.warning("Bearer token for missing user=%s rejected", grant.user_id)
            raise OAuth2Error("invalid_token", "User not found.", 401)
        return Principal.from_user(user, scopes=grant.scopes, client_id=grant.client_id)

    @staticmethod
    def userinfo(principal: Principal) -> dict[str, Any]:
        info: dict[str, Any] = {
            "sub": str(principal.user_id),
            "granted_scopes": list(principal.scopes),
        }
        if principal.has_scope("read"):
            info.update(
                username=principal.username,
                email=principal.email,
                name=principal.display_name,
                roles=sorted(principal.roles),
            )
        if principal.has_scope("manage_users") and principal.can("list_users"):
            info["capabilities"] = {
                "can_manage_users": principal.can("list_users"),
                "can_edit_users": principal.can("edit_users"),
                "can_create_users": principal.can("create_users"),
            }
        return info

    # -- refresh / revoke ----------------------------------------------------

    async def refresh(self, refresh_token: str | None) -> IssuedTokens:
        """Rotate: the presented refresh token is consumed whether or not a
        new pair can be issued."""
        raw = (
            await self.store.take(credential_key("refresh", refresh_token))
            if refresh_token
            else None
        )
        if raw is None:
            TOKEN_REQUESTS.labels(result="invalid_grant").inc()
            raise OAuth2Error("invalid_grant", "Invalid or expired refresh token.")
        grant = TokenGrant.from_record(raw)
        if self.users.get_by_id(grant.user_id) is None:
            TOKEN_REQUESTS.labels(result="invalid_grant").inc()
            raise OAuth2Error("invalid_grant", "User not found.")

        tokens = await self._issue(
            TokenGrant.new(
                user_id=grant.user_id, client_id=grant.client_id, scopes=grant.scopes
            )
        )
        TOKEN_REQUESTS.labels(result="refreshed").inc()
        logger.info(
            "OAUTH2 [refresh] rotated  client_id=%s user=%s old=%s new=%s",
            grant.client_id,
            grant.user_id,
            fingerprint(refresh_token),
            fingerprint(tokens.refresh_token),
        )
        return tokens

    async def revoke(
        self, *, access_token: str | None = None, refresh_token: str | None = None
    ) -> bool:
        revoked = False
        if access_token:
            revoked |= await self.store.delete(credential_key("access", access_token))
        if refresh_token:
            revoked |= await self.store.delete(credential_key("refresh", refresh_token))
        if revoked:
            logger.info("OAUTH2 [logout] tokens revoked")
        return revoked
