"""Client-side token lifecycle: login, callback, refresh, logout.

State machine, one per manager instance::

    INIT ─silent_login()→ SILENT_REFRESH_ATTEMPT ─→ AUTHENTICATED | UNAUTHENTICATED
    AUTHENTICATED ─refresh()→ REFRESHING ─→ AUTHENTICATED | UNAUTHENTICATED
    any ─logout()→ UNAUTHENTICATED

Everything runs on one event loop and only suspends at network calls.
Two rules keep concurrent triggers sane:

* single-flight: concurrent refresh() callers, and duplicate callbacks for
  the same code, await one shared task instead of sending a second request;
* epochs: logout() bumps ``_epoch``, and any response that comes back
  under an older epoch is dropped, so a late token response can never
  resurrect a cleared session.

The access token lives only in memory.  The refresh token is an HttpOnly
cookie held by the HTTP client's cookie jar and is never visible here.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qs, urlencode, urlsplit

from wpauth.client.config import OAuthClientConfig
from wpauth.client.oauth_api import OAuthApi, OAuthClientError, TokenResponse
from wpauth.client.storage import (
    FLOW_KEYS,
    PROCESSED_CODE_KEY,
    STATE_KEY,
    VERIFIER_KEY,
    InMemorySessionStorage,
    SessionStorage,
)
from wpauth.services import pkce_service

logger = logging.getLogger(__name__)

# Refresh this long before expiry, capped at 90% of the lifetime so that
# very short-lived tokens still refresh before they lapse.
REFRESH_MARGIN_SECONDS = 120
REFRESH_FRACTION = 0.9


class AuthState(enum.Enum):
    INIT = "init"
    SILENT_REFRESH_ATTEMPT = "silent_refresh_attempt"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True, slots=True)
class Session:
    access_token: str
    expires_in: int
    granted_scopes: tuple[str, ...]
    user: dict[str, Any] = field(default_factory=dict)


def compute_refresh_delay(expires_in: float) -> float:
    """Seconds until the next silent refresh.

    >>> compute_refresh_delay(3600)
    3240.0
    """
    delay = min(expires_in - REFRESH_MARGIN_SECONDS, expires_in * REFRESH_FRACTION)
    return max(0.0, float(delay))


def parse_callback_params(url: str) -> dict[str, str | None]:
    query = parse_qs(urlsplit(url).query)
    return {k: (query.get(k) or [None])[0] for k in ("code", "state", "error")}


class TokenLifecycleManager:
    def __init__(
        self,
        config: OAuthClientConfig,
        *,
        api: OAuthApi | None = None,
        storage: SessionStorage | None = None,
        navigate: Callable[[str], None] | None = None,
    ) -> None:
        self.config = config
        self.api = api or OAuthApi(config)
        self.storage = storage if storage is not None else InMemorySessionStorage()
        self._navigate = navigate

        self.state = AuthState.INIT
        self.session: Session | None = None
        self.error: str | None = None

        self._epoch = 0
        self._refresh_task: asyncio.Task[bool] | None = None
        self._refresh_timer: asyncio.TimerHandle | None = None
        self._silent_task: asyncio.Task[bool] | None = None
        self._callback_tasks: dict[str, asyncio.Task[bool]] = {}
        self._background: set[asyncio.Task[Any]] = set()

    # -- read-only view ------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None

    @property
    def access_token(self) -> str | None:
        return self.session.access_token if self.session else None

    @property
    def user(self) -> dict[str, Any] | None:
        return self.session.user if self.session else None

    @property
    def granted_scopes(self) -> tuple[str, ...]:
        return self.session.granted_scopes if self.session else ()

    @property
    def refresh_scheduled(self) -> bool:
        return self._refresh_timer is not None

    def clear_error(self) -> None:
        self.error = None

    # -- login ---------------------------------------------------------------

    def login(self, scopes: Iterable[str] | None = None) -> str:
        """Start an authorization round-trip and return the authorize URL."""
        requested = list(scopes) if scopes is not None else list(self.config.default_scopes)

        state = pkce_service.generate_state()
        self.storage.set(STATE_KEY, state)
        params = {
            "response_type": "code",
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "state": state,
            "scope": " ".join(requested),
        }
        if self.config.use_pkce:
            verifier = pkce_service.generate_code_verifier()
            self.storage.set(VERIFIER_KEY, verifier)
            params["code_challenge"] = pkce_service.compute_code_challenge(verifier)
            params["code_challenge_method"] = pkce_service.SUPPORTED_METHOD
        else:
            self.storage.remove(VERIFIER_KEY)

        url = f"{self.config.authorize_url}?{urlencode(params)}"
        logger.info("Login initiated  scopes=%s pkce=%s", requested, self.config.use_pkce)
        if self._navigate is not None:
            self._navigate(url)
        return url

    # -- callback ------------------------------------------------------------

    async def handle_callback(self, url: str) -> bool:
        """Finish the round-trip from the redirect target URL.

        Safe to call twice with the same URL: a code that has already been
        exchanged short-circuits to success, and a duplicate call while the
        exchange is still running awaits that same exchange.
        """
        params = parse_callback_params(url)
        code, returned_state, error = params["code"], params["state"], params["error"]

        if error:
            return self._fail(f"OAuth error: {error}")
        if not code:
            return self._fail("No authorization code received")

        if self.storage.get(PROCESSED_CODE_KEY) == code:
            logger.debug("Authorization code already processed, skipping")
            return True
        in_flight = self._callback_tasks.get(code)
        if in_flight is not None:
            return await asyncio.shield(in_flight)

        expected_state = self.storage.get(STATE_KEY)
        if not expected_state or returned_state != expected_state:
            logger.warning("Callback state mismatch")
            return self._fail("Invalid state parameter")

        verifier = self.storage.get(VERIFIER_KEY)
        if self.config.use_pkce and not verifier:
            return self._fail("PKCE code verifier is missing; start the login again")

        task = asyncio.ensure_future(self._complete_callback(code, verifier))
        self._callback_tasks[code] = task
        task.add_done_callback(lambda _t: self._callback_tasks.pop(code, None))
        return await asyncio.shield(task)

    async def _complete_callback(self, code: str, verifier: str | None) -> bool:
        epoch = self._epoch
        self.error = None
        try:
            tokens = await self.api.exchange_code(code, code_verifier=verifier)
            user = await self.api.userinfo(tokens.access_token)
        except OAuthClientError as e:
            logger.warning("Code exchange failed: %s", e)
            if epoch == self._epoch:
                self._fail(str(e))
            return False

        if epoch != self._epoch:
            logger.info("Token response arrived after logout, discarded")
            return False

        self.storage.set(PROCESSED_CODE_KEY, code)
        self.storage.remove(STATE_KEY)
        self.storage.remove(VERIFIER_KEY)
        self._commit(tokens, user)
        logger.info("Callback handled  user=%s scopes=%s", user.get("sub"), tokens.scope)
        return True

    def _fail(self, message: str) -> bool:
        self.error = message
        if self.session is None:
            self.state = AuthState.UNAUTHENTICATED
        return False

    # -- refresh -------------------------------------------------------------

    async def refresh(self) -> bool:
        """Single-flight silent refresh; every concurrent caller shares it."""
        if self._refresh_task is None:
            task = asyncio.ensure_future(self._do_refresh())
            self._refresh_task = task
            task.add_done_callback(self._refresh_done)
        return await asyncio.shield(self._refresh_task)

    def _refresh_done(self, task: asyncio.Task[bool]) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _do_refresh(self) -> bool:
        epoch = self._epoch
        if self.state is AuthState.AUTHENTICATED:
            self.state = AuthState.REFRESHING
        try:
            tokens = await self.api.refresh()
            user = (
                self.session.user
                if self.session is not None
                else await self.api.userinfo(tokens.access_token)
            )
        except OAuthClientError as e:
            if epoch != self._epoch:
                return False
            # Background failures are silent: the user is just signed out.
            logger.info("Silent refresh failed: %s", e)
            self._clear_local()
            return False

        if epoch != self._epoch:
            logger.info("Refresh response arrived after logout, discarded")
            return False
        self._commit(tokens, user)
        return True

    async def silent_login(self) -> bool:
        """Try to resume an existing session, at most once per manager."""
        task = self._silent_task
        if task is None:
            task = asyncio.ensure_future(self._do_silent_login())
            self._silent_task = task
        return await asyncio.shield(task)

    async def _do_silent_login(self) -> bool:
        if self.state is AuthState.INIT:
            self.state = AuthState.SILENT_REFRESH_ATTEMPT
        return await self.refresh()

    def _commit(self, tokens: TokenResponse, user: dict[str, Any]) -> None:
        self.session = Session(
            access_token=tokens.access_token,
            expires_in=tokens.expires_in,
            granted_scopes=tokens.granted_scopes,
            user=user,
        )
        self.state = AuthState.AUTHENTICATED
        self.error = None
        self._schedule_refresh(tokens.expires_in)

    def _schedule_refresh(self, expires_in: float) -> None:
        self._cancel_timer()
        delay = compute_refresh_delay(expires_in)
        loop = asyncio.get_running_loop()
        self._refresh_timer = loop.call_later(delay, self._on_refresh_timer)
        logger.debug("Next refresh in %.0fs", delay)

    def _on_refresh_timer(self) -> None:
        self._refresh_timer = None
        task = asyncio.ensure_future(self.refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _cancel_timer(self) -> None:
        if self._refresh_timer is not None:
            self._refresh_timer.cancel()
            self._refresh_timer = None

    # -- logout --------------------------------------------------------------

    async def logout(self) -> None:
        """Best-effort server revocation; local state is always cleared."""
        self._epoch += 1
        access_token = self.access_token
        self._cancel_timer()
        try:
            await self.api.logout(access_token)
        except OAuthClientError as e:
            logger.warning("Server-side logout failed, clearing locally: %s", e)
        finally:
            self._clear_local()
            for key in FLOW_KEYS:
                self.storage.remove(key)
            self.error = None

    def _clear_local(self) -> None:
        self._cancel_timer()
        self.session = None
        self.state = AuthState.UNAUTHENTICATED

    async def close(self) -> None:
        self._cancel_timer()
        for task in list(self._background):
            task.cancel()
        await self.api.aclose()
