"""JWT relay: trade WordPress credentials for short-lived relay tokens.

The upstream WordPress JWT plugin checks the password; this service then
mints its own pair of HS256 tokens so the browser never holds the
WordPress token:

  access token   15 minutes, returned in the JSON body
  refresh token  7 days, HttpOnly cookie, and only valid while it is
                 registered as active in the token store

Access and refresh tokens are signed with different secrets, so one can
never be replayed as the other.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import jwt

from wpauth.core.logging import fingerprint
from wpauth.services.token_store import TokenStore, credential_key

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ACCESS_TTL = 15 * 60
REFRESH_TTL = 7 * 24 * 3600
ISSUER = "wpauth-relay"


class UpstreamAuthError(Exception):
    """WordPress answered, and said no."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class UpstreamUnavailable(Exception):
    """WordPress could not be reached or sent something unusable."""


class RelayAuthError(Exception):
    """A relay token is missing, invalid, expired or no longer active."""


@dataclass(frozen=True, slots=True)
class RelayUser:
    id: int
    email: str
    nicename: str
    display_name: str

    def to_claims(self) -> dict[str, Any]:
        return {
            "sub": str(self.id),
            "email": self.email,
            "nicename": self.nicename,
            "display_name": self.display_name,
        }

    @staticmethod
    def from_claims(claims: dict[str, Any]) -> RelayUser:
        return RelayUser(
            id=int(claims["sub"]),
            email=claims.get("email", ""),
            nicename=claims.get("nicename", ""),
            display_name=claims.get("display_name", ""),
        )

    def public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "nicename": self.nicename,
            "displayName": self.display_name,
        }


class WordPressJwtClient:
    """Thin client for ``POST /wp-json/jwt-auth/v1/token``.

    ``transport`` lets tests swap in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.endpoint = endpoint
        self._transport = transport
        self._timeout = timeout

    async def authenticate(self, username: str, password: str) -> RelayUser:
        async with httpx.AsyncClient(
            transport=self._transport, timeout=self._timeout
        ) as client:
            try:
                resp = await client.post(
                    self.endpoint, json={"username": username, "password": password}
                )
            except httpx.HTTPError as e:
                logger.error("WordPress JWT endpoint unreachable: %s", e)
                raise UpstreamUnavailable(str(e)) from e

        try:
            data = resp.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            data = {}

        if resp.is_error:
            raise UpstreamAuthError(
                resp.status_code, data.get("message") or "Authentication failed"
            )

        user_id = data.get("user_id") or data.get("ID")
        if user_id is None:
            raise UpstreamUnavailable("WordPress response carried no user id")
        return RelayUser(
            id=int(user_id),
            email=data.get("user_email", ""),
            nicename=data.get("user_nicename", ""),
            display_name=data.get("user_display_name", ""),
        )


class RelayTokenService:
    def __init__(self, store: TokenStore, *, access_secret: str, refresh_secret: str) -> None:
        if access_secret == refresh_secret:
            raise ValueError("access and refresh secrets must differ")
        self._store = store
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret

    def _encode(self, user: RelayUser, secret: str, ttl: int, typ: str) -> str:
        now = datetime.now(UTC)
        payload = {
            **user.to_claims(),
            "iss": ISSUER,
            "typ": typ,
            "iat": now,
            "exp": now + timedelta(seconds=ttl),
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(payload, secret, algorithm=ALGORITHM)

    @staticmethod
    def _decode(token: str, secret: str, typ: str) -> RelayUser:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            issuer=ISSUER,
            options={"require": ["sub", "exp", "iat", "jti"]},
        )
        if claims.get("typ") != typ:
            raise jwt.InvalidTokenError(f"expected a {typ} token")
        return RelayUser.from_claims(claims)

    def issue_access_token(self, user: RelayUser) -> str:
        return self._encode(user, self._access_secret, ACCESS_TTL, "access")

    async def issue_refresh_token(self, user: RelayUser) -> str:
        token = self._encode(user, self._refresh_secret, REFRESH_TTL, "refresh")
        await self._store.put(
            credential_key("relay_refresh", token), {"user_id": user.id}, REFRESH_TTL
        )
        return token

    def verify_access_token(self, token: str | None) -> RelayUser:
        if not token:
            raise RelayAuthError("Access token required")
        try:
            return self._decode(token, self._access_secret, "access")
        except jwt.InvalidTokenError as e:
            logger.warning("Relay access token rejected: %s", e)
            raise RelayAuthError("Invalid or expired access token") from None

    async def refresh(self, refresh_token: str | None) -> tuple[str, RelayUser]:
        """New access token for an active refresh token.

        A refresh token that is active but fails verification is dropped.
        """
        if not refresh_token:
            raise RelayAuthError("Invalid refresh token")
        key = credential_key("relay_refresh", refresh_token)
        if await self._store.get(key) is None:
            logger.warning(
                "Relay refresh with inactive token=%s", fingerprint(refresh_token)
            )
            raise RelayAuthError("Invalid refresh token")
        try:
            user = self._decode(refresh_token, self._refresh_secret, "refresh")
        except jwt.InvalidTokenError as e:
            await self._store.delete(key)
            logger.warning("Relay refresh token rejected: %s", e)
            raise RelayAuthError("Invalid refresh token") from None
        return self.issue_access_token(user), user

    async def revoke(self, refresh_token: str | None) -> bool:
        if not refresh_token:
            return False
        return await self._store.delete(credential_key("relay_refresh", refresh_token))
