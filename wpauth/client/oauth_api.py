"""HTTP calls the client makes to the authorization server.

One ``httpx.AsyncClient`` per manager: its cookie jar carries the
HttpOnly refresh cookie between /token, /refresh and /logout, the way a
browser would.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from wpauth.client.config import OAuthClientConfig

logger = logging.getLogger(__name__)


class OAuthClientError(Exception):
    def __init__(
        self, message: str, *, error: str | None = None, status_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.error = error
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class TokenResponse:
    access_token: str
    token_type: str
    expires_in: int
    scope: str = ""

    @property
    def granted_scopes(self) -> tuple[str, ...]:
        return tuple(s for s in self.scope.split(" ") if s)

    @staticmethod
    def from_json(data: dict[str, Any]) -> TokenResponse:
        if not data.get("access_token"):
            raise OAuthClientError("Token response carried no access_token")
        try:
            expires_in = int(data.get("expires_in") or 3600)
        except (TypeError, ValueError):
            raise OAuthClientError(
                f"Token response carried a malformed expires_in: {data.get('expires_in')!r}"
            ) from None
        return TokenResponse(
            access_token=str(data["access_token"]),
            token_type=data.get("token_type") or "Bearer",
            expires_in=expires_in,
            scope=data.get("scope") or "",
        )


class OAuthApi:
    def __init__(
        self,
        config: OAuthClientConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.config = config
        self._http = httpx.AsyncClient(
            base_url=config.base_url, transport=transport, timeout=timeout
        )

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise OAuthClientError(f"Request to {path} failed: {e}") from e

        if resp.is_error:
            try:
                body = resp.json()
            except ValueError:
                body = {}
            if not isinstance(body, dict):
                body = {}
            error = body.get("error")
            description = body.get("error_description") or body.get("detail")
            raise OAuthClientError(
                f"{error or resp.status_code}: {description or resp.reason_phrase}",
                error=error,
                status_code=resp.status_code,
            )
        return resp

    @staticmethod
    def _json(resp: httpx.Response) -> dict[str, Any]:
        """Decode a 2xx body; anything but a JSON object is a protocol failure."""
        try:
            body = resp.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            raise OAuthClientError(
                f"Malformed response from {resp.request.url.path}",
                status_code=resp.status_code,
            )
        return body

    async def exchange_code(
        self, code: str, *, code_verifier: str | None = None
    ) -> TokenResponse:
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.config.redirect_uri,
            "client_id": self.config.client_id,
        }
        if code_verifier:
            form["code_verifier"] = code_verifier
        if self.config.client_secret:
            form["client_secret"] = self.config.client_secret
        resp = await self._send("POST", self.config.token_path, data=form)
        return TokenResponse.from_json(self._json(resp))

    async def refresh(self) -> TokenResponse:
        resp = await self._send("POST", self.config.refresh_path)
        return TokenResponse.from_json(self._json(resp))

    async def userinfo(self, access_token: str) -> dict[str, Any]:
        resp = await self._send(
            "GET",
            self.config.userinfo_path,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        return self._json(resp)

    async def logout(self, access_token: str | None = None) -> None:
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else {}
        await self._send("POST", self.config.logout_path, headers=headers)

    async def aclose(self) -> None:
        await self._http.aclose()
