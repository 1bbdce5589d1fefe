from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_SCOPES: tuple[str, ...] = ("read", "write", "upload_files")


def _getenv(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


@dataclass(frozen=True)
class OAuthClientConfig:
    """Where the authorization server lives and who this client is.

    ``client_secret`` is only for confidential clients; a browser-style
    client leaves it empty and relies on PKCE.
    """

    base_url: str
    client_id: str
    redirect_uri: str
    client_secret: str | None = None
    use_pkce: bool = True
    default_scopes: tuple[str, ...] = DEFAULT_SCOPES
    authorize_path: str = "/oauth2/v1/authorize"
    token_path: str = "/oauth2/v1/token"
    userinfo_path: str = "/oauth2/v1/userinfo"
    refresh_path: str = "/oauth2/v1/refresh"
    logout_path: str = "/oauth2/v1/logout"

    @property
    def authorize_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.authorize_path}"

    @staticmethod
    def from_env() -> OAuthClientConfig:
        base_url = _getenv("WP_BASE_URL", "http://localhost:8000")
        client_id = _getenv("OAUTH_CLIENT_ID")
        redirect_uri = _getenv("OAUTH_REDIRECT_URI")
        if not client_id:
            raise ValueError("OAUTH_CLIENT_ID must be set")
        if not redirect_uri:
            raise ValueError("OAUTH_REDIRECT_URI must be set")
        return OAuthClientConfig(
            base_url=base_url,
            client_id=client_id,
            redirect_uri=redirect_uri,
            client_secret=_getenv("OAUTH_CLIENT_SECRET") or None,
            use_pkce=_getenv("OAUTH_USE_PKCE", "true").lower()
            in ("1", "true", "yes", "on"),
        )
