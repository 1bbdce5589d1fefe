from __future__ import annotations

from dataclasses import dataclass

DEFAULT_APP_NAME = "Third-Party Application"


@dataclass(frozen=True, slots=True)
class Client:
    """A registered OAuth2 application.

    ``client_secret_hash`` is an argon2 encoded hash (salt and parameters
    included) or None for a public client, which must use PKCE instead.
    ``redirect_uris`` keeps registration order: the first entry is where
    invalid_redirect_uri errors are sent.
    """

    client_id: str
    client_secret_hash: str | None
    redirect_uris: tuple[str, ...]
    name: str = DEFAULT_APP_NAME

    @property
    def is_public(self) -> bool:
        return self.client_secret_hash is None

    @property
    def default_redirect_uri(self) -> str | None:
        return self.redirect_uris[0] if self.redirect_uris else None
