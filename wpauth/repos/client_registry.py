from __future__ import annotations

import logging
from typing import Protocol

from wpauth.models.client import DEFAULT_APP_NAME, Client
from wpauth.services import auth_service

logger = logging.getLogger(__name__)


class ClientRegistry(Protocol):
    def register(
        self,
        client_id: str,
        client_secret: str | None,
        redirect_uris: list[str] | tuple[str, ...],
        *,
        name: str = DEFAULT_APP_NAME,
    ) -> Client: ...
    def lookup(self, client_id: str) -> Client | None: ...
    def verify_secret(self, client_id: str, candidate_secret: str) -> bool: ...
    def validate_redirect_uri(self, client_id: str, uri: str) -> bool: ...
    def list_clients(self) -> list[Client]: ...


class InMemoryClientRegistry:
    def __init__(self) -> None:
        self._by_client_id: dict[str, Client] = {}

    def register(
        self,
        client_id: str,
        client_secret: str | None,
        redirect_uris: list[str] | tuple[str, ...],
        *,
        name: str = DEFAULT_APP_NAME,
    ) -> Client:
        """Create or replace a client. The secret is kept only as a hash."""
        if not client_id:
            raise ValueError("client_id must be non-empty")
        if not redirect_uris:
            raise ValueError("at least one redirect_uri is required")

        # Ordered de-duplication: the first URI stays the error target.
        uris = tuple(dict.fromkeys(redirect_uris))
        client = Client(
            client_id=client_id,
            client_secret_hash=(
                auth_service.hash_secret(client_secret) if client_secret else None
            ),
            redirect_uris=uris,
            name=name,
        )
        replaced = client_id in self._by_client_id
        self._by_client_id[client_id] = client
        logger.info(
            "OAuth2 client %s  client_id=%s public=%s redirect_uris=%d",
            "re-registered" if replaced else "registered",
            client_id,
            client.is_public,
            len(uris),
        )
        return client

    def lookup(self, client_id: str) -> Client | None:
        if not client_id:
            return None
        return self._by_client_id.get(client_id)

    def verify_secret(self, client_id: str, candidate_secret: str) -> bool:
        client = self.lookup(client_id)
        if client is None or client.client_secret_hash is None:
            return False
        return auth_service.verify_secret(candidate_secret, client.client_secret_hash)

    def validate_redirect_uri(self, client_id: str, uri: str) -> bool:
        # Exact string match only: no prefix, wildcard, or normalization.
        client = self.lookup(client_id)
        if client is None:
            return False
        return uri in client.redirect_uris

    def list_clients(self) -> list[Client]:
        return list(self._by_client_id.values())
