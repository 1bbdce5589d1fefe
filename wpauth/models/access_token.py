from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class TokenGrant:
    """Binding stored behind an opaque access or refresh token."""

    user_id: int
    client_id: str
    scopes: tuple[str, ...]
    created_at: int

    @staticmethod
    def new(*, user_id: int, client_id: str, scopes: tuple[str, ...]) -> TokenGrant:
        return TokenGrant(
            user_id=user_id,
            client_id=client_id,
            scopes=tuple(scopes),
            created_at=int(time.time()),
        )

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)

    def to_record(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "client_id": self.client_id,
            "scopes": list(self.scopes),
            "created_at": self.created_at,
        }

    @staticmethod
    def from_record(record: dict[str, Any]) -> TokenGrant:
        return TokenGrant(
            user_id=int(record["user_id"]),
            client_id=record["client_id"],
            scopes=tuple(record.get("scopes", ())),
            created_at=int(record.get("created_at", 0)),
        )


@dataclass(frozen=True, slots=True)
class IssuedTokens:
    """Result of a successful code redemption or refresh.

    ``refresh_token`` is handed to the transport layer for the HttpOnly
    cookie; it is never serialized into the JSON token response.
    """

    access_token: str
    refresh_token: str
    expires_in: int
    grant: TokenGrant
    token_type: str = "Bearer"

    def to_response(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "scope": self.grant.scope,
        }
