from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class AuthorizationCode:
    """What a single-use code is bound to.

    The raw code is never part of the record: it is only the lookup key
    (hashed) in the token store.
    """

    client_id: str
    user_id: int
    redirect_uri: str
    scopes: tuple[str, ...]
    created_at: int
    code_challenge: str | None = None
    code_challenge_method: str | None = None

    @staticmethod
    def new(
        *,
        client_id: str,
        user_id: int,
        redirect_uri: str,
        scopes: tuple[str, ...],
        code_challenge: str | None = None,
        code_challenge_method: str | None = None,
    ) -> AuthorizationCode:
        return AuthorizationCode(
            client_id=client_id,
            user_id=user_id,
            redirect_uri=redirect_uri,
            scopes=tuple(scopes),
            created_at=int(time.time()),
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method if code_challenge else None,
        )

    def to_record(self) -> dict[str, Any]:
        record = asdict(self)
        record["scopes"] = list(self.scopes)
        return record

    @staticmethod
    def from_record(record: dict[str, Any]) -> AuthorizationCode:
        return AuthorizationCode(
            client_id=record["client_id"],
            user_id=int(record["user_id"]),
            redirect_uri=record["redirect_uri"],
            scopes=tuple(record.get("scopes", ())),
            created_at=int(record.get("created_at", 0)),
            code_challenge=record.get("code_challenge"),
            code_challenge_method=record.get("code_challenge_method"),
        )
