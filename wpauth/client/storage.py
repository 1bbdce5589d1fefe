from __future__ import annotations

from typing import Protocol

# One-time artifacts of an authorization round-trip.  They must survive
# the redirect to the authorization server and back, and are removed once
# the callback has been handled (the processed code stays until logout as
# the callback's idempotency key).
STATE_KEY = "oauth_state"
VERIFIER_KEY = "pkce_code_verifier"
PROCESSED_CODE_KEY = "oauth_processed_code"

FLOW_KEYS = (STATE_KEY, VERIFIER_KEY, PROCESSED_CODE_KEY)


class SessionStorage(Protocol):
    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def remove(self, key: str) -> None: ...


class InMemorySessionStorage:
    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove(self, key: str) -> None:
        self._items.pop(key, None)
