"""TTL key/value store for authorization codes, access and refresh tokens.

Every entry is write-once.  Codes and refresh tokens are redeemed with
``take()``, which reads and deletes in one step: two concurrent /token
requests carrying the same code can never both see it.  Access tokens are
read many times with ``get()`` until their TTL lapses or they are revoked
with ``delete()``.

Callers pass raw credentials through ``credential_key()`` so the store only
ever holds SHA-256 digests; a dump of Redis does not yield usable tokens.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from wpauth.core.metrics import TOKEN_STORE_OPERATIONS
from wpauth.db.redis import redis_pool

logger = logging.getLogger(__name__)


def credential_key(kind: str, raw: str) -> str:
    """Namespaced storage key for a raw code or token, e.g. ``code:<sha256>``."""
    return f"{kind}:{hashlib.sha256(raw.encode()).hexdigest()}"


def _count(operation: str, value: object | None) -> None:
    TOKEN_STORE_OPERATIONS.labels(
        operation=operation, result="miss" if value is None else "hit"
    ).inc()


@runtime_checkable
class TokenStore(Protocol):
    async def put(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        """Store *value* under *key*; it disappears after *ttl_seconds*."""
        ...

    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the live value, or None if absent or expired."""
        ...

    async def take(self, key: str) -> dict[str, Any] | None:
        """Atomically return and delete the live value."""
        ...

    async def delete(self, key: str) -> bool:
        """Remove *key*; True if a live entry was removed."""
        ...


class InMemoryTokenStore:
    """Per-process store with lazy expiry on read.

    All methods run to completion without awaiting, so within one event
    loop ``take()`` is atomic.  ``clock`` is injectable for TTL tests.

    Codes and refresh tokens that are never presented again would never be
    read, so ``put()`` also sweeps expired entries every ``purge_interval``
    seconds.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        *,
        purge_interval: float = 60.0,
    ) -> None:
        self._clock = clock
        self._purge_interval = purge_interval
        self._last_purge = clock()
        # key -> (expires_at, value)
        self._entries: dict[str, tuple[float, dict[str, Any]]] = {}

    async def put(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        now = self._clock()
        if now - self._last_purge >= self._purge_interval:
            self.purge_expired()
        self._entries[key] = (now + ttl_seconds, dict(value))

    def _live(self, key: str) -> dict[str, Any] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    async def get(self, key: str) -> dict[str, Any] | None:
        value = self._live(key)
        _count("get", value)
        return dict(value) if value is not None else None

    async def take(self, key: str) -> dict[str, Any] | None:
        value = self._live(key)
        if value is not None:
            del self._entries[key]
        _count("take", value)
        return value

    async def delete(self, key: str) -> bool:
        value = self._live(key)
        self._entries.pop(key, None)
        return value is not None

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        expired = [k for k, (exp, _) in self._entries.items() if exp <= now]
        for k in expired:
            del self._entries[k]
        self._last_purge = now
        if expired:
            logger.debug("Purged %d expired token store entries", len(expired))
        return len(expired)


class RedisTokenStore:
    """Redis-backed store shared by every API instance."""

    _PREFIX = "tokens:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def put(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, json.dumps(value))

    async def get(self, key: str) -> dict[str, Any] | None:
        raw = await self._redis.get(f"{self._PREFIX}{key}")
        _count("get", raw)
        return json.loads(raw) if raw is not None else None

    async def take(self, key: str) -> dict[str, Any] | None:
        # GETDEL (Redis >= 6.2) is a single command, so no other client can
        # read the key between our read and our delete.
        raw = await self._redis.getdel(f"{self._PREFIX}{key}")
        _count("take", raw)
        return json.loads(raw) if raw is not None else None

    async def delete(self, key: str) -> bool:
        return bool(await self._redis.delete(f"{self._PREFIX}{key}"))


if redis_pool is not None:
    token_store: TokenStore = RedisTokenStore(redis_pool)
else:
    token_store = InMemoryTokenStore()
