"""Redis connection management.

Authorization codes, access tokens, and refresh tokens are short-lived
key/value records with a TTL, which is exactly Redis' model: SETEX writes
value and expiry atomically, GETDEL gives single-use redemption for free.

When REDIS_URL is not configured ``redis_pool`` is None and every consumer
falls back to its in-memory implementation (single process only).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from wpauth.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Verify connectivity on startup and release the pool on shutdown."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured, token store is in-memory")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    except Exception:
        # Requests will fail closed against the store; startup continues so
        # /health can report the degraded dependency.
        logger.exception("Redis connection failed on startup")

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
