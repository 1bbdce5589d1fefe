"""Health and readiness endpoints.

  /health (liveness): the process answers; the body reports dependency
    status.  Always 200, ``status`` says "ok" or "degraded".
  /ready (readiness): can this instance take traffic.  Redis is optional
    (every store has an in-memory fallback), so this always passes.
"""

from __future__ import annotations

from fastapi import APIRouter, Response

from wpauth.db.redis import redis_pool

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    checks: dict[str, str] = {}
    overall = "ok"

    if redis_pool is not None:
        try:
            await redis_pool.ping()  # type: ignore[misc]
            checks["redis"] = "ok"
        except Exception:
            checks["redis"] = "degraded"
            overall = "degraded"
    else:
        checks["redis"] = "not_configured"

    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    return Response(status_code=200)
