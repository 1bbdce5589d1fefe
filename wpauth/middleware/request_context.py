"""Request context middleware: request IDs, timing, one summary log line.

The request ID lives in a ContextVar (per asyncio task, not per thread).
The handler filter installed by setup_logging() stamps it, together with
the client_id and user_id the OAuth2 handlers bind, onto every record, so
all log lines of one authorize or token exchange can be correlated.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from wpauth.core.logging import client_id_var, request_id_var, user_id_var

logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign X-Request-ID (echo the caller's if present), time, and log."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request_id_var.set(req_id)
        client_id_var.set(None)
        user_id_var.set(None)

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        # client_id from the query string covers GET /authorize; the
        # handlers bind it for form posts in their own task context.
        logger.info(
            "%s %s -> %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra={
                "request_id": req_id,
                "method": request.method,
                "path": request.url.path,
                "client_id": request.query_params.get("client_id"),
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers["X-Request-ID"] = req_id
        return response
