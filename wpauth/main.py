from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wpauth.api.health import router as health_router
from wpauth.api.jwt_relay import router as jwt_relay_router
from wpauth.api.login import router as login_router
from wpauth.api.metrics_endpoint import router as metrics_router
from wpauth.api.oauth2 import router as oauth2_router
from wpauth.api.resource import router as resource_router
from wpauth.core.config import SETTINGS
from wpauth.core.logging import setup_logging
from wpauth.db.redis import lifespan_redis
from wpauth.middleware.metrics import MetricsMiddleware
from wpauth.middleware.request_context import RequestContextMiddleware
from wpauth.services.authorization_server import OAuth2Error

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    async with lifespan_redis():
        yield


# only app setup + router registration

app = FastAPI(
    title="wpauth",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(SETTINGS.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) → Metrics → CORS → route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)


@app.exception_handler(OAuth2Error)
async def oauth2_error_handler(_request: Request, exc: OAuth2Error) -> JSONResponse:
    headers = {"Cache-Control": "no-store"}
    if exc.status_code == 401:
        headers["WWW-Authenticate"] = f'Bearer error="{exc.error}"'
    return JSONResponse(
        {"error": exc.error, "error_description": exc.description},
        status_code=exc.status_code,
        headers=headers,
    )


app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(login_router)
app.include_router(oauth2_router)
app.include_router(resource_router)
app.include_router(jwt_relay_router)

logger.info(
    "wpauth started  env=%s log_level=%s port=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
)
