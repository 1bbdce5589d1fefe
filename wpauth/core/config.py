from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUTHY = ("1", "true", "yes", "on")

_DEV_ACCESS_SECRET = "dev-only-access-secret-change-me"
_DEV_REFRESH_SECRET = "dev-only-refresh-secret-change-me"


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    redis_url: str | None
    site_name: str = "WordPress"
    cors_origins: tuple[str, ...] = ("http://localhost:5173",)
    wp_jwt_endpoint: str = "http://localhost:8080/wp-json/jwt-auth/v1/token"
    relay_access_secret: str = _DEV_ACCESS_SECRET
    relay_refresh_secret: str = _DEV_REFRESH_SECRET

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def cookie_secure(self) -> bool:
        # Secure cookies need HTTPS; localhost dev runs plain HTTP.
        return self.is_prod


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    cors_origins = tuple(
        origin.strip()
        for origin in _getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
        if origin.strip()
    )

    relay_access_secret = _getenv("RELAY_ACCESS_SECRET", _DEV_ACCESS_SECRET)
    relay_refresh_secret = _getenv("RELAY_REFRESH_SECRET", _DEV_REFRESH_SECRET)
    if app_env_raw == "prod":
        # The dev defaults are public; prod must bring its own secrets.
        for name, value, dev_default in (
            ("RELAY_ACCESS_SECRET", relay_access_secret, _DEV_ACCESS_SECRET),
            ("RELAY_REFRESH_SECRET", relay_refresh_secret, _DEV_REFRESH_SECRET),
        ):
            if not value or value == dev_default:
                raise ValueError(f"{name} must be set to a non-default value in prod")

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv("LOG_JSON", "false").lower() in _TRUTHY,
        port=port,
        redis_url=_getenv("REDIS_URL", "") or None,
        site_name=_getenv("SITE_NAME", "WordPress") or "WordPress",
        cors_origins=cors_origins,
        wp_jwt_endpoint=_getenv(
            "WP_JWT_ENDPOINT", "http://localhost:8080/wp-json/jwt-auth/v1/token"
        ),
        relay_access_secret=relay_access_secret,
        relay_refresh_secret=relay_refresh_secret,
    )


SETTINGS = load_settings()
