"""Logging configuration for wpauth.

Two output shapes, chosen by LOG_JSON:

  _ContainerFormatter: one human-readable line per record.  WARNING and
    above get a [file:line] suffix so a failed OAuth2 validation step can be
    traced straight to its guard clause.

  _JsonFormatter: JSON Lines for log aggregation.  Request context that
    the middleware and the OAuth2 handlers attach (request_id, client_id,
    user_id, ...) becomes top-level keys, so a whole authorize → consent →
    token exchange can be filtered by client_id or request_id.

Nothing in this package logs raw credentials.  Authorization codes and
tokens appear only as a short SHA-256 prefix (see fingerprint()).
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from contextvars import ContextVar

# Per-request log context.  The middleware resets all three at the start of
# each request; the OAuth2 handlers bind client_id and user_id once known.
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
client_id_var: ContextVar[str | None] = ContextVar("client_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)


def bind_request_context(
    *, client_id: str | None = None, user_id: int | str | None = None
) -> None:
    """Attach OAuth2 identifiers to every later record of this request."""
    if client_id:
        client_id_var.set(client_id)
    if user_id is not None:
        user_id_var.set(str(user_id))


class RequestContextFilter(logging.Filter):
    """Stamp request_id, client_id and user_id onto each record.

    Installed on handlers, not on a logger: logger filters do not run for
    records propagated up from child loggers.  Values passed explicitly via
    ``extra`` win over the context.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_var.get()  # type: ignore[attr-defined]
        if getattr(record, "client_id", None) is None:
            record.client_id = client_id_var.get()  # type: ignore[attr-defined]
        if getattr(record, "user_id", None) is None:
            record.user_id = user_id_var.get()  # type: ignore[attr-defined]
        return True


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter tuned for container stdout."""

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        # Insert .NNN before the timezone offset (last 5 chars: +0000)
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.WARNING:
            self._style._fmt = self._BASE_FMT + self._LOC_SUFFIX
        else:
            self._style._fmt = self._BASE_FMT
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """JSON Lines formatter; context fields are lifted to top-level keys."""

    _CONTEXT_FIELDS = (
        "request_id",
        "method",
        "path",
        "user_id",
        "client_id",
        "status_code",
        "duration_ms",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Configure the root logger: one stdout handler, quiet third parties.

    Args:
        level_name: Log level string (debug/info/warning/error)
        json_format: Emit JSON lines instead of the human-readable format.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in ("uvicorn", "uvicorn.access", "uvicorn.error", "httpcore", "httpx"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def fingerprint(secret: str) -> str:
    """Short, non-reversible tag for a credential, safe to put in logs."""
    return hashlib.sha256(secret.encode()).hexdigest()[:12]
