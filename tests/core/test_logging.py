from __future__ import annotations

import contextvars
import json
import logging
import sys

from wpauth.core.logging import (
    RequestContextFilter,
    _ContainerFormatter,
    _JsonFormatter,
    bind_request_context,
    fingerprint,
    request_id_var,
    setup_logging,
)


def _record(level: int = logging.INFO, msg: str = "hello", args: tuple = (), **kw) -> logging.LogRecord:
    return logging.LogRecord(
        name=kw.pop("name", "test"),
        level=level,
        pathname=kw.pop("pathname", "test.py"),
        lineno=kw.pop("lineno", 1),
        msg=msg,
        args=args,
        exc_info=kw.pop("exc_info", None),
    )


# ---- setup_logging ----


def test_setup_logging_sets_root_level() -> None:
    setup_logging("debug")
    assert logging.getLogger().level == logging.DEBUG

    setup_logging("warning")
    assert logging.getLogger().level == logging.WARNING


def test_setup_logging_defaults_to_info_for_unknown_level() -> None:
    setup_logging("nonexistent")
    assert logging.getLogger().level == logging.INFO


def test_setup_logging_quiets_http_libraries_at_debug() -> None:
    setup_logging("debug")
    assert logging.getLogger("uvicorn").level == logging.WARNING
    assert logging.getLogger("httpx").level == logging.WARNING


def test_setup_logging_json_handler() -> None:
    setup_logging("info", json_format=True)
    (handler,) = logging.getLogger().handlers
    assert isinstance(handler.formatter, _JsonFormatter)
    setup_logging("info")


# ---- container format ----


def test_formatter_excludes_location_for_info() -> None:
    output = _ContainerFormatter().format(_record())
    assert "hello" in output
    assert "[test.py:" not in output


def test_formatter_includes_location_for_warning() -> None:
    output = _ContainerFormatter().format(
        _record(logging.WARNING, "OAUTH2 [token] FAIL", lineno=42)
    )
    assert "OAUTH2 [token] FAIL" in output
    assert "[test.py:42]" in output


# ---- JSON format ----


def test_json_formatter_lifts_oauth_context() -> None:
    record = _record(msg="code redeemed user=%s", args=(3,), name="wpauth.services")
    record.request_id = "abc-123"  # type: ignore[attr-defined]
    record.client_id = "demo-client"  # type: ignore[attr-defined]
    record.user_id = 3  # type: ignore[attr-defined]

    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["message"] == "code redeemed user=3"
    assert parsed["logger"] == "wpauth.services"
    assert parsed["level"] == "INFO"
    assert parsed["request_id"] == "abc-123"
    assert parsed["client_id"] == "demo-client"
    assert parsed["user_id"] == 3
    assert "method" not in parsed


def test_json_formatter_includes_exception_info() -> None:
    try:
        raise ValueError("upstream broke")
    except ValueError:
        record = _record(logging.ERROR, "relay failed", exc_info=sys.exc_info())
        output = _JsonFormatter().format(record)

    assert "ValueError: upstream broke" in json.loads(output)["exception"]


# ---- fingerprint ----


def test_fingerprint_is_short_and_stable() -> None:
    tag = fingerprint("some-authorization-code")
    assert len(tag) == 12
    assert tag == fingerprint("some-authorization-code")
    assert tag != fingerprint("another-code")
    assert "some-authorization-code" not in tag


# ---- request context filter ----


def test_context_filter_stamps_bound_identifiers() -> None:
    def run() -> logging.LogRecord:
        request_id_var.set("req-1")
        bind_request_context(client_id="demo-client", user_id=7)
        record = _record()
        RequestContextFilter().filter(record)
        return record

    record = contextvars.copy_context().run(run)
    assert record.request_id == "req-1"
    assert record.client_id == "demo-client"
    assert record.user_id == "7"


def test_context_filter_keeps_explicit_extra() -> None:
    def run() -> logging.LogRecord:
        bind_request_context(client_id="bound")
        record = _record()
        record.client_id = "explicit"
        RequestContextFilter().filter(record)
        return record

    record = contextvars.copy_context().run(run)
    assert record.client_id == "explicit"
    assert record.user_id is None


def test_setup_logging_installs_context_filter_on_handler() -> None:
    setup_logging("info")
    (handler,) = logging.getLogger().handlers
    assert any(isinstance(f, RequestContextFilter) for f in handler.filters)
