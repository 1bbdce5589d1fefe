"""Tests for the request context middleware.

Verifies that every response gets:
- An X-Request-ID header (generated or echoed from the request)
- Request timing logged
- Log records tagged with the request, client and user they belong to
"""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient

from tests.conftest import (
    CONFIDENTIAL_CLIENT_ID,
    issue_tokens,
    login_as,
    obtain_code,
    token_form,
)
from wpauth.core.logging import RequestContextFilter


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    """When no X-Request-ID header is sent, one is generated."""
    resp = client.get("/health")
    req_id = resp.headers.get("x-request-id")
    assert req_id is not None
    # Should be a valid UUID
    uuid.UUID(req_id)  # raises ValueError if invalid


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    """When the client sends X-Request-ID, the same value is echoed back."""
    custom_id = "my-custom-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": custom_id})
    assert resp.headers.get("x-request-id") == custom_id


def test_request_id_present_on_error_responses(client: TestClient) -> None:
    """Even error responses (401, 404) get an X-Request-ID header."""
    resp = client.get("/resource/me")  # No auth token → 401
    assert resp.headers.get("x-request-id") is not None


class _Capture(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.addFilter(RequestContextFilter())
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@pytest.fixture
def captured():
    handler = _Capture()
    logger = logging.getLogger("wpauth")
    level = logger.level
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)
    yield handler.records
    logger.removeHandler(handler)
    logger.setLevel(level)


def test_token_exchange_records_carry_client_and_request_id(
    client: TestClient, captured: list[logging.LogRecord]
) -> None:
    """Lines logged while redeeming a code are tagged with the OAuth2 client."""
    login_as(client)
    code, verifier, _ = obtain_code(client)
    captured.clear()

    resp = client.post(
        "/oauth2/v1/token",
        data=token_form(code, verifier=verifier),
        headers={"X-Request-ID": "req-token-1"},
    )
    assert resp.status_code == 200

    (redeemed,) = [r for r in captured if "code redeemed" in r.getMessage()]
    assert redeemed.request_id == "req-token-1"
    assert redeemed.client_id == CONFIDENTIAL_CLIENT_ID


def test_bearer_requests_carry_user_id(
    client: TestClient, captured: list[logging.LogRecord]
) -> None:
    tokens = issue_tokens(client)
    captured.clear()

    resp = client.get(
        "/oauth2/v1/userinfo",
        headers={"Authorization": f"Bearer {tokens['access_token']}"},
    )
    assert resp.status_code == 200

    (accepted,) = [r for r in captured if "Bearer token accepted" in r.getMessage()]
    assert accepted.user_id is not None
    assert accepted.client_id == CONFIDENTIAL_CLIENT_ID


def test_context_does_not_leak_between_requests(
    client: TestClient, captured: list[logging.LogRecord]
) -> None:
    issue_tokens(client)
    captured.clear()

    client.get("/health", headers={"X-Request-ID": "req-health"})

    (summary,) = [r for r in captured if r.name == "wpauth.middleware.request_context"]
    assert summary.request_id == "req-health"
    assert summary.client_id is None
    assert summary.user_id is None
