from __future__ import annotations

from fastapi.testclient import TestClient


def test_health_returns_ok(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    # No REDIS_URL under test
    assert data["checks"]["redis"] == "not_configured"


def test_ready_returns_200(client: TestClient) -> None:
    resp = client.get("/ready")
    assert resp.status_code == 200


def test_metrics_exposes_oauth2_counters(client: TestClient) -> None:
    client.get("/oauth2/v1/authorize", params={"response_type": "token"})
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "text/plain" in resp.headers["content-type"]
    assert "oauth2_authorize_decisions_total" in resp.text
    assert 'outcome="unsupported_response_type"' in resp.text
    assert 'endpoint="/oauth2/v1/authorize"' in resp.text
