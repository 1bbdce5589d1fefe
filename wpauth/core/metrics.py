"""Prometheus metric inventory.

All metrics are declared here; the modules that own the behaviour import
the one they need and increment it at the point of action.  Labels are kept
to small closed sets (outcome names, OAuth2 error codes) so cardinality
stays bounded no matter how many clients or users exist.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# OAuth2 server metrics
# ---------------------------------------------------------------------------

AUTHORIZE_DECISIONS = Counter(
    "oauth2_authorize_decisions_total",
    "Outcomes of /authorize and consent handling",
    # "login_required", "consent_required", "code_issued", or an OAuth2 error code
    ["outcome"],
)

TOKEN_REQUESTS = Counter(
    "oauth2_token_requests_total",
    "Token endpoint and refresh results",
    # "issued", "refreshed", or an OAuth2 error code
    ["result"],
)

TOKEN_STORE_OPERATIONS = Counter(
    "token_store_operations_total",
    "Token store reads by operation and result",
    ["operation", "result"],  # get|take, hit|miss
)
