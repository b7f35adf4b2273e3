"""Prometheus metrics for the labmate AI session client.

Provides metrics for credential health, request retries and live sessions.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

# =============================================================================
# Counters
# =============================================================================

CREDENTIAL_SUSPENSIONS = Counter(
    "labmate_credential_suspensions_total",
    "Total credential suspensions after quota/permission errors",
)

GENAI_ATTEMPTS = Counter(
    "labmate_genai_attempts_total",
    "One-shot request attempts by outcome",
    ["outcome"],  # success, quota, suspended, transient
)

GENAI_REQUESTS = Counter(
    "labmate_genai_requests_total",
    "One-shot requests by final outcome",
    ["outcome"],  # success, failed
)

LIVE_INTERRUPTIONS = Counter(
    "labmate_live_interruptions_total",
    "Server-side barge-in interruptions received",
)

LIVE_SESSIONS = Counter(
    "labmate_live_sessions_total",
    "Live sessions ended, by how they ended",
    ["outcome"],  # disconnected, closed, error, connect_failed
)

# =============================================================================
# Gauges
# =============================================================================

AVAILABLE_CREDENTIALS = Gauge(
    "labmate_available_credentials",
    "Credentials not currently suspended",
)

ACTIVE_LIVE_SESSIONS = Gauge(
    "labmate_active_live_sessions",
    "Currently connected live sessions",
)

# =============================================================================
# Histograms
# =============================================================================

GENAI_REQUEST_DURATION = Histogram(
    "labmate_genai_request_seconds",
    "One-shot request duration including retries",
    buckets=[0.25, 0.5, 1.0, 2.0, 3.0, 5.0, 10.0, 20.0, 30.0],
)

# =============================================================================
# Helper Functions
# =============================================================================


def record_request_metrics(outcome: str, duration_seconds: float) -> None:
    """Record metrics for a completed one-shot request.

    Args:
        outcome: Final outcome (success, failed)
        duration_seconds: Wall time across all attempts
    """
    GENAI_REQUESTS.labels(outcome=outcome).inc()
    GENAI_REQUEST_DURATION.observe(duration_seconds)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output.

    Returns:
        Metrics in Prometheus text exposition format.
    """
    return generate_latest()


def get_content_type() -> str:
    """Get the content type for Prometheus metrics.

    Returns:
        Content-Type header value for Prometheus metrics.
    """
    return CONTENT_TYPE_LATEST
