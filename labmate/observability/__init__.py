"""Observability module for metrics."""

from labmate.observability.metrics import (
    ACTIVE_LIVE_SESSIONS,
    AVAILABLE_CREDENTIALS,
    CREDENTIAL_SUSPENSIONS,
    GENAI_ATTEMPTS,
    GENAI_REQUESTS,
    LIVE_INTERRUPTIONS,
    LIVE_SESSIONS,
    record_request_metrics,
)

__all__ = [
    "CREDENTIAL_SUSPENSIONS",
    "GENAI_ATTEMPTS",
    "GENAI_REQUESTS",
    "LIVE_INTERRUPTIONS",
    "LIVE_SESSIONS",
    "AVAILABLE_CREDENTIALS",
    "ACTIVE_LIVE_SESSIONS",
    "record_request_metrics",
]
