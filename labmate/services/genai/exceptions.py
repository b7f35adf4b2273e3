"""Custom exceptions for GenAI services."""

from __future__ import annotations


class GenAIServiceError(Exception):
    """Base exception for GenAI service errors."""

    pass


class PoolExhaustedError(GenAIServiceError):
    """Raised when no credentials are configured at all."""

    pass


class CredentialSuspendedError(GenAIServiceError):
    """Raised internally when a request fails on a key that is already suspended.

    Happens when a concurrent request suspended the key while this one was
    in flight. Never surfaced to callers; it only triggers rotation.
    """

    pass


class QuotaOrPermissionError(GenAIServiceError):
    """Raised when a request fails due to quota (429) or permission (403).

    The credential that made the request gets suspended.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientError(GenAIServiceError):
    """Raised for failures not attributable to the credential.

    Network errors, 5xx responses and unparseable responses all land here.
    """

    pass


class AllCredentialsFailedError(GenAIServiceError):
    """Raised when every attempt in the retry budget failed."""

    def __init__(self, attempts: int, last_error: BaseException | None = None) -> None:
        super().__init__(f"All {attempts} attempts failed: {last_error}")
        self.attempts = attempts
        self.last_error = last_error
