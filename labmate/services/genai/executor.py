"""Bounded retry of one-shot requests across the credential pool."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from labmate.logging_config import get_logger
from labmate.observability.metrics import GENAI_ATTEMPTS, record_request_metrics
from labmate.services.genai.credential_pool import Credential, CredentialPool, Strategy
from labmate.services.genai.exceptions import (
    AllCredentialsFailedError,
    CredentialSuspendedError,
    GenAIServiceError,
    QuotaOrPermissionError,
    TransientError,
)

logger: Any = get_logger(__name__)

ClientT = TypeVar("ClientT")
T = TypeVar("T")

# HTTP statuses that are attributed to the credential itself
QUOTA_STATUS_CODES = frozenset({403, 429})

# Message fragments that indicate quota/permission problems when no status is exposed
QUOTA_MARKERS = ("429", "RESOURCE_EXHAUSTED", "PERMISSION_DENIED")

DEFAULT_MIN_ATTEMPTS = 3


def _status_code(error: BaseException) -> int | None:
    """Extract an HTTP status from SDK/HTTP exceptions, if present."""
    for attr in ("code", "status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value

    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return None


def classify_error(error: BaseException) -> GenAIServiceError:
    """Map an arbitrary failure to QuotaOrPermissionError or TransientError.

    Errors that are already classified pass through unchanged.
    """
    if isinstance(error, (CredentialSuspendedError, QuotaOrPermissionError, TransientError)):
        return error

    status = _status_code(error)
    message = str(error) or type(error).__name__

    if status in QUOTA_STATUS_CODES:
        return QuotaOrPermissionError(message, status_code=status)
    if any(marker in message for marker in QUOTA_MARKERS):
        return QuotaOrPermissionError(message, status_code=status)
    return TransientError(message)


class ResilientExecutor(Generic[ClientT]):
    """Runs a one-shot operation with key rotation and suspension feedback.

    Each attempt draws a fresh credential round-robin and builds a fresh
    client bound to it. Attempts are strictly sequential. Holds no
    per-call state, so one executor can serve every one-shot call path.
    """

    def __init__(
        self,
        pool: CredentialPool,
        client_factory: Callable[[Credential], ClientT],
        *,
        min_attempts: int = DEFAULT_MIN_ATTEMPTS,
    ) -> None:
        self._pool = pool
        self._client_factory = client_factory
        self._min_attempts = min_attempts

    @property
    def pool(self) -> CredentialPool:
        """The credential pool used for rotation."""
        return self._pool

    def attempt_budget(self) -> int:
        """Number of attempts the next call will make."""
        return max(self._min_attempts, self._pool.available_count())

    def _attribute(
        self, credential: Credential, error: GenAIServiceError
    ) -> GenAIServiceError:
        """Turn a quota error on an already suspended key into CredentialSuspendedError.

        Another request suspended the key while this one was in flight, so
        the failure is already accounted for. Forced reuse (nothing left
        to rotate to) still counts as a fresh quota failure.
        """
        if not isinstance(error, QuotaOrPermissionError):
            return error
        if not self._pool.is_suspended(credential) or self._pool.available_count() == 0:
            return error
        return CredentialSuspendedError(
            f"Key {credential.masked} was suspended while the request was in flight"
        )

    async def execute(self, operation: Callable[[ClientT], Awaitable[T]]) -> T:
        """Run `operation` until it succeeds or the attempt budget is spent.

        Raises:
            PoolExhaustedError: If no credentials are configured
            AllCredentialsFailedError: When every attempt failed
        """
        max_attempts = self.attempt_budget()
        last_error: BaseException | None = None
        start_time = time.perf_counter()

        for attempt in range(1, max_attempts + 1):
            credential = self._pool.next(Strategy.ROUND_ROBIN)

            try:
                client = self._client_factory(credential)
                result = await operation(client)
            except Exception as e:
                last_error = e
                error = self._attribute(credential, classify_error(e))

                if isinstance(error, CredentialSuspendedError):
                    GENAI_ATTEMPTS.labels(outcome="suspended").inc()
                    logger.debug(f"{error}, rotating")
                    continue

                logger.warning(
                    f"Request failed with key {credential.masked} "
                    f"(attempt {attempt}/{max_attempts}): {e}"
                )

                if isinstance(error, QuotaOrPermissionError):
                    GENAI_ATTEMPTS.labels(outcome="quota").inc()
                    self._pool.suspend(credential)
                else:
                    # Not the key's fault; a different key/path may still work
                    GENAI_ATTEMPTS.labels(outcome="transient").inc()
                continue

            GENAI_ATTEMPTS.labels(outcome="success").inc()
            record_request_metrics("success", time.perf_counter() - start_time)
            return result

        record_request_metrics("failed", time.perf_counter() - start_time)
        logger.error(f"All {max_attempts} attempts failed, last error: {last_error}")
        raise AllCredentialsFailedError(max_attempts, last_error) from last_error

    async def execute_or_none(self, operation: Callable[[ClientT], Awaitable[T]]) -> T | None:
        """Like execute(), but an exhausted retry budget resolves to None."""
        try:
            return await self.execute(operation)
        except AllCredentialsFailedError as e:
            logger.error(f"One-shot request gave no result: {e}")
            return None
