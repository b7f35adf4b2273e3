"""API credential pool with rotation and temporary suspension."""

from __future__ import annotations

import random
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from labmate.logging_config import get_logger, mask_credential
from labmate.observability.metrics import AVAILABLE_CREDENTIALS, CREDENTIAL_SUSPENSIONS
from labmate.services.genai.exceptions import PoolExhaustedError

if TYPE_CHECKING:
    from labmate.config import Settings

logger: Any = get_logger(__name__)

DEFAULT_SUSPENSION_SECONDS = 60.0


class Strategy(str, Enum):
    """Credential selection strategy."""

    ROUND_ROBIN = "round-robin"  # Short-lived one-shot requests
    RANDOM = "random"  # Long-lived sessions, leaves the cursor alone


@dataclass(frozen=True, slots=True)
class Credential:
    """An API key handed out by the pool.

    The secret never appears in repr/str; only the masked prefix does.
    """

    secret: str = field(repr=False)
    slot: str = field(default="", compare=False)

    @property
    def masked(self) -> str:
        """Log-safe form of the key."""
        return mask_credential(self.secret)

    def __str__(self) -> str:
        return self.masked


class CredentialPool:
    """Owns the configured API keys and their suspension state.

    Structure is fixed after construction; only suspension state changes.
    Suspensions are pruned lazily on read, there is no background sweep.
    All public methods hold one lock so that availability counts and
    selection never observe a half-applied suspension.
    """

    def __init__(
        self,
        secrets: Mapping[str, str] | Iterable[str],
        *,
        suspension_seconds: float = DEFAULT_SUSPENSION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self._suspension_seconds = suspension_seconds
        self._clock = clock
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._cursor = 0
        self._suspended: dict[Credential, float] = {}

        if isinstance(secrets, Mapping):
            items = list(secrets.items())
        else:
            items = [(f"slot_{i}", s) for i, s in enumerate(secrets)]

        seen: set[str] = set()
        credentials: list[Credential] = []
        for slot, secret in items:
            value = (secret or "").strip()
            if not value or value in seen:
                continue
            seen.add(value)
            credentials.append(Credential(secret=value, slot=slot))
        self._credentials: tuple[Credential, ...] = tuple(credentials)

        AVAILABLE_CREDENTIALS.set(len(self._credentials))
        logger.info(f"Credential pool initialized with {len(self._credentials)} active keys")

    @classmethod
    def from_settings(cls, settings: Settings) -> CredentialPool:
        """Build the pool from configured credential slots."""
        return cls(
            settings.credential_slots(),
            suspension_seconds=settings.credential_suspension_seconds,
        )

    def __len__(self) -> int:
        return len(self._credentials)

    @property
    def credentials(self) -> tuple[Credential, ...]:
        """All configured credentials in configuration order."""
        return self._credentials

    @property
    def cursor(self) -> int:
        """Round-robin cursor (for monitoring)."""
        return self._cursor

    def available_count(self) -> int:
        """Number of credentials not currently suspended."""
        with self._lock:
            return len(self._available_locked())

    def is_suspended(self, credential: Credential) -> bool:
        """Check whether a credential is currently excluded from selection."""
        with self._lock:
            return self._is_suspended_locked(credential, self._clock())

    def suspended_until(self, credential: Credential) -> float | None:
        """Clock time at which the suspension ends, or None if not suspended."""
        with self._lock:
            if not self._is_suspended_locked(credential, self._clock()):
                return None
            return self._suspended[credential]

    def next(self, strategy: Strategy | str = Strategy.ROUND_ROBIN) -> Credential:
        """Select the next usable credential.

        Raises:
            PoolExhaustedError: If no credentials were configured
        """
        strategy = Strategy(strategy)

        with self._lock:
            if not self._credentials:
                logger.error("No API keys available in credential pool")
                raise PoolExhaustedError("No API keys configuration found.")

            available = self._available_locked()

            if not available:
                # Forced reuse keeps requests flowing; the caller's retry
                # budget is the real circuit breaker.
                primary = self._credentials[0]
                logger.warning(
                    f"All keys suspended! Forcing reuse of primary key {primary.masked}"
                )
                return primary

            if strategy is Strategy.RANDOM:
                return self._rng.choice(available)

            credential = available[self._cursor % len(available)]
            self._cursor += 1
            return credential

    def suspend(self, credential: Credential, duration: float | None = None) -> None:
        """Exclude a credential from selection for `duration` seconds.

        Re-suspending extends the existing suspension to now + duration;
        durations never stack.
        """
        seconds = self._suspension_seconds if duration is None else duration

        with self._lock:
            if credential not in self._credentials:
                logger.warning(f"Ignoring suspension of unknown key {credential.masked}")
                return

            until = self._clock() + seconds
            self._suspended[credential] = max(until, self._suspended.get(credential, until))
            self._available_locked()

        CREDENTIAL_SUSPENSIONS.inc()
        logger.warning(f"Suspending key {credential.masked} for {seconds:.0f}s")

    def _available_locked(self) -> list[Credential]:
        now = self._clock()
        available = [c for c in self._credentials if not self._is_suspended_locked(c, now)]
        # Expired suspensions are pruned here, so the gauge follows them
        AVAILABLE_CREDENTIALS.set(len(available))
        return available

    def _is_suspended_locked(self, credential: Credential, now: float) -> bool:
        until = self._suspended.get(credential)
        if until is None:
            return False
        if now >= until:
            # Lazy eviction of expired suspensions
            del self._suspended[credential]
            return False
        return True
