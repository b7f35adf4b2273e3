"""Live transcript aggregation."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import Enum


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Role(str, Enum):
    """Transcript speaker."""

    USER = "user"
    MODEL = "model"


@dataclass(frozen=True, slots=True)
class Message:
    """One logical utterance.

    `timestamp` is when the utterance started; merged fragments keep it.
    """

    role: Role
    text: str
    timestamp: datetime = field(default_factory=_utcnow)


class TranscriptAggregator:
    """Merges incremental transcription fragments into utterances.

    A fragment joins the last message when it has the same role and that
    message started less than `merge_window` seconds ago. Otherwise it
    opens a new message.
    """

    def __init__(
        self,
        merge_window: float = 5.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._merge_window = timedelta(seconds=merge_window)
        self._clock = clock
        self._messages: list[Message] = []

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def add(self, role: Role, text: str) -> Message:
        """Apply one fragment and return the message it landed in."""
        now = self._clock()

        if self._messages:
            last = self._messages[-1]
            if last.role == role and now - last.timestamp < self._merge_window:
                merged = replace(last, text=last.text + text)
                self._messages[-1] = merged
                return merged

        message = Message(role=role, text=text, timestamp=now)
        self._messages.append(message)
        return message

    def clear(self) -> None:
        self._messages.clear()
