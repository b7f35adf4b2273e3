"""Tests for transcript aggregation."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from labmate.core.transcript import Message, Role, TranscriptAggregator


class ManualClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 1, 1, 9, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def aggregator(clock: ManualClock) -> TranscriptAggregator:
    return TranscriptAggregator(merge_window=5.0, clock=clock)


class TestTranscriptAggregator:
    """Tests for fragment merging."""

    def test_first_fragment_creates_message(self, aggregator, clock) -> None:
        """Test the first fragment opens a message stamped now."""
        message = aggregator.add(Role.USER, "Hel")

        assert message == Message(role=Role.USER, text="Hel", timestamp=clock.now)
        assert len(aggregator) == 1

    def test_same_role_within_window_merges(self, aggregator, clock) -> None:
        """Test fragments 2s apart join one message."""
        started = clock.now
        aggregator.add(Role.USER, "Hel")
        clock.advance(2.0)
        aggregator.add(Role.USER, "lo")

        assert aggregator.messages == (Message(Role.USER, "Hello", started),)

    def test_same_role_outside_window_splits(self, aggregator, clock) -> None:
        """Test fragments 6s apart become two messages."""
        aggregator.add(Role.USER, "Hel")
        clock.advance(6.0)
        aggregator.add(Role.USER, "lo")

        assert [m.text for m in aggregator.messages] == ["Hel", "lo"]

    def test_window_measured_from_first_fragment(self, aggregator, clock) -> None:
        """Test a long utterance splits once 5s pass since it started."""
        for _ in range(4):
            aggregator.add(Role.MODEL, "word ")
            clock.advance(2.0)

        assert [m.text for m in aggregator.messages] == ["word word word ", "word "]

    def test_role_change_splits(self, aggregator, clock) -> None:
        """Test a different role always opens a new message."""
        aggregator.add(Role.USER, "Is the disk ready?")
        clock.advance(0.5)
        aggregator.add(Role.MODEL, "Yes.")
        clock.advance(0.5)
        aggregator.add(Role.USER, " Thanks")

        assert [m.role for m in aggregator.messages] == [Role.USER, Role.MODEL, Role.USER]

    def test_messages_snapshot_is_immutable(self, aggregator) -> None:
        """Test callers get a tuple snapshot."""
        aggregator.add(Role.USER, "a")
        snapshot = aggregator.messages
        aggregator.add(Role.USER, "b")

        assert snapshot[0].text == "a"
        assert aggregator.messages[0].text == "ab"

    def test_clear(self, aggregator) -> None:
        """Test clear empties the transcript."""
        aggregator.add(Role.USER, "a")
        aggregator.clear()

        assert aggregator.messages == ()
