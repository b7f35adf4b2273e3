"""Gapless playback scheduling of model audio on the device clock."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from labmate.logging_config import get_logger
from labmate.services.audio.codec import duration_seconds, pcm16_to_float
from labmate.services.audio.protocol import PlaybackHandle, PlaybackSink
from labmate.services.audio.resampler import AudioResampler

logger: Any = get_logger(__name__)


@dataclass(eq=False, slots=True)
class ScheduledBuffer:
    """One decoded chunk placed on the playback timeline."""

    start_time: float
    duration: float
    handle: PlaybackHandle | None = field(default=None, repr=False)

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration


class PlaybackScheduler:
    """Queues PCM chunks back to back on the output device.

    Chunks start at max(now, next_start_time) so consecutive chunks play
    without gaps or overlap, and a chunk arriving after the queue drained
    starts immediately. flush() silences everything pending and resets the
    timeline to "now".

    Must be driven from a single thread (the event loop); the sink marshals
    its end-of-buffer callbacks back onto it.
    """

    def __init__(
        self,
        sink: PlaybackSink,
        *,
        sample_rate: int = 24000,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._sink = sink
        self._sample_rate = sample_rate
        self._clock = clock or (lambda: sink.current_time)
        self._resampler = AudioResampler(sample_rate, sink.sample_rate)
        self._next_start_time = 0.0
        self._pending: list[ScheduledBuffer] = []
        self._closed = False

    @property
    def next_start_time(self) -> float:
        return self._next_start_time

    @property
    def pending(self) -> tuple[ScheduledBuffer, ...]:
        """Buffers scheduled or playing, oldest first."""
        return tuple(self._pending)

    @property
    def closed(self) -> bool:
        return self._closed

    def enqueue(self, pcm: bytes) -> ScheduledBuffer | None:
        """Decode a PCM chunk and schedule it after everything already queued.

        Returns:
            The scheduled buffer, or None for empty input, a closed
            scheduler, or a chunk the resampler is still holding back
        """
        if self._closed:
            logger.debug("Dropping audio chunk, playback is closed")
            return None

        samples = pcm16_to_float(pcm)
        if samples.size == 0:
            return None

        if self._resampler.needs_resampling:
            samples = self._resampler.resample(samples)
            if samples.size == 0:
                return None

        # Timed by what the sink will actually play
        duration = duration_seconds(samples.size, self._sink.sample_rate)
        start_time = max(self._clock(), self._next_start_time)
        entry = ScheduledBuffer(start_time=start_time, duration=duration)
        entry.handle = self._sink.schedule(
            samples,
            start_time,
            on_ended=lambda: self._on_ended(entry),
        )

        self._next_start_time = start_time + duration
        self._pending.append(entry)
        return entry

    def flush(self) -> int:
        """Stop all pending buffers and reset the timeline.

        Returns:
            Number of buffers that were stopped
        """
        stopped = list(self._pending)
        self._pending.clear()
        self._resampler.reset()

        for entry in stopped:
            if entry.handle is not None:
                entry.handle.stop()

        self._next_start_time = self._clock()
        if stopped:
            logger.debug(f"Flushed {len(stopped)} playback buffers")
        return len(stopped)

    def close(self) -> None:
        """Flush and refuse any further chunks."""
        self.flush()
        self._closed = True

    def _on_ended(self, entry: ScheduledBuffer) -> None:
        try:
            self._pending.remove(entry)
        except ValueError:
            # Already dropped by flush()
            pass
