"""Audio device protocols.

Capture and playback hardware sit behind these protocols so the pipeline,
scheduler and session can run against in-memory fakes in tests.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

import numpy as np

FrameCallback = Callable[[np.ndarray], None]


class CaptureSource(Protocol):
    """Microphone stream delivering fixed-size mono float frames."""

    sample_rate: int

    def start(self, on_frame: FrameCallback) -> None:
        """Open the stream. `on_frame` is invoked on the event loop thread.

        Raises:
            AudioDeviceError: If the device cannot be opened
        """
        ...

    def stop(self) -> None:
        """Stop and release the stream. Safe to call more than once."""
        ...


class PlaybackHandle(Protocol):
    """A buffer that has been handed to the output device."""

    def stop(self) -> None:
        """Silence the buffer immediately."""
        ...


class PlaybackSink(Protocol):
    """Output device with a monotonic playback clock in seconds."""

    sample_rate: int

    @property
    def current_time(self) -> float:
        """Seconds of audio the device has rendered since it was opened."""
        ...

    def open(self) -> None:
        ...

    def schedule(
        self,
        samples: np.ndarray,
        start_time: float,
        on_ended: Callable[[], None],
    ) -> PlaybackHandle:
        """Queue float samples to start at `start_time` on the device clock.

        `on_ended` runs on the event loop thread once the buffer has
        finished playing naturally.
        """
        ...

    def close(self) -> None:
        ...
