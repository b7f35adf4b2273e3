"""Microphone capture pipeline: level metering and PCM encoding."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import numpy as np

from labmate.logging_config import get_logger
from labmate.services.audio.codec import estimate_level, float_to_pcm16
from labmate.services.audio.protocol import CaptureSource
from labmate.services.audio.resampler import AudioResampler

logger: Any = get_logger(__name__)


class AudioCapturePipeline:
    """Turns captured float frames into 16-bit PCM chunks for the live channel.

    For every frame: estimate the input level, report it, convert to PCM
    at the session rate and hand the chunk to `forward`. `forward` must not
    block; the session backs it with a bounded queue.

    Frames that arrive while `forwarding` is off are dropped without
    metering.
    """

    def __init__(
        self,
        forward: Callable[[bytes], None],
        *,
        source_rate: int = 16000,
        target_rate: int = 16000,
        level_stride: int = 50,
        level_gain: float = 500.0,
        on_level: Callable[[float], None] | None = None,
    ) -> None:
        self._forward = forward
        self._resampler = AudioResampler(source_rate, target_rate)
        self._level_stride = level_stride
        self._level_gain = level_gain
        self._on_level = on_level
        self._level = 0.0
        self._frames_forwarded = 0
        self._source: CaptureSource | None = None
        self.forwarding = False

    @property
    def level(self) -> float:
        """Most recent input level (0-100)."""
        return self._level

    @property
    def frames_forwarded(self) -> int:
        return self._frames_forwarded

    def attach(self, source: CaptureSource) -> None:
        """Start the capture source and route its frames into this pipeline."""
        source.start(self.process_frame)
        self._source = source

    def detach(self) -> None:
        """Stop forwarding and release the capture source."""
        self.forwarding = False
        self._resampler.reset()
        source, self._source = self._source, None
        if source is not None:
            source.stop()

    def process_frame(self, samples: np.ndarray) -> None:
        """Handle one captured frame."""
        if not self.forwarding:
            return

        mono = samples if samples.ndim == 1 else samples[:, 0]

        self._level = estimate_level(mono, self._level_stride, self._level_gain)
        if self._on_level is not None:
            self._on_level(self._level)

        if self._resampler.needs_resampling:
            mono = self._resampler.resample(mono)
            if mono.size == 0:
                return

        self._frames_forwarded += 1
        self._forward(float_to_pcm16(mono))
