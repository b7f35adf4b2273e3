"""Streaming audio resampling using soxr."""

from __future__ import annotations

from typing import Any

import numpy as np
import soxr

from labmate.logging_config import get_logger
from labmate.services.audio.exceptions import AudioResamplingError

logger: Any = get_logger(__name__)


class AudioResampler:
    """High-quality streaming resampler using soxr.

    Bridges device rates and session rates when hardware cannot run at them:
    - Microphone at 44100/48000Hz → 16000Hz for the live session
    - Live session 24000Hz → speaker at 44100/48000Hz

    Audio arrives in chunks, so one soxr.ResampleStream carries the filter
    state from chunk to chunk. Chunk boundaries stay continuous and no
    samples are lost to per-chunk rounding; the stream holds back its
    filter delay until more input (or last=True) arrives.
    """

    def __init__(
        self,
        source_rate: int,
        target_rate: int,
        quality: str = "HQ",  # VHQ, HQ, MQ, LQ, QQ
    ) -> None:
        self._source_rate = source_rate
        self._target_rate = target_rate
        self._quality = quality
        self._stream: soxr.ResampleStream | None = (
            self._new_stream() if self.needs_resampling else None
        )

    @property
    def ratio(self) -> float:
        """Resampling ratio (target/source)."""
        return self._target_rate / self._source_rate

    @property
    def needs_resampling(self) -> bool:
        """Check if resampling is actually needed."""
        return self._source_rate != self._target_rate

    def resample(self, samples: np.ndarray, last: bool = False) -> np.ndarray:
        """Resample the next chunk of a mono float stream.

        Args:
            samples: Float samples in [-1, 1]
            last: Flush the held-back tail; the stream starts fresh afterwards

        Returns:
            Float32 samples at the target rate (may be shorter than the
            chunk while the filter fills)
        """
        if self._stream is None:
            return samples

        try:
            resampled = self._stream.resample_chunk(
                np.asarray(samples, dtype=np.float32), last=last
            )
        except Exception as e:
            logger.error(f"Resampling failed: {e}")
            raise AudioResamplingError(f"Failed to resample audio: {e}") from e

        if last:
            self.reset()
        return np.asarray(resampled, dtype=np.float32)

    def reset(self) -> None:
        """Drop buffered input so the next chunk starts a new stream."""
        if self.needs_resampling:
            self._stream = self._new_stream()

    def _new_stream(self) -> soxr.ResampleStream:
        return soxr.ResampleStream(
            self._source_rate,
            self._target_rate,
            1,
            dtype="float32",
            quality=self._quality,
        )
