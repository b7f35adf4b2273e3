"""PCM conversions and the cheap input level estimate."""

from __future__ import annotations

import numpy as np

PCM16_SAMPLE_WIDTH = 2  # Bytes per 16-bit sample
PCM16_DTYPE = "<i2"  # Wire format is little-endian


def float_to_pcm16(samples: np.ndarray) -> bytes:
    """Convert float samples in [-1, 1] to little-endian 16-bit PCM bytes.

    Out-of-range input is clamped first. Negative values scale by 32768
    and positive values by 32767, so both extremes map exactly.
    """
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0)
    return scaled.astype(PCM16_DTYPE).tobytes()


def pcm16_to_float(data: bytes) -> np.ndarray:
    """Convert 16-bit PCM bytes to float32 samples in [-1, 1).

    A trailing odd byte is ignored.
    """
    usable = len(data) - (len(data) % PCM16_SAMPLE_WIDTH)
    pcm = np.frombuffer(data[:usable], dtype=PCM16_DTYPE)
    return pcm.astype(np.float32) / 32768.0


def estimate_level(samples: np.ndarray, stride: int = 50, gain: float = 500.0) -> float:
    """Coarse 0-100 input level for display.

    Averages the magnitude of every `stride`-th sample and scales it by
    `gain`. Not an RMS meter; it only has to be cheap enough for the
    capture callback.
    """
    if samples.size == 0:
        return 0.0
    picked = np.abs(samples[::stride])
    return float(min(100.0, float(picked.mean()) * gain))


def duration_seconds(num_samples: int, sample_rate: int) -> float:
    """Playback duration of a mono buffer."""
    return num_samples / sample_rate
