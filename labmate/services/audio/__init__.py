"""Audio services (capture, playback scheduling, PCM codec)."""

from labmate.services.audio.capture import AudioCapturePipeline
from labmate.services.audio.codec import estimate_level, float_to_pcm16, pcm16_to_float
from labmate.services.audio.exceptions import AudioDeviceError, AudioError, AudioResamplingError
from labmate.services.audio.playback import PlaybackScheduler, ScheduledBuffer
from labmate.services.audio.protocol import CaptureSource, PlaybackHandle, PlaybackSink
from labmate.services.audio.resampler import AudioResampler

__all__ = [
    # Protocol
    "CaptureSource",
    "PlaybackSink",
    "PlaybackHandle",
    # Implementation
    "AudioCapturePipeline",
    "PlaybackScheduler",
    "ScheduledBuffer",
    "AudioResampler",
    # Codec
    "float_to_pcm16",
    "pcm16_to_float",
    "estimate_level",
    # Exceptions
    "AudioError",
    "AudioDeviceError",
    "AudioResamplingError",
]
