"""Custom exceptions for audio services."""


class AudioError(Exception):
    """Base exception for audio errors."""

    pass


class AudioDeviceError(AudioError):
    """Raised when a capture or playback device cannot be opened."""

    pass


class AudioResamplingError(AudioError):
    """Raised when audio resampling fails."""

    pass
