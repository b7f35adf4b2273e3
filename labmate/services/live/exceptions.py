"""Custom exceptions for live sessions."""


class LiveSessionError(Exception):
    """Base exception for live session errors."""

    pass


class ConnectError(LiveSessionError):
    """Raised when a live session cannot be established."""

    pass


class ChannelError(LiveSessionError):
    """Raised when the duplex channel fails after opening."""

    pass


class ChannelClosedError(ChannelError):
    """Raised when the remote end closes the channel."""

    pass
