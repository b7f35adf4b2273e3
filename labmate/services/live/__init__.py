"""Live duplex channel services."""

from labmate.services.live.exceptions import (
    ChannelClosedError,
    ChannelError,
    ConnectError,
    LiveSessionError,
)
from labmate.services.live.gemini_live import (
    GeminiLiveChannel,
    GeminiLiveConnector,
    build_live_config,
    to_channel_message,
)
from labmate.services.live.protocol import (
    ChannelClosed,
    ChannelConnector,
    ChannelEvent,
    ChannelFailed,
    ChannelMessage,
    ChannelOpened,
    DuplexChannel,
    LiveSessionConfig,
)

__all__ = [
    # Protocol
    "ChannelConnector",
    "DuplexChannel",
    "LiveSessionConfig",
    # Events
    "ChannelEvent",
    "ChannelOpened",
    "ChannelMessage",
    "ChannelClosed",
    "ChannelFailed",
    # Implementation
    "GeminiLiveConnector",
    "GeminiLiveChannel",
    "build_live_config",
    "to_channel_message",
    # Exceptions
    "LiveSessionError",
    "ConnectError",
    "ChannelError",
    "ChannelClosedError",
]
