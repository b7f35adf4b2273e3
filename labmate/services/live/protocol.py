"""Live duplex channel protocol and event types."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol

from labmate.services.genai.credential_pool import Credential


@dataclass(frozen=True, slots=True)
class ChannelOpened:
    """The remote end accepted the session."""


@dataclass(frozen=True, slots=True)
class ChannelMessage:
    """One server message. Any combination of fields may be set."""

    interrupted: bool = False
    input_transcript: str | None = None
    output_transcript: str | None = None
    audio: bytes | None = None


@dataclass(frozen=True, slots=True)
class ChannelClosed:
    reason: str = ""


@dataclass(frozen=True, slots=True)
class ChannelFailed:
    error: BaseException


ChannelEvent = ChannelOpened | ChannelMessage | ChannelClosed | ChannelFailed


@dataclass(frozen=True, slots=True)
class LiveSessionConfig:
    """Parameters for opening a live channel."""

    model: str
    system_instruction: str
    voice: str | None = None
    input_sample_rate: int = 16000
    input_transcription: bool = True
    output_transcription: bool = True


class DuplexChannel(Protocol):
    """An open bidirectional audio channel.

    events() yields ChannelOpened first, then messages, and ends with
    exactly one ChannelClosed or ChannelFailed.
    """

    def events(self) -> AsyncIterator[ChannelEvent]:
        ...

    async def send_audio(self, pcm: bytes) -> None:
        """Send one 16-bit PCM chunk at the configured input rate."""
        ...

    async def close(self) -> None:
        """Close the channel. Safe to call more than once."""
        ...


class ChannelConnector(Protocol):
    """Opens live channels bound to a single credential."""

    async def open(self, credential: Credential, config: LiveSessionConfig) -> DuplexChannel:
        """Open a channel.

        Raises:
            ConnectError: If the channel cannot be opened
        """
        ...
