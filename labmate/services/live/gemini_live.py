"""Gemini Live API channel."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

from google.genai import types
from websockets.exceptions import ConnectionClosedOK

from labmate.logging_config import get_logger
from labmate.services.genai.credential_pool import Credential
from labmate.services.genai.gemini import build_client
from labmate.services.live.exceptions import ConnectError
from labmate.services.live.protocol import (
    ChannelClosed,
    ChannelEvent,
    ChannelFailed,
    ChannelMessage,
    ChannelOpened,
    LiveSessionConfig,
)

logger: Any = get_logger(__name__)


def build_live_config(config: LiveSessionConfig) -> types.LiveConnectConfig:
    """Translate session parameters into a LiveConnectConfig."""
    speech_config = None
    if config.voice:
        speech_config = types.SpeechConfig(
            voice_config=types.VoiceConfig(
                prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=config.voice)
            )
        )

    return types.LiveConnectConfig(
        response_modalities=[types.Modality.AUDIO],
        system_instruction=config.system_instruction,
        speech_config=speech_config,
        input_audio_transcription=types.AudioTranscriptionConfig()
        if config.input_transcription
        else None,
        output_audio_transcription=types.AudioTranscriptionConfig()
        if config.output_transcription
        else None,
    )


def to_channel_message(response: Any) -> ChannelMessage | None:
    """Extract the parts of a server message the session cares about."""
    content = getattr(response, "server_content", None)
    if content is None:
        return None

    input_text = content.input_transcription.text if content.input_transcription else None
    output_text = content.output_transcription.text if content.output_transcription else None

    audio = b""
    if content.model_turn and content.model_turn.parts:
        for part in content.model_turn.parts:
            if part.inline_data and part.inline_data.data:
                audio += part.inline_data.data

    message = ChannelMessage(
        interrupted=bool(content.interrupted),
        input_transcript=input_text or None,
        output_transcript=output_text or None,
        audio=audio or None,
    )
    if message == ChannelMessage():
        return None
    return message


class GeminiLiveChannel:
    """Duplex channel over an open Gemini Live session."""

    def __init__(self, ctxmgr: Any, session: Any, input_sample_rate: int) -> None:
        self._ctxmgr = ctxmgr
        self._session = session
        self._mime_type = f"audio/pcm;rate={input_sample_rate}"
        self._closed = False

    async def events(self) -> AsyncIterator[ChannelEvent]:
        yield ChannelOpened()

        try:
            while not self._closed:
                received = 0
                # receive() ends after each turn_complete; loop for the next turn
                async for response in self._session.receive():
                    received += 1
                    message = to_channel_message(response)
                    if message is not None:
                        yield message
                if received == 0:
                    break
        except asyncio.CancelledError:
            raise
        except ConnectionClosedOK as e:
            yield ChannelClosed(reason=str(e))
            return
        except Exception as e:
            if self._closed:
                yield ChannelClosed(reason="closed locally")
            else:
                logger.error(f"Live channel failed: {e}")
                yield ChannelFailed(error=e)
            return

        yield ChannelClosed(reason="closed locally" if self._closed else "stream ended")

    async def send_audio(self, pcm: bytes) -> None:
        if self._closed:
            return
        await self._session.send_realtime_input(
            audio=types.Blob(data=pcm, mime_type=self._mime_type)
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._ctxmgr.__aexit__(None, None, None)
        except Exception as e:
            logger.warning(f"Error closing live channel: {e}")


class GeminiLiveConnector:
    """Opens Gemini Live channels, one client per credential."""

    def __init__(self, client_factory: Callable[[Credential], Any] = build_client) -> None:
        self._client_factory = client_factory

    async def open(self, credential: Credential, config: LiveSessionConfig) -> GeminiLiveChannel:
        client = self._client_factory(credential)
        ctxmgr = client.aio.live.connect(model=config.model, config=build_live_config(config))

        try:
            session = await ctxmgr.__aenter__()
        except Exception as e:
            logger.error(f"Failed to open live session with key {credential.masked}: {e}")
            raise ConnectError(f"Failed to open live session: {e}") from e

        logger.info(f"Live session open on {config.model} (voice={config.voice})")
        return GeminiLiveChannel(ctxmgr, session, config.input_sample_rate)
