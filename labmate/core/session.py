"""Realtime voice session management."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable, Iterable
from contextlib import AsyncExitStack
from enum import Enum
from typing import Any

from labmate.config import Settings, get_settings
from labmate.core.context import CLINICAL_PERSONA, Persona, build_system_instruction
from labmate.core.transcript import Message, Role, TranscriptAggregator
from labmate.logging_config import get_logger
from labmate.observability.metrics import (
    ACTIVE_LIVE_SESSIONS,
    LIVE_INTERRUPTIONS,
    LIVE_SESSIONS,
)
from labmate.services.audio.capture import AudioCapturePipeline
from labmate.services.audio.playback import PlaybackScheduler
from labmate.services.audio.protocol import CaptureSource, PlaybackSink
from labmate.services.genai.credential_pool import Credential, CredentialPool, Strategy
from labmate.services.live.exceptions import (
    ChannelClosedError,
    ChannelError,
    ConnectError,
    LiveSessionError,
)
from labmate.services.live.protocol import (
    ChannelClosed,
    ChannelConnector,
    ChannelFailed,
    ChannelMessage,
    ChannelOpened,
    DuplexChannel,
    LiveSessionConfig,
)

logger: Any = get_logger(__name__)


class SessionState(Enum):
    """Lifecycle of one realtime session. DISCONNECTED is terminal."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class OutboundAudioQueue:
    """Bounded buffer between the capture callback and the sender task."""

    def __init__(self, max_size: int = 64) -> None:
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=max_size)
        self._closed = False
        self.dropped = 0

    def append(self, chunk: bytes) -> None:
        """Add a chunk without waiting. Drops the oldest chunk when full."""
        if self._closed:
            return
        try:
            self._queue.put_nowait(chunk)
        except asyncio.QueueFull:
            try:
                self._queue.get_nowait()
                self.dropped += 1
                self._queue.put_nowait(chunk)
            except asyncio.QueueEmpty:
                pass

    async def get(self) -> bytes | None:
        """Next chunk, or None once the queue is closed."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def clear(self) -> None:
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break

    def close(self) -> None:
        """Discard pending chunks and wake the consumer."""
        self._closed = True
        self.clear()
        with contextlib.suppress(asyncio.QueueFull):
            self._queue.put_nowait(None)

    @property
    def size(self) -> int:
        return self._queue.qsize()


class RealtimeSession:
    """One live voice conversation over a duplex channel.

    IDLE -> CONNECTING -> CONNECTED -> DISCONNECTED. A session is used
    once; reconnecting means building a new session (pass `messages` as
    `history` to carry the conversation over).

    Inbound channel events are consumed by a single receive task in the
    order the channel delivers them. Captured audio goes through a bounded
    queue drained by a sender task, so the capture callback never waits on
    the network.
    """

    def __init__(
        self,
        pool: CredentialPool,
        connector: ChannelConnector,
        capture_source: CaptureSource,
        playback_sink: PlaybackSink,
        *,
        persona: Persona = CLINICAL_PERSONA,
        context: str = "",
        history: Iterable[Message] = (),
        settings: Settings | None = None,
        on_transcript: Callable[[tuple[Message, ...]], None] | None = None,
        on_level: Callable[[float], None] | None = None,
        on_state_change: Callable[[SessionState], None] | None = None,
        transcript: TranscriptAggregator | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._pool = pool
        self._connector = connector
        self._capture_source = capture_source
        self._playback_sink = playback_sink
        self._persona = persona
        self._context = context
        self._history = tuple(history)
        self._on_transcript = on_transcript
        self._on_state_change = on_state_change

        self._state = SessionState.IDLE
        self._credential: Credential | None = None
        self._channel: DuplexChannel | None = None
        self._last_error: LiveSessionError | None = None

        self._transcript = transcript or TranscriptAggregator(
            merge_window=self._settings.transcript_merge_window_seconds
        )
        self._outbound = OutboundAudioQueue(self._settings.outbound_queue_size)
        self._capture = AudioCapturePipeline(
            self._enqueue_audio,
            source_rate=capture_source.sample_rate,
            target_rate=self._settings.audio_input_sample_rate,
            level_stride=self._settings.level_sample_stride,
            level_gain=self._settings.level_gain,
            on_level=on_level,
        )
        self._scheduler = PlaybackScheduler(
            playback_sink,
            sample_rate=self._settings.audio_output_sample_rate,
        )

        self._resources: AsyncExitStack | None = None
        self._open_waiter: asyncio.Future[bool] | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._send_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def messages(self) -> tuple[Message, ...]:
        """Transcript so far, oldest first."""
        return self._transcript.messages

    @property
    def last_error(self) -> LiveSessionError | None:
        """Why the session ended, if the channel closed or failed."""
        return self._last_error

    @property
    def credential(self) -> Credential | None:
        return self._credential

    @property
    def scheduler(self) -> PlaybackScheduler:
        return self._scheduler

    @property
    def capture(self) -> AudioCapturePipeline:
        return self._capture

    def build_config(self) -> LiveSessionConfig:
        """Channel parameters for this session's persona and context."""
        return LiveSessionConfig(
            model=self._settings.live_model,
            system_instruction=build_system_instruction(
                self._persona, self._context, self._history
            ),
            voice=self._persona.voice,
            input_sample_rate=self._settings.audio_input_sample_rate,
        )

    async def connect(self) -> None:
        """Open the channel and start streaming.

        Returns once the channel has signalled open, or quietly if
        disconnect() was called in the meantime.

        Raises:
            ConnectError: If the session is not idle, or acquiring a key,
                the audio devices or the channel failed
        """
        if self._state is not SessionState.IDLE:
            raise ConnectError(f"Cannot connect a session in state {self._state.value}")

        self._set_state(SessionState.CONNECTING)
        self._open_waiter = asyncio.get_running_loop().create_future()
        resources = self._resources = AsyncExitStack()

        try:
            self._credential = self._pool.next(Strategy.RANDOM)
            logger.info(f"Connecting live session with key {self._credential.masked}")

            self._playback_sink.open()
            resources.callback(self._playback_sink.close)

            self._capture.attach(self._capture_source)
            resources.callback(self._capture.detach)

            channel = await self._connector.open(self._credential, self.build_config())
            if self._state is SessionState.DISCONNECTED:
                # disconnect() won while the channel was opening
                await channel.close()
                return

            self._channel = channel
            resources.push_async_callback(channel.close)

            self._receive_task = asyncio.create_task(
                self._receive_loop(channel), name="live-session-receive"
            )
            resources.push_async_callback(self._cancel_tasks)

            opened = await self._open_waiter
        except asyncio.CancelledError:
            if self._state is not SessionState.DISCONNECTED:
                await self._teardown(outcome="cancelled")
            raise
        except Exception as e:
            if self._state is SessionState.DISCONNECTED:
                return
            self._resources = None
            await self._release(resources)
            self._channel = None
            self._credential = None
            self._set_state(SessionState.IDLE)
            LIVE_SESSIONS.labels(outcome="connect_failed").inc()
            logger.error(f"Failed to connect live session: {e}")
            raise ConnectError(f"Failed to connect live session: {e}") from e

        if opened:
            logger.info("Live session connected")

    async def disconnect(self) -> None:
        """Stop streaming and release everything. Safe to call at any time."""
        if self._state is SessionState.DISCONNECTED:
            return
        logger.info(f"Disconnecting live session (state={self._state.value})")
        await self._teardown(outcome="disconnected")

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        logger.info(f"Live session {self._state.value} -> {state.value}")
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    def _on_opened(self, channel: DuplexChannel) -> None:
        if self._state is not SessionState.CONNECTING:
            return

        self._set_state(SessionState.CONNECTED)
        ACTIVE_LIVE_SESSIONS.inc()

        self._send_task = asyncio.create_task(
            self._send_loop(channel), name="live-session-send"
        )
        self._capture.forwarding = True

        if self._open_waiter is not None and not self._open_waiter.done():
            self._open_waiter.set_result(True)

    def _dispatch(self, message: ChannelMessage) -> None:
        if message.interrupted:
            dropped = self._scheduler.flush()
            LIVE_INTERRUPTIONS.inc()
            logger.info(f"Model interrupted by user speech, dropped {dropped} buffers")

        if message.output_transcript:
            self._add_transcript(Role.MODEL, message.output_transcript)
        if message.input_transcript:
            self._add_transcript(Role.USER, message.input_transcript)

        if message.audio:
            self._scheduler.enqueue(message.audio)

    def _add_transcript(self, role: Role, text: str) -> None:
        self._transcript.add(role, text)
        if self._on_transcript is not None:
            self._on_transcript(self._transcript.messages)

    def _enqueue_audio(self, pcm: bytes) -> None:
        if self._state is SessionState.CONNECTED:
            self._outbound.append(pcm)

    async def _receive_loop(self, channel: DuplexChannel) -> None:
        try:
            async for event in channel.events():
                if isinstance(event, ChannelOpened):
                    self._on_opened(channel)
                elif isinstance(event, ChannelMessage):
                    self._dispatch(event)
                elif isinstance(event, ChannelClosed):
                    await self._on_channel_end(ChannelClosedError(event.reason or "Channel closed"))
                    return
                elif isinstance(event, ChannelFailed):
                    await self._on_channel_end(ChannelError(f"Channel error: {event.error}"))
                    return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Live session receive loop failed: {e}")
            await self._on_channel_end(ChannelError(f"Channel error: {e}"))
            return

        await self._on_channel_end(ChannelClosedError("Event stream ended"))

    async def _on_channel_end(self, error: ChannelError) -> None:
        if self._open_waiter is not None and not self._open_waiter.done():
            # Still inside connect(); it unwinds and raises ConnectError
            self._open_waiter.set_exception(error)
            return

        if self._state is SessionState.DISCONNECTED:
            return

        self._last_error = error
        if isinstance(error, ChannelClosedError):
            logger.info(f"Live channel closed: {error}")
            outcome = "closed"
        else:
            logger.error(f"Live channel failed: {error}")
            outcome = "error"
        await self._teardown(outcome=outcome)

    async def _send_loop(self, channel: DuplexChannel) -> None:
        while True:
            chunk = await self._outbound.get()
            if chunk is None:
                return
            try:
                await channel.send_audio(chunk)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Channel failures surface through the receive loop
                logger.warning(f"Failed to send audio chunk: {e}")

    async def _teardown(self, outcome: str) -> None:
        was_connected = self._state is SessionState.CONNECTED
        self._set_state(SessionState.DISCONNECTED)

        self._capture.forwarding = False
        self._outbound.close()
        self._scheduler.close()
        self._channel = None

        if self._open_waiter is not None and not self._open_waiter.done():
            self._open_waiter.set_result(False)

        resources, self._resources = self._resources, None
        if resources is not None:
            await self._release(resources)

        if was_connected:
            ACTIVE_LIVE_SESSIONS.dec()
        LIVE_SESSIONS.labels(outcome=outcome).inc()

    async def _release(self, resources: AsyncExitStack) -> None:
        try:
            await resources.aclose()
        except Exception as e:
            logger.error(f"Error releasing live session resources: {e}")

    async def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        for task in (self._send_task, self._receive_task):
            if task is None or task is current or task.done():
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._send_task = None
        self._receive_task = None
