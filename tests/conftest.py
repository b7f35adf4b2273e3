"""Shared pytest fixtures for Labmate tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Generator
from typing import Any

import numpy as np
import pytest

from labmate.config import MAX_TOKEN_SLOTS, Settings
from labmate.services.genai.credential_pool import Credential, CredentialPool
from labmate.services.live.exceptions import ConnectError
from labmate.services.live.protocol import (
    ChannelClosed,
    ChannelEvent,
    ChannelFailed,
    LiveSessionConfig,
)

TEST_KEYS = ["test-key-alpha-0001", "test-key-bravo-0002", "test-key-charlie-0003"]


def build_settings(**overrides) -> Settings:
    """Create a Settings object with safe test defaults.

    Every credential slot is set explicitly so keys from the developer's
    environment never leak into tests.
    """
    base: dict[str, Any] = {f"genai_token_{i}": None for i in range(1, MAX_TOKEN_SLOTS + 1)}
    base.update(
        {
            "genai_api_key": TEST_KEYS[0],
            "genai_token_1": TEST_KEYS[1],
            "genai_token_2": TEST_KEYS[2],
            "environment": "development",
            "log_level": "DEBUG",
        }
    )
    base.update(overrides)
    return Settings(_env_file=None, **base)


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    """Return a factory to build Settings with overrides."""
    return build_settings


@pytest.fixture
def settings(settings_factory: Callable[..., Settings]) -> Settings:
    """Default Settings fixture."""
    return settings_factory()


# =============================================================================
# Clock / Pool Fixtures
# =============================================================================


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def pool(clock: FakeClock) -> CredentialPool:
    """Three-key pool on a fake clock."""
    return CredentialPool(TEST_KEYS, suspension_seconds=60.0, clock=clock)


# =============================================================================
# Audio Fakes
# =============================================================================


class FakeCaptureSource:
    """Capture source whose frames are pushed by the test."""

    def __init__(self, sample_rate: int = 16000, fail: Exception | None = None) -> None:
        self.sample_rate = sample_rate
        self.fail = fail
        self.on_frame: Callable[[np.ndarray], None] | None = None
        self.start_count = 0
        self.stop_count = 0

    @property
    def running(self) -> bool:
        return self.on_frame is not None

    def start(self, on_frame: Callable[[np.ndarray], None]) -> None:
        self.start_count += 1
        if self.fail is not None:
            raise self.fail
        self.on_frame = on_frame

    def stop(self) -> None:
        self.stop_count += 1
        self.on_frame = None

    def emit(self, samples: np.ndarray) -> None:
        if self.on_frame is not None:
            self.on_frame(samples)


class FakeHandle:
    def __init__(self, samples: np.ndarray, start_time: float, on_ended: Callable[[], None]) -> None:
        self.samples = samples
        self.start_time = start_time
        self.on_ended = on_ended
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class FakePlaybackSink:
    """Playback sink with a manually advanced clock."""

    def __init__(self, clock: FakeClock | None = None, sample_rate: int = 24000) -> None:
        self.sample_rate = sample_rate
        self.clock = clock or FakeClock(start=0.0)
        self.handles: list[FakeHandle] = []
        self.open_count = 0
        self.close_count = 0

    @property
    def current_time(self) -> float:
        return self.clock()

    @property
    def is_open(self) -> bool:
        return self.open_count > self.close_count

    def open(self) -> None:
        self.open_count += 1

    def schedule(
        self,
        samples: np.ndarray,
        start_time: float,
        on_ended: Callable[[], None],
    ) -> FakeHandle:
        handle = FakeHandle(samples, start_time, on_ended)
        self.handles.append(handle)
        return handle

    def finish(self, handle: FakeHandle) -> None:
        """Simulate natural end of playback."""
        handle.on_ended()

    def close(self) -> None:
        self.close_count += 1


@pytest.fixture
def capture_source() -> FakeCaptureSource:
    return FakeCaptureSource()


@pytest.fixture
def playback_sink() -> FakePlaybackSink:
    return FakePlaybackSink()


# =============================================================================
# Live Channel Fakes
# =============================================================================


class FakeChannel:
    """Queue-backed duplex channel. Tests push events, the session consumes them."""

    def __init__(self) -> None:
        self._events: asyncio.Queue[ChannelEvent] = asyncio.Queue()
        self.sent: list[bytes] = []
        self.close_count = 0

    @property
    def closed(self) -> bool:
        return self.close_count > 0

    def push(self, event: ChannelEvent) -> None:
        self._events.put_nowait(event)

    async def events(self) -> AsyncIterator[ChannelEvent]:
        while True:
            event = await self._events.get()
            yield event
            if isinstance(event, (ChannelClosed, ChannelFailed)):
                return

    async def send_audio(self, pcm: bytes) -> None:
        self.sent.append(pcm)

    async def close(self) -> None:
        self.close_count += 1


class FakeConnector:
    """Connector returning a FakeChannel, optionally failing or held open."""

    def __init__(self, channel: FakeChannel, fail: Exception | None = None) -> None:
        self.channel = channel
        self.fail = fail
        self.gate: asyncio.Event | None = None
        self.calls: list[tuple[Credential, LiveSessionConfig]] = []

    async def open(self, credential: Credential, config: LiveSessionConfig) -> FakeChannel:
        self.calls.append((credential, config))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail is not None:
            raise ConnectError(str(self.fail)) from self.fail
        return self.channel


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def connector(channel: FakeChannel) -> FakeConnector:
    return FakeConnector(channel)


async def settle(rounds: int = 10) -> None:
    """Let background tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def run_pending() -> Callable[..., Any]:
    return settle


# =============================================================================
# API Fixtures
# =============================================================================


@pytest.fixture
def test_client(settings_factory, monkeypatch) -> Generator:
    """FastAPI TestClient with patched settings."""
    from fastapi.testclient import TestClient

    test_settings = settings_factory()
    monkeypatch.setattr("labmate.main.get_settings", lambda: test_settings)
    monkeypatch.setattr("labmate.services.genai.gemini.get_settings", lambda: test_settings)

    from labmate.main import create_app

    app = create_app()

    with TestClient(app) as client:
        yield client
