"""Tests for the sounddevice capture source and playback mixer."""

from __future__ import annotations

import asyncio
from typing import Any

import numpy as np
import pytest

try:
    from labmate.services.audio import devices
except OSError as e:  # PortAudio shared library missing on this host
    pytest.skip(f"sounddevice unavailable: {e}", allow_module_level=True)

from labmate.services.audio.exceptions import AudioDeviceError


class FakeStream:
    """Stand-in for sd.InputStream / sd.OutputStream that never touches hardware."""

    instances: list[FakeStream] = []

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.started = False
        self.closed = False
        FakeStream.instances.append(self)

    @property
    def callback(self) -> Any:
        return self.kwargs["callback"]

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.started = False

    def close(self) -> None:
        self.closed = True


class FailingStream:
    def __init__(self, **kwargs: Any) -> None:
        raise devices.sd.PortAudioError("Device unavailable")


@pytest.fixture(autouse=True)
def fake_streams(monkeypatch) -> list[FakeStream]:
    FakeStream.instances = []
    monkeypatch.setattr(devices.sd, "InputStream", FakeStream)
    monkeypatch.setattr(devices.sd, "OutputStream", FakeStream)
    return FakeStream.instances


def render(sink: devices.SoundDevicePlayback, frames: int) -> np.ndarray:
    """Run one output callback and return the mono block it produced."""
    out = np.full((frames, 1), 9.0, dtype=np.float32)
    sink._render(out, frames, None, None)
    return out[:, 0]


class TestSoundDevicePlayback:
    """Tests for sample-accurate mixing on the output thread."""

    def test_clock_counts_rendered_frames(self) -> None:
        """Test current_time is frames rendered over the sample rate."""
        sink = devices.SoundDevicePlayback(sample_rate=24000)

        render(sink, 1200)

        assert sink.current_time == pytest.approx(0.05)

    def test_silence_without_voices(self) -> None:
        """Test an empty timeline renders zeros."""
        sink = devices.SoundDevicePlayback(sample_rate=24000)

        assert np.all(render(sink, 64) == 0.0)

    def test_voice_starts_on_its_frame(self) -> None:
        """Test a voice lands at the exact frame its start time maps to."""
        sink = devices.SoundDevicePlayback(sample_rate=1000)
        sink.schedule(np.ones(5, dtype=np.float32), 0.010, lambda: None)

        block = render(sink, 32)

        assert block[:10].tolist() == [0.0] * 10
        assert block[10:15].tolist() == [1.0] * 5
        assert block[15:].tolist() == [0.0] * 17

    def test_voice_spans_blocks(self) -> None:
        """Test a voice longer than a block continues where it left off."""
        sink = devices.SoundDevicePlayback(sample_rate=1000)
        samples = np.arange(1, 13, dtype=np.float32) / 100
        sink.schedule(samples, 0.0, lambda: None)

        first = render(sink, 8)
        second = render(sink, 8)

        assert np.allclose(np.concatenate([first, second[:4]]), samples)
        assert second[4:].tolist() == [0.0] * 4

    def test_overlapping_voices_mix_and_clip(self) -> None:
        """Test simultaneous voices are summed and clipped to [-1, 1]."""
        sink = devices.SoundDevicePlayback(sample_rate=1000)
        sink.schedule(np.full(4, 0.25, dtype=np.float32), 0.0, lambda: None)
        sink.schedule(np.full(4, 0.5, dtype=np.float32), 0.002, lambda: None)
        sink.schedule(np.full(2, 0.9, dtype=np.float32), 0.002, lambda: None)

        block = render(sink, 8)

        assert block.tolist() == pytest.approx([0.25, 0.25, 1.0, 1.0, 0.5, 0.5, 0.0, 0.0])

    def test_stopped_voice_dropped(self) -> None:
        """Test a stopped voice is silent, removed, and never reports an end."""
        sink = devices.SoundDevicePlayback(sample_rate=1000)
        ended: list[str] = []
        voice = sink.schedule(np.ones(4, dtype=np.float32), 0.0, lambda: ended.append("x"))

        voice.stop()
        block = render(sink, 8)

        assert np.all(block == 0.0)
        assert sink._voices == []
        assert ended == []

    @pytest.mark.asyncio
    async def test_on_ended_delivered_on_loop(self) -> None:
        """Test natural ends are reported on the event loop once the voice finishes."""
        sink = devices.SoundDevicePlayback(sample_rate=1000, blocksize=8)
        sink.open()
        ended: list[str] = []
        sink.schedule(np.ones(12, dtype=np.float32), 0.0, lambda: ended.append("done"))

        render(sink, 8)
        await asyncio.sleep(0)
        assert ended == []

        render(sink, 8)
        await asyncio.sleep(0)
        assert ended == ["done"]
        assert sink._voices == []

    def test_late_buffer_trimmed_to_timeline(self) -> None:
        """Test a buffer whose start was already rendered keeps its planned end."""
        sink = devices.SoundDevicePlayback(sample_rate=24000)
        samples = np.arange(4800, dtype=np.float32) / 4800

        render(sink, 1024)
        first = sink.schedule(samples, 0.0, lambda: None)
        second = sink.schedule(np.ones(4800, dtype=np.float32), 0.2, lambda: None)

        assert first.start_frame == 1024
        assert first.end_frame == 4800
        assert first.samples[0] == pytest.approx(samples[1024])
        assert second.start_frame >= first.end_frame

    def test_buffer_entirely_in_the_past_ends(self) -> None:
        """Test a buffer already fully behind the clock plays nothing and ends."""
        sink = devices.SoundDevicePlayback(sample_rate=1000)
        render(sink, 16)
        voice = sink.schedule(np.ones(4, dtype=np.float32), 0.0, lambda: None)

        block = render(sink, 8)

        assert len(voice.samples) == 0
        assert np.all(block == 0.0)
        assert sink._voices == []

    @pytest.mark.asyncio
    async def test_open_and_close(self, fake_streams: list[FakeStream]) -> None:
        """Test the output stream is opened once and close drops pending voices."""
        sink = devices.SoundDevicePlayback(sample_rate=24000, blocksize=512)

        sink.open()
        sink.open()
        sink.schedule(np.ones(4, dtype=np.float32), 0.0, lambda: None)
        sink.close()

        assert len(fake_streams) == 1
        assert fake_streams[0].kwargs["blocksize"] == 512
        assert fake_streams[0].closed is True
        assert sink._voices == []

    @pytest.mark.asyncio
    async def test_open_failure(self, monkeypatch) -> None:
        """Test PortAudio errors surface as AudioDeviceError."""
        monkeypatch.setattr(devices.sd, "OutputStream", FailingStream)
        sink = devices.SoundDevicePlayback()

        with pytest.raises(AudioDeviceError, match="speaker"):
            sink.open()


class TestSoundDeviceCapture:
    """Tests for the microphone stream wrapper."""

    @pytest.mark.asyncio
    async def test_frames_marshalled_to_loop(self, fake_streams: list[FakeStream]) -> None:
        """Test callback frames are copied and delivered on the event loop."""
        capture = devices.SoundDeviceCapture(sample_rate=16000, frame_size=4)
        frames: list[np.ndarray] = []
        capture.start(frames.append)

        indata = np.array([[0.1], [0.2], [0.3], [0.4]], dtype=np.float32)
        fake_streams[0].callback(indata, 4, None, None)
        indata[:] = 0.0
        await asyncio.sleep(0)

        assert len(frames) == 1
        assert frames[0].tolist() == pytest.approx([0.1, 0.2, 0.3, 0.4])
        assert fake_streams[0].kwargs["blocksize"] == 4

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, fake_streams: list[FakeStream]) -> None:
        """Test stop closes the stream once."""
        capture = devices.SoundDeviceCapture()
        capture.start(lambda frame: None)

        capture.stop()
        capture.stop()

        assert fake_streams[0].closed is True

    @pytest.mark.asyncio
    async def test_start_failure(self, monkeypatch) -> None:
        """Test PortAudio errors surface as AudioDeviceError."""
        monkeypatch.setattr(devices.sd, "InputStream", FailingStream)
        capture = devices.SoundDeviceCapture()

        with pytest.raises(AudioDeviceError, match="microphone"):
            capture.start(lambda frame: None)
