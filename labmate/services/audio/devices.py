"""sounddevice-backed capture source and playback sink.

PortAudio exposes no echo cancellation, noise suppression or automatic gain
control; use a headset or an OS-level processing chain for those.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from typing import Any

import numpy as np
import sounddevice as sd

from labmate.logging_config import get_logger
from labmate.services.audio.exceptions import AudioDeviceError
from labmate.services.audio.protocol import FrameCallback

logger: Any = get_logger(__name__)


def _supported_rate(device: int | None, sample_rate: int, kind: str) -> int:
    """Return `sample_rate` if the device accepts it, else its default rate."""
    check = sd.check_input_settings if kind == "input" else sd.check_output_settings
    try:
        check(device=device, samplerate=sample_rate, channels=1, dtype="float32")
        return sample_rate
    except sd.PortAudioError:
        info = sd.query_devices(device, kind=kind)
        fallback = int(info["default_samplerate"])
        logger.info(f"{kind.title()} device does not support {sample_rate}Hz, using {fallback}Hz")
        return fallback


class SoundDeviceCapture:
    """Mono float32 microphone stream.

    PortAudio calls back on its own thread; frames are copied and handed to
    the event loop that called start().
    """

    def __init__(
        self,
        *,
        sample_rate: int = 16000,
        frame_size: int = 4096,
        device: int | None = None,
    ) -> None:
        self._requested_rate = sample_rate
        self.sample_rate = sample_rate
        self._frame_size = frame_size
        self._device = device
        self._stream: sd.InputStream | None = None

    def probe(self) -> int:
        """Resolve the rate the device will actually run at."""
        try:
            self.sample_rate = _supported_rate(self._device, self._requested_rate, "input")
        except sd.PortAudioError as e:
            raise AudioDeviceError(f"No usable input device: {e}") from e
        return self.sample_rate

    def start(self, on_frame: FrameCallback) -> None:
        if self._stream is not None:
            return

        loop = asyncio.get_running_loop()

        def callback(indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
            if status:
                logger.debug(f"Capture status: {status}")
            loop.call_soon_threadsafe(on_frame, indata[:, 0].copy())

        try:
            stream = sd.InputStream(
                device=self._device,
                samplerate=self.sample_rate,
                channels=1,
                dtype="float32",
                blocksize=self._frame_size,
                callback=callback,
            )
            stream.start()
        except sd.PortAudioError as e:
            logger.error(f"Failed to open microphone: {e}")
            raise AudioDeviceError(f"Failed to open microphone: {e}") from e

        self._stream = stream
        logger.info(f"Microphone open at {self.sample_rate}Hz, {self._frame_size} samples/frame")

    def stop(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        stream.stop()
        stream.close()
        logger.info("Microphone closed")


class _Voice:
    """A buffer placed on the output timeline at an absolute frame index."""

    __slots__ = ("samples", "start_frame", "on_ended", "stopped")

    def __init__(self, samples: np.ndarray, start_frame: int, on_ended: Callable[[], None]) -> None:
        self.samples = samples
        self.start_frame = start_frame
        self.on_ended = on_ended
        self.stopped = False

    @property
    def end_frame(self) -> int:
        return self.start_frame + len(self.samples)

    def stop(self) -> None:
        self.stopped = True


class SoundDevicePlayback:
    """Mono output stream that mixes scheduled buffers sample-accurately.

    The device clock is the number of frames rendered so far divided by the
    sample rate, so schedule() times line up with current_time exactly.
    """

    def __init__(
        self,
        *,
        sample_rate: int = 24000,
        device: int | None = None,
        blocksize: int = 1024,
    ) -> None:
        self._requested_rate = sample_rate
        self.sample_rate = sample_rate
        self._device = device
        self._blocksize = blocksize
        self._lock = threading.Lock()
        self._voices: list[_Voice] = []
        self._frames_rendered = 0
        self._stream: sd.OutputStream | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def current_time(self) -> float:
        with self._lock:
            return self._frames_rendered / self.sample_rate

    def probe(self) -> int:
        try:
            self.sample_rate = _supported_rate(self._device, self._requested_rate, "output")
        except sd.PortAudioError as e:
            raise AudioDeviceError(f"No usable output device: {e}") from e
        return self.sample_rate

    def open(self) -> None:
        if self._stream is not None:
            return

        self._loop = asyncio.get_running_loop()
        try:
            stream = sd.OutputStream(
                device=self._device,
                samplerate=self.sample_rate,
                channels=1,
                dtype="float32",
                blocksize=self._blocksize,
                callback=self._render,
            )
            stream.start()
        except sd.PortAudioError as e:
            logger.error(f"Failed to open speaker: {e}")
            raise AudioDeviceError(f"Failed to open speaker: {e}") from e

        self._stream = stream
        logger.info(f"Speaker open at {self.sample_rate}Hz")

    def schedule(
        self,
        samples: np.ndarray,
        start_time: float,
        on_ended: Callable[[], None],
    ) -> _Voice:
        """Place samples at start_time on the device timeline.

        A buffer whose start has already been rendered loses the part that
        is in the past, so it still ends where the caller's timeline says.
        """
        data = np.asarray(samples, dtype=np.float32)

        with self._lock:
            start_frame = round(start_time * self.sample_rate)
            late = self._frames_rendered - start_frame
            if late > 0:
                data = data[late:]
                start_frame = self._frames_rendered
            voice = _Voice(data, start_frame, on_ended)
            self._voices.append(voice)

        if late > 0:
            logger.debug(f"Buffer scheduled {late} frames late, trimmed its head")
        return voice

    def close(self) -> None:
        stream, self._stream = self._stream, None
        with self._lock:
            self._voices.clear()
        if stream is None:
            return
        stream.stop()
        stream.close()
        logger.info("Speaker closed")

    def _render(self, outdata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.debug(f"Playback status: {status}")

        mix = np.zeros(frames, dtype=np.float32)
        ended: list[_Voice] = []

        with self._lock:
            block_start = self._frames_rendered
            block_end = block_start + frames
            remaining: list[_Voice] = []

            for voice in self._voices:
                if voice.stopped:
                    continue

                lo = max(block_start, voice.start_frame)
                hi = min(block_end, voice.end_frame)
                if lo < hi:
                    mix[lo - block_start : hi - block_start] += voice.samples[
                        lo - voice.start_frame : hi - voice.start_frame
                    ]

                if voice.end_frame <= block_end:
                    ended.append(voice)
                else:
                    remaining.append(voice)

            self._voices = remaining
            self._frames_rendered = block_end

        outdata[:, 0] = np.clip(mix, -1.0, 1.0)

        if self._loop is not None:
            for voice in ended:
                self._loop.call_soon_threadsafe(voice.on_ended)
