#!/usr/bin/env python3
"""Live voice session on the local microphone and speaker.

Uses:
- sounddevice for capture (16kHz) and playback (24kHz)
- Gemini Live native audio with key rotation from .env

Press Ctrl+C to end the session.
"""

import argparse
import asyncio
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from labmate.config import get_settings
from labmate.core.context import PERSONAS, get_persona
from labmate.core.session import RealtimeSession, SessionState
from labmate.core.transcript import Message
from labmate.logging_config import setup_logging
from labmate.services.audio.devices import SoundDeviceCapture, SoundDevicePlayback
from labmate.services.genai.credential_pool import CredentialPool
from labmate.services.live.exceptions import ConnectError
from labmate.services.live.gemini_live import GeminiLiveConnector

LEVEL_BAR_WIDTH = 20


def print_transcript(messages: tuple[Message, ...]) -> None:
    """Print the latest (possibly still growing) utterance on one line."""
    last = messages[-1]
    speaker = "You" if last.role.value == "user" else "Model"
    print(f"\r\033[K{speaker}: {last.text}", end="", flush=True)


def print_level(level: float) -> None:
    filled = int(level / 100 * LEVEL_BAR_WIDTH)
    sys.stderr.write(f"\r[{'#' * filled}{' ' * (LEVEL_BAR_WIDTH - filled)}]")
    sys.stderr.flush()


async def main(persona_key: str, context: str, show_level: bool) -> int:
    settings = get_settings()
    setup_logging(level=settings.log_level, enable_file=settings.is_production)

    print("=" * 60)
    print("  Labmate - Live Voice Session")
    print("=" * 60)

    persona = get_persona(persona_key)
    pool = CredentialPool.from_settings(settings)
    if len(pool) == 0:
        print("ERROR: No API keys configured. Set GENAI_API_KEY or GENAI_TOKEN_1..20.")
        return 1

    capture = SoundDeviceCapture(
        sample_rate=settings.audio_input_sample_rate,
        frame_size=settings.capture_frame_size,
        device=settings.capture_device,
    )
    playback = SoundDevicePlayback(
        sample_rate=settings.audio_output_sample_rate,
        device=settings.playback_device,
    )
    capture.probe()
    playback.probe()

    print(f"  Persona: {persona.display_name} (voice {persona.voice})")
    print(f"  Keys:    {len(pool)}")
    print(f"  Mic:     {capture.sample_rate}Hz  Speaker: {playback.sample_rate}Hz")
    print("\n  Speak now. Press Ctrl+C to exit.\n")

    ended = asyncio.Event()

    def on_state_change(state: SessionState) -> None:
        if state is SessionState.DISCONNECTED:
            ended.set()

    session = RealtimeSession(
        pool,
        GeminiLiveConnector(),
        capture,
        playback,
        persona=persona,
        context=context,
        settings=settings,
        on_transcript=print_transcript,
        on_level=print_level if show_level else None,
        on_state_change=on_state_change,
    )

    try:
        await session.connect()
        await ended.wait()
    except ConnectError as e:
        print(f"ERROR: {e}")
        return 1
    finally:
        await session.disconnect()

    if session.last_error is not None:
        print(f"\nSession ended: {session.last_error}")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Talk to Gemini Live from the terminal")
    parser.add_argument(
        "--persona",
        choices=sorted(PERSONAS),
        default="clinical",
        help="Assistant persona",
    )
    parser.add_argument(
        "--context",
        default="",
        help="Text placed in the [CURRENT CONTEXT] section of the system instruction",
    )
    parser.add_argument(
        "--level",
        action="store_true",
        help="Show the microphone level meter",
    )
    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(main(args.persona, args.context, args.level)))
    except KeyboardInterrupt:
        print("\n\nGoodbye!")
