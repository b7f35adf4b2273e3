"""Core realtime session components.

- RealtimeSession: live voice session lifecycle and event dispatch
- TranscriptAggregator: merges transcription fragments into utterances
- Persona / build_system_instruction: session system instruction
"""

from labmate.core.context import PERSONAS, Persona, build_system_instruction, get_persona
from labmate.core.session import OutboundAudioQueue, RealtimeSession, SessionState
from labmate.core.transcript import Message, Role, TranscriptAggregator

__all__ = [
    # Session management
    "RealtimeSession",
    "SessionState",
    "OutboundAudioQueue",
    # Transcript
    "TranscriptAggregator",
    "Message",
    "Role",
    # Context
    "Persona",
    "PERSONAS",
    "get_persona",
    "build_system_instruction",
]
