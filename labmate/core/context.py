"""Personas and system instruction composition for live sessions."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from labmate.core.transcript import Message, Role


@dataclass(frozen=True, slots=True)
class Persona:
    """Assistant character for a live session."""

    key: str
    display_name: str
    instruction: str
    voice: str


CLINICAL_PERSONA = Persona(
    key="clinical",
    display_name="Clinical colleague",
    instruction=(
        'You are "Dr. Azam", an expert and good-humoured lab colleague.\n'
        "1. Colleague: talk like a friendly peer, not an assistant.\n"
        "2. Light: keep it warm, never dry.\n"
        "3. Fast: if the user is in a hurry, answer briefly.\n"
        "4. Attentive: if the user talks over you, stop and listen."
    ),
    voice="Kore",
)

QC_PERSONA = Persona(
    key="qc",
    display_name="QC specialist",
    instruction=(
        'You are the "QC specialist". Focus on disk preparation and '
        "sterilization standards. Be precise and technical."
    ),
    voice="Fenrir",
)

PERSONAS: dict[str, Persona] = {
    CLINICAL_PERSONA.key: CLINICAL_PERSONA,
    QC_PERSONA.key: QC_PERSONA,
}

ROLE_LABELS = {
    Role.USER: "User",
    Role.MODEL: "Model",
}


def get_persona(key: str) -> Persona:
    """Look up a built-in persona.

    Raises:
        ValueError: If no persona has that key
    """
    try:
        return PERSONAS[key]
    except KeyError:
        known = ", ".join(sorted(PERSONAS))
        raise ValueError(f"Unknown persona '{key}' (expected one of: {known})") from None


def format_history(history: Iterable[Message]) -> str:
    return "\n".join(f"{ROLE_LABELS[m.role]}: {m.text}" for m in history)


def build_system_instruction(
    persona: Persona,
    context: str = "",
    history: Iterable[Message] = (),
) -> str:
    """Compose the live session system instruction.

    Carrying `history` lets a new session pick up where a dropped one
    left off.
    """
    return (
        f"{persona.instruction}\n"
        f"[CURRENT CONTEXT]\n{context.strip()}\n\n"
        f"[CONVERSATION HISTORY]\n{format_history(history)}"
    )
