"""One-shot generation protocol and data types."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

JPEG_MIME_TYPE = "image/jpeg"


@dataclass(frozen=True, slots=True)
class ContentPart:
    """A single part of a generation request: text or inline bytes."""

    text: str | None = None
    data: bytes | None = None
    mime_type: str = "text/plain"

    @classmethod
    def from_text(cls, text: str) -> ContentPart:
        return cls(text=text)

    @classmethod
    def from_image(cls, data: bytes, mime_type: str = JPEG_MIME_TYPE) -> ContentPart:
        return cls(data=data, mime_type=mime_type)

    @property
    def is_inline(self) -> bool:
        """True for inline binary data (images)."""
        return self.data is not None


class GenerationService(Protocol):
    """Protocol for one-shot structured generation."""

    async def generate_json(
        self,
        prompt: str,
        *,
        images: Sequence[bytes] = (),
        json_mode: bool = True,
    ) -> dict[str, Any] | None:
        """Generate a JSON object from a prompt and optional images.

        Returns:
            Parsed JSON object, or None when every attempt failed.
            Callers must treat None as a normal outcome.
        """
        ...

    async def health_check(self) -> bool:
        """Check if the service is operational."""
        ...
