"""Gemini one-shot generation service with key rotation."""

from __future__ import annotations

import json
import time
import uuid
from collections.abc import Callable, Sequence
from typing import Any

from google import genai
from google.genai import types

from labmate.config import Settings, get_settings
from labmate.logging_config import get_logger
from labmate.services.genai.credential_pool import Credential, CredentialPool
from labmate.services.genai.exceptions import TransientError
from labmate.services.genai.executor import ResilientExecutor
from labmate.services.genai.protocol import ContentPart

logger: Any = get_logger(__name__)

JSON_MIME_TYPE = "application/json"


def build_client(credential: Credential) -> genai.Client:
    """Create a GenAI client bound to one credential."""
    return genai.Client(api_key=credential.secret)


def strip_markdown_fences(text: str) -> str:
    """Remove ```json / ``` fences the model sometimes wraps JSON in."""
    return text.replace("```json", "").replace("```", "").strip()


def parse_json_response(text: str) -> dict[str, Any]:
    """Parse a model response as a JSON object.

    Raises:
        TransientError: If the response is empty or not a JSON object
    """
    cleaned = strip_markdown_fences(text)
    if not cleaned:
        raise TransientError("Empty response from model")

    try:
        result = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse JSON from model response: {e}")
        raise TransientError(f"Invalid JSON in response: {e}") from e

    if not isinstance(result, dict):
        raise TransientError(f"Expected JSON object, got {type(result).__name__}")
    return result


class GeminiService:
    """Gemini one-shot generation backed by the resilient executor.

    Every request runs through ResilientExecutor, so quota errors suspend
    the offending key and the request moves on to the next one. When the
    retry budget is spent the result is None rather than an exception.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        pool: CredentialPool | None = None,
        model: str | None = None,
        client_factory: Callable[[Credential], Any] = build_client,
    ) -> None:
        self._settings = settings or get_settings()
        self._pool = pool or CredentialPool.from_settings(self._settings)
        self._model = model or self._settings.genai_model
        self._executor: ResilientExecutor[Any] = ResilientExecutor(
            self._pool,
            client_factory,
            min_attempts=self._settings.min_request_attempts,
        )

    @property
    def pool(self) -> CredentialPool:
        """Credential pool shared with live sessions."""
        return self._pool

    @property
    def executor(self) -> ResilientExecutor[Any]:
        return self._executor

    async def generate_json(
        self,
        prompt: str,
        *,
        images: Sequence[bytes] = (),
        json_mode: bool = True,
    ) -> dict[str, Any] | None:
        """Generate a JSON object from a prompt and optional JPEG images.

        Args:
            prompt: Instruction text (caller-supplied)
            images: Raw JPEG bytes appended after the prompt
            json_mode: Ask the model for an application/json response

        Returns:
            Parsed JSON object, or None when every attempt failed
        """
        parts = [ContentPart.from_text(prompt)]
        parts.extend(ContentPart.from_image(image) for image in images)

        return await self._executor.execute_or_none(
            lambda client: self._generate(client, parts, json_mode=json_mode)
        )

    async def analyze_image(self, image: bytes, prompt: str) -> dict[str, Any] | None:
        """Analyze a single image and tag the result with an id and timestamp.

        The image goes first, then the prompt. No response-format hint is
        sent; fenced JSON in the reply is tolerated.
        """
        parts = [ContentPart.from_image(image), ContentPart.from_text(prompt)]

        result = await self._executor.execute_or_none(
            lambda client: self._generate(client, parts, json_mode=False)
        )
        if result is None:
            return None

        return {
            **result,
            "id": uuid.uuid4().hex,
            "timestamp": int(time.time() * 1000),
        }

    async def _generate(
        self,
        client: Any,
        parts: list[ContentPart],
        *,
        json_mode: bool,
    ) -> dict[str, Any]:
        """Single attempt: one generate_content call plus JSON parsing."""
        config = types.GenerateContentConfig(response_mime_type=JSON_MIME_TYPE) if json_mode else None

        response = await client.aio.models.generate_content(
            model=self._model,
            contents=[self._to_genai_part(part) for part in parts],
            config=config,
        )
        return parse_json_response(response.text or "")

    def _to_genai_part(self, part: ContentPart) -> types.Part:
        if part.is_inline:
            return types.Part.from_bytes(data=part.data, mime_type=part.mime_type)
        return types.Part.from_text(text=part.text or "")

    async def health_check(self) -> bool:
        """Check that at least one key is usable and the API answers."""
        if self._pool.available_count() == 0:
            return False

        async def ping(client: Any) -> bool:
            response = await client.aio.models.generate_content(
                model=self._model,
                contents="hi",
                config=types.GenerateContentConfig(max_output_tokens=1),
            )
            return bool(response.candidates)

        try:
            return await self._executor.execute(ping)
        except Exception as e:
            logger.warning(f"Gemini health check failed: {e}")
            return False
