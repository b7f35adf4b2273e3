"""One-shot structured generation endpoint."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from labmate.api.dependencies import get_generation_service
from labmate.logging_config import get_logger
from labmate.services.genai.gemini import GeminiService

logger: Any = get_logger(__name__)

router = APIRouter()


class GenerateRequest(BaseModel):
    """Prompt plus optional base64-encoded JPEG images."""

    prompt: str = Field(min_length=1)
    images_b64: list[str] = Field(default_factory=list)
    json_mode: bool = True


class GenerateResponse(BaseModel):
    """Parsed JSON object, or null when every attempt failed."""

    result: dict[str, Any] | None


@router.post("/generate", response_model=GenerateResponse)
async def generate(
    request: GenerateRequest,
    service: GeminiService = Depends(get_generation_service),
) -> GenerateResponse:
    """Run a prompt through the key-rotating generation service.

    A null result is a normal outcome (all keys exhausted or the model
    never returned valid JSON), not an error.
    """
    try:
        images = [base64.b64decode(image, validate=True) for image in request.images_b64]
    except (binascii.Error, ValueError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid base64 image: {e}") from e

    result = await service.generate_json(
        request.prompt,
        images=images,
        json_mode=request.json_mode,
    )
    if result is None:
        logger.warning("Generation returned no result")
    return GenerateResponse(result=result)
