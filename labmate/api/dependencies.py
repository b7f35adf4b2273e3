"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import HTTPException, Request

from labmate.services.genai.gemini import GeminiService


def get_generation_service(request: Request) -> GeminiService:
    """Generation service built once by the application lifespan."""
    service = getattr(request.app.state, "generation_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Generation service not initialized")
    return service
