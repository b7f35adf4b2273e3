"""Health check endpoint."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from labmate.api.dependencies import get_generation_service
from labmate.services.genai.gemini import GeminiService

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    available_credentials: int


@router.get("/health", response_model=HealthResponse)
async def health_check(
    service: GeminiService = Depends(get_generation_service),
) -> HealthResponse:
    """Report how many API keys are currently usable.

    Status is "degraded" when every key is suspended or none are configured.
    Does not call the API.
    """
    available = service.pool.available_count()
    return HealthResponse(
        status="healthy" if available > 0 else "degraded",
        available_credentials=available,
    )
