"""FastAPI application entry point.

Labmate - resilient realtime voice client for Gemini.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from labmate.api.routes import generate, health, metrics
from labmate.config import get_settings
from labmate.logging_config import get_logger, setup_logging
from labmate.services.genai.credential_pool import CredentialPool
from labmate.services.genai.gemini import GeminiService

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    Startup:
    - Initialize logging
    - Build the shared credential pool and generation service
    """
    settings = get_settings()

    setup_logging(
        level=settings.log_level,
        enable_file=settings.is_production,
    )

    pool = CredentialPool.from_settings(settings)
    app.state.credential_pool = pool
    app.state.generation_service = GeminiService(settings, pool=pool)
    logger.info(f"Labmate API started with {len(pool)} API keys")

    yield

    app.state.generation_service = None


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Labmate API",
        description="Resilient Gemini client with API key rotation",
        version="0.1.0",
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check routes
    app.include_router(health.router, tags=["Health"])

    # Metrics endpoint for Prometheus scraping
    app.include_router(metrics.router, tags=["Observability"])

    # One-shot generation
    app.include_router(generate.router, prefix="/api", tags=["Generation"])

    return app


# Application instance
app = create_app()
