"""Prometheus scrape endpoint.

Credential suspensions expire lazily, so the availability gauge is
recomputed from the shared pool on every scrape rather than only when a
request happens to touch the pool.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

from labmate.observability.metrics import get_content_type, get_metrics

router = APIRouter()


@router.get("/metrics")
async def metrics(request: Request) -> Response:
    """Current metrics in Prometheus exposition format."""
    pool = getattr(request.app.state, "credential_pool", None)
    if pool is not None:
        pool.available_count()

    return Response(
        content=get_metrics(),
        media_type=get_content_type(),
    )
