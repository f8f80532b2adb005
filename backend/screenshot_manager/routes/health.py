"""
Screenshot Manager API - Health Check Route
===========================================

What:  GET /health for load balancer and container probes.
How:   Probes the object store (HEAD bucket, or the local directories).
       200 when reachable, 503 when not.
"""

import logging
import time

from fastapi import APIRouter, Request, Response

from screenshot_manager import __version__
from screenshot_manager.schemas.screenshot import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Object store unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check(request: Request, response: Response) -> HealthResponse:
    store = request.app.state.object_store

    available = await store.check_health()
    if not available:
        logger.warning("Health check: %s storage unavailable", store.backend_name)
        response.status_code = 503

    return HealthResponse(
        status="healthy" if available else "unhealthy",
        version=__version__,
        storage=f"{store.backend_name}:{'available' if available else 'unavailable'}",
        uptime_seconds=round(time.time() - _start_time, 2),
    )
