"""
WhisperLog Backend — Health Check Route
=========================================

What:  Health check endpoint for monitoring and load balancer probes.
Why:   A service is only useful if it can store results and reach at least
       one AI provider for each content type.
How:   SELECT 1 against the database, then the registry's provider status,
       which is refreshed at most once per HEALTH_STATUS_TTL seconds.

Status levels:
    - healthy:   database connected, every configured provider available
    - degraded:  database connected, some provider unavailable or unconfigured
    - unhealthy: database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from whisperlog import __version__
from whisperlog.dependencies import AppServices, DbSession
from whisperlog.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
)
async def health_check(response: Response, db: DbSession, services: AppServices) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    providers = await services.providers.availability()

    if overall == "healthy" and any(state != "available" for state in providers.values()):
        overall = "degraded"
    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        providers=providers,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
