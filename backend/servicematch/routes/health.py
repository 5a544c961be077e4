"""
ServiceMatch Backend - Health Check Route
==========================================

What:  Liveness/readiness probe for load balancers and monitoring.
How:   Checks the database (SELECT 1), the embedding provider (circuit
       breaker state, then a cheap probe) and the notification queue (PING).

Status levels:
    healthy:   everything reachable                        (HTTP 200)
    degraded:  embeddings or notifications impaired; search
               may fail but stored data is served          (HTTP 200)
    unhealthy: database unreachable                        (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text

from servicematch import __version__
from servicematch.container import ServiceContainer
from servicematch.routes.dependencies import get_container
from servicematch.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


def _degrade(overall: str) -> str:
    return overall if overall == "unhealthy" else "degraded"


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(
    response: Response,
    container: ServiceContainer = Depends(get_container),
) -> HealthResponse:
    db_status = "connected"
    embeddings_status = "available"
    overall = "healthy"

    # ── Database ──────────────────────────────────────────────────────────
    try:
        async with container.session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", e)

    # ── Embedding provider ────────────────────────────────────────────────
    provider = container.provider
    quota_remaining = None
    breaker = getattr(provider, "circuit_breaker", None)
    if breaker is not None and breaker.state == breaker.OPEN:
        embeddings_status = "circuit_open"
        overall = _degrade(overall)
    elif not await provider.health_check():
        embeddings_status = "unavailable"
        overall = _degrade(overall)
    limiter = getattr(provider, "rate_limiter", None)
    if limiter is not None:
        quota_remaining = limiter.remaining_today

    # ── Notification queue ────────────────────────────────────────────────
    notifications_status = await container.publisher.health_check()
    if notifications_status == "disconnected":
        overall = _degrade(overall)

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        embeddings=embeddings_status,
        embedding_provider=provider.name,
        notifications=notifications_status,
        embedding_quota_remaining=quota_remaining,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
