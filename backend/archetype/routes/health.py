"""
Archetype Backend - Health Check Routes
=========================================

What:  Liveness (/health) and readiness (/ready) checks.
Why:   Load balancers and orchestrators route traffic away from instances
       that cannot serve it.
How:   /health reports uptime, version, environment and database status;
       /ready answers as soon as the app is accepting requests.

Status levels:
    healthy:   database disabled or reachable
    degraded:  database enabled but unreachable (still HTTP 200, flagged)
"""

import logging
import time

from fastapi import APIRouter, Request

from archetype import __version__
from archetype.error_handlers import utc_timestamp
from archetype.schemas.user import HealthResponse, ReadyResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Module-level: set once when the module loads
_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(request: Request) -> HealthResponse:
    settings = request.app.state.settings
    database = getattr(request.app.state, "database", None)

    db_status = "disabled"
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    if database is not None:
        try:
            await database.ping()
            db_status = "connected"
        except Exception as e:
            db_status = "disconnected"
            overall = "degraded"
            logger.warning("Health check: database unreachable: %s", str(e))

    return HealthResponse(
        status=overall,
        timestamp=utc_timestamp(),
        uptime=round(time.time() - _start_time, 2),
        version=__version__,
        environment=settings.environment,
        database=db_status,
    )


@router.get("/ready", response_model=ReadyResponse, summary="Readiness check")
async def readiness() -> ReadyResponse:
    return ReadyResponse()
