"""Health check endpoints for ResolveX API v1.

Liveness and readiness probes.  The readiness check verifies the
complaint store and the notification worker.
"""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Basic health check response."""

    status: str
    version: str
    uptime_seconds: float


class ReadinessResponse(BaseModel):
    """Readiness check response with individual service statuses."""

    status: str
    checks: dict[str, str]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Liveness probe.

    Returns 200 if the application process is running and able to
    handle requests.  Does *not* check downstream dependencies.
    """
    start_time: float = getattr(request.app.state, "start_time", time.time())
    uptime = time.time() - start_time

    return HealthResponse(
        status="healthy",
        version=request.app.version,
        uptime_seconds=round(uptime, 2),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse:
    """Readiness probe.

    Intake is ready when the store answers and the notification worker
    is running.  A missing media store also blocks intake, since no
    complaint can be filed without its proof image.
    """
    checks: dict[str, str] = {}
    all_ok = True

    # -- Complaint store -----------------------------------------------------
    store = getattr(request.app.state, "store", None)
    if store is not None:
        try:
            checks["store"] = "ok" if await store.ping() else "unreachable"
        except Exception as exc:
            checks["store"] = f"error: {exc!s}"
        all_ok = all_ok and checks["store"] == "ok"
    else:
        checks["store"] = "not_configured"
        all_ok = False

    # -- Media store ---------------------------------------------------------
    if getattr(request.app.state, "media", None) is not None:
        checks["media"] = "ok"
    else:
        checks["media"] = "not_configured"
        all_ok = False

    # -- Notification worker ------------------------------------------------
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is not None and dispatcher.is_running:
        dead = len(dispatcher.dead_letters)
        checks["notifications"] = f"ok ({dispatcher.pending} pending, {dead} failed)"
    else:
        checks["notifications"] = "not_running"
        all_ok = False

    status = "ready" if all_ok else "degraded"

    logger.info("health.readiness_check", status=status, checks=checks)

    return ReadinessResponse(status=status, checks=checks)
