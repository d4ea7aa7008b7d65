"""
CRUD App: Health Check Routes
=============================

What:  Probes for container orchestrators, load balancers and monitoring.
Who:   Kubernetes liveness/readiness probes, Docker HEALTHCHECK, dashboards.

Endpoints:
    GET /health/live     process is up                         always 200
    GET /health/ready    database reachable                    200 / 503
    GET /health/         database + memory pressure            200 / 503
    GET /health/metrics  memory, GC, threads, tasks, DB pool   always 200

None of them require a session. They are still rate limited.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from crud.schemas.health import HealthStatus, LivenessResponse
from crud.services.health_service import HealthChecker, UNHEALTHY

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


def _checker(request: Request) -> HealthChecker:
    return request.app.state.health_checker


@router.get("/live", response_model=LivenessResponse, summary="Liveness probe")
async def liveness() -> LivenessResponse:
    return LivenessResponse(status="alive", timestamp=datetime.now(timezone.utc))


@router.get(
    "/ready",
    response_model=HealthStatus,
    responses={503: {"model": HealthStatus, "description": "Database unreachable"}},
    summary="Readiness probe",
)
async def readiness(request: Request) -> JSONResponse:
    result = await _checker(request).readiness()
    status_code = 200 if result.status == "ready" else 503
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.get(
    "/",
    response_model=HealthStatus,
    responses={503: {"model": HealthStatus, "description": "Service unhealthy"}},
    summary="Full health check",
    description="Database connectivity and memory pressure. Degraded memory still returns 200.",
)
async def health(request: Request) -> JSONResponse:
    result = await _checker(request).health()
    status_code = 503 if result.status == UNHEALTHY else 200
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.get("/metrics", summary="Process metrics")
async def metrics(request: Request) -> Dict[str, Any]:
    return _checker(request).metrics()
