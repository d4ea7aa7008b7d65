"""
CRUD App: Health Check Schemas
==============================

Status levels:
    healthy / ready     All checks pass (HTTP 200)
    degraded            Memory elevated, database fine (HTTP 200)
    unhealthy / not_ready
                        Database unreachable (HTTP 503)
"""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field


class CheckResult(BaseModel):
    """Outcome of a single dependency check."""
    status: str = Field(description="healthy, degraded or unhealthy")
    message: str = Field(default="")
    latency_ms: Optional[float] = Field(default=None, description="Check duration in milliseconds")


class LivenessResponse(BaseModel):
    status: str = "alive"
    timestamp: datetime


class HealthStatus(BaseModel):
    """
    What:  Aggregate response of /health/ready and /health/.
    Who:   Load balancers, container orchestrators, monitoring.
    """
    status: str = Field(description="Overall status")
    timestamp: datetime
    version: str = Field(description="Application version")
    checks: Dict[str, CheckResult] = Field(default_factory=dict)
