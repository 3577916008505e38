"""
User API Backend — Health Check Schemas
========================================

What:  Response shape of GET /health.
Who:   Built by HealthService; read by load balancers and monitoring.

Status levels:
    healthy:   every check is up (HTTP 200)
    degraded:  at least one check is degraded, none down (HTTP 200)
    unhealthy: at least one check is down (HTTP 503)
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, field_serializer


class HealthQuery(BaseModel):
    detailed: bool = Field(default=False, description="Also probe the database and email relay")


class DependencyCheck(BaseModel):
    status: Literal["up", "down", "degraded"]
    latency_ms: Optional[float] = None
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class HealthMetadata(BaseModel):
    timestamp: str
    uptime_seconds: float = Field(description="Seconds since the process started")
    version: str
    environment: str
    service: str


class HealthReport(BaseModel):
    status: Literal["healthy", "degraded", "unhealthy"]
    checks: Dict[str, DependencyCheck]
    metadata: HealthMetadata

    @field_serializer("checks")
    def _drop_unset(self, checks: Dict[str, DependencyCheck]) -> Dict[str, Dict[str, Any]]:
        return {name: check.model_dump(exclude_none=True) for name, check in checks.items()}
