"""
User API Backend — Health Service
==================================

What:  Aggregates dependency checks into one health report.
How:   The API check is always present; detailed mode adds the database
       (SELECT 1 with latency) and the email relay (configuration and
       circuit breaker state, without sending anything).
Who:   Called by the GET /health handler.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from app.config import Settings, settings as app_settings
from app.database import get_engine
from app.schemas.health import DependencyCheck, HealthMetadata, HealthReport
from app.services.email_service import EmailService, email_service as default_email_service

logger = logging.getLogger(__name__)


def overall_status(checks: Dict[str, DependencyCheck]) -> str:
    """Any `down` → unhealthy; otherwise any `degraded` → degraded; else healthy."""
    statuses = {check.status for check in checks.values()}
    if "down" in statuses:
        return "unhealthy"
    if "degraded" in statuses:
        return "degraded"
    return "healthy"


class HealthService:
    def __init__(
        self,
        config: Optional[Settings] = None,
        email: Optional[EmailService] = None,
        engine: Optional[AsyncEngine] = None,
    ):
        self.config = config or app_settings
        self.email = email or default_email_service
        self._engine = engine
        self._started = time.monotonic()

    async def check_database(self) -> DependencyCheck:
        start_time = time.perf_counter()
        try:
            engine = self._engine or get_engine()
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as exc:
            logger.error("Database health check failed: %s", exc)
            return DependencyCheck(
                status="down",
                latency_ms=round((time.perf_counter() - start_time) * 1000, 2),
                message=str(exc) or "Database health check failed",
            )
        return DependencyCheck(
            status="up",
            latency_ms=round((time.perf_counter() - start_time) * 1000, 2),
            message="Database is accessible",
        )

    def check_email(self) -> DependencyCheck:
        return DependencyCheck(**self.email.health_check())

    async def check_health(self, detailed: bool = False) -> HealthReport:
        checks: Dict[str, DependencyCheck] = {
            "api": DependencyCheck(status="up", message="API is running"),
        }
        if detailed:
            checks["database"] = await self.check_database()
            checks["email"] = self.check_email()

        return HealthReport(
            status=overall_status(checks),
            checks=checks,
            metadata=HealthMetadata(
                timestamp=datetime.now(timezone.utc).isoformat(),
                uptime_seconds=round(time.monotonic() - self._started, 2),
                version=self.config.app_version,
                environment=self.config.app_env,
                service=self.config.app_name,
            ),
        )


# ── Singleton Instance ────────────────────────────────────────────────────
health_service = HealthService()
