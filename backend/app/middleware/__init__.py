"""
User API Backend — Request Pipeline
====================================

What:  Cross-cutting concerns applied to every business handler.
How:   An explicit list of Stage objects folded around the handler by Pipeline.

Pipeline (order matters!):
    Request → [Errors] → [Correlation ID] → [Logging] → [Performance] → [CORS]
            → [Rate Limit (optional)] → Handler

    The response flows back out in reverse; each stage may add headers or
    log, only [Errors] may change the status code.
"""

from typing import List, Optional

from app.config import settings as app_settings
from app.middleware.cors import CorsStage
from app.middleware.error_handler import ErrorHandlingStage
from app.middleware.logging import RequestLoggingStage
from app.middleware.performance import PerformanceStage
from app.middleware.pipeline import (
    InvocationMetadata,
    Pipeline,
    Request,
    RequestContext,
    Response,
    Stage,
)
from app.middleware.rate_limit import RateLimiter, RateLimitStage
from app.middleware.request_id import CorrelationIdStage


def default_pipeline(settings=None, limiter: Optional[RateLimiter] = None) -> Pipeline:
    """Build the standard stage list from settings, with an optional rate limiter."""
    settings = settings or app_settings
    stages: List[Stage] = [
        ErrorHandlingStage(
            allowed_origin=settings.cors_origin,
            expose_internals=not settings.is_production,
        ),
        CorrelationIdStage(),
        RequestLoggingStage(slow_threshold_ms=settings.slow_request_threshold_ms),
        PerformanceStage(),
        CorsStage(allowed_origin=settings.cors_origin),
    ]
    if limiter is not None:
        stages.append(RateLimitStage(limiter))
    return Pipeline(stages)


__all__ = [
    "InvocationMetadata",
    "Pipeline",
    "Request",
    "RequestContext",
    "Response",
    "Stage",
    "default_pipeline",
]
