"""
User API Backend — Request Logging Stage
=========================================

What:  Structured logging for every request and response passing through the
       pipeline.
How:   Logs request details on arrival, status and duration on completion, and
       an extra warning when the request was slow.
When:  Inside CorrelationIdStage (so every line carries the correlation id).

What we log vs what we DON'T log (privacy):
    ✅ Log: method, path, query/path params, status, duration, IP, user-agent
    ❌ Don't log: request body (may contain PII), authorization headers
"""

import logging
from typing import Optional

from app.middleware.pipeline import Handler, Request, RequestContext, Response, Stage

logger = logging.getLogger("userapi.access")


class RequestLoggingStage(Stage):
    """
    Logs each request on the way in and its outcome on the way out.

    Args:
        slow_threshold_ms: Duration above which "Slow request detected" is
                           logged at WARNING (default 1000 ms)
    """

    def __init__(self, slow_threshold_ms: float = 1000):
        self.slow_threshold_ms = slow_threshold_ms

    async def handle(self, request: Request, ctx: RequestContext, call_next: Handler) -> Response:
        logger.info(
            "Incoming request %s %s",
            request.method,
            request.path,
            extra={
                "http_method": request.method,
                "path": request.path,
                "query_params": request.query_params,
                "path_params": request.path_params,
                "source_ip": request.source_ip,
                "user_agent": request.user_agent,
            },
        )

        response: Optional[Response] = None
        try:
            response = await call_next(request, ctx)
            return response
        finally:
            self._log_completion(request, ctx, response)

    def _log_completion(self, request: Request, ctx: RequestContext, response: Optional[Response]) -> None:
        # No response means the chain raised; the status is set by the error stage
        duration_ms = ctx.elapsed_ms()
        if response is not None:
            logger.info(
                "Request completed %s %.1fms",
                response.status_code,
                duration_ms,
                extra={"status_code": response.status_code, "duration_ms": round(duration_ms, 2)},
            )
        else:
            logger.info(
                "Request failed %.1fms",
                duration_ms,
                extra={"duration_ms": round(duration_ms, 2)},
            )

        if duration_ms > self.slow_threshold_ms:
            logger.warning(
                "Slow request detected %s %.1fms",
                request.path,
                duration_ms,
                extra={"path": request.path, "duration_ms": round(duration_ms, 2)},
            )
