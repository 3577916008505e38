"""
User API Backend — Error Handling Stage
========================================

What:  Outermost pipeline stage. Converts every failure raised anywhere in the
       chain into a structured JSON response and owns the request log scope.
How:   Runs the inner chain inside `request_scope()` and a try/except.
       Failures are mapped with `error_payload()`; the standard header set
       (CORS + X-Correlation-Id) is applied because the inner stages that
       normally add those headers were unwound by the exception.

Logging:
    Operational errors  → WARNING with status, message and details
    Everything else     → ERROR with the full traceback (exc_info)
"""

import json
import logging
import uuid

from app.exceptions import AppError, error_payload
from app.logger import request_scope
from app.middleware.cors import cors_headers
from app.middleware.pipeline import Handler, Request, RequestContext, Response, Stage
from app.middleware.request_id import CORRELATION_RESPONSE_HEADER

logger = logging.getLogger(__name__)


class ErrorHandlingStage(Stage):
    """
    Catches exceptions exactly once, at the edge of the pipeline.

    Args:
        allowed_origin:    Access-Control-Allow-Origin applied to error responses
        expose_internals:  Include original message and stack for non-operational
                           errors (never enable in production)
    """

    def __init__(self, allowed_origin: str = "*", expose_internals: bool = False):
        self.allowed_origin = allowed_origin
        self.expose_internals = expose_internals

    async def handle(self, request: Request, ctx: RequestContext, call_next: Handler) -> Response:
        with request_scope():
            try:
                return await call_next(request, ctx)
            except Exception as exc:
                self._log(exc)
                return self._to_response(exc, ctx)

    def _log(self, exc: Exception) -> None:
        if isinstance(exc, AppError) and exc.is_operational:
            logger.warning(
                "Operational error occurred: %s %s",
                exc.status_code,
                exc.message,
                extra={
                    "error_name": type(exc).__name__,
                    "status_code": exc.status_code,
                    "error_details": exc.details,
                },
            )
        elif isinstance(exc, AppError):
            logger.error("Non-operational error occurred: %s", exc.message, exc_info=exc)
        else:
            logger.error("Unexpected error occurred: %s", exc, exc_info=exc)

    def _to_response(self, exc: Exception, ctx: RequestContext) -> Response:
        status_code, body, extra_headers = error_payload(exc, self.expose_internals)

        # Failures raised before the correlation-id stage ran still get an id
        correlation_id = ctx.correlation_id or str(uuid.uuid4())

        headers = {"Content-Type": "application/json"}
        headers.update(extra_headers)
        headers.update(cors_headers(self.allowed_origin))
        headers[CORRELATION_RESPONSE_HEADER] = correlation_id

        return Response(
            status_code=status_code,
            headers=headers,
            body=json.dumps(body, default=str),
        )
