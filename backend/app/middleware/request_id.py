"""
User API Backend — Correlation ID Stage
========================================

What:  Assigns a correlation id to each request and echoes it in the response.
How:   Looks for a client-supplied id, then the platform's request id, then
       generates a UUID. Binds it (and the invocation metadata) into the
       request log scope and appends X-Correlation-Id after the inner chain.
When:  Directly inside the error-handling stage, so the logging stage and
       everything after it log with the id attached.

Accepted inbound headers (case-insensitive, first match wins):
    X-Correlation-Id   (admin frontend)
    X-Request-ID       (load balancers, most HTTP clients)
"""

import uuid

from app.logger import bind
from app.middleware.pipeline import Handler, Request, RequestContext, Response, Stage

CORRELATION_HEADERS = ("X-Correlation-Id", "X-Request-ID")
CORRELATION_RESPONSE_HEADER = "X-Correlation-Id"


def resolve_correlation_id(request: Request, ctx: RequestContext) -> str:
    for name in CORRELATION_HEADERS:
        value = request.headers.get(name)
        if value:
            return value
    if ctx.invocation.request_id:
        return ctx.invocation.request_id
    return str(uuid.uuid4())


class CorrelationIdStage(Stage):
    """
    Makes one id stable for the whole lifetime of a request.

    Behavior:
        1. Resolve the id (inbound header → platform request id → new UUID)
        2. Store it on the RequestContext for later stages and the handler
        3. Bind it into the log scope so every record carries it
        4. Add it to the response headers on the way out
    """

    async def handle(self, request: Request, ctx: RequestContext, call_next: Handler) -> Response:
        correlation_id = resolve_correlation_id(request, ctx)
        ctx.correlation_id = correlation_id

        bind(
            correlation_id=correlation_id,
            request_id=ctx.invocation.request_id,
            function_name=ctx.invocation.function_name,
            function_version=ctx.invocation.function_version,
        )

        response = await call_next(request, ctx)

        response.set_headers({CORRELATION_RESPONSE_HEADER: correlation_id})
        return response
