"""Performance-marker stage: lets handlers call `ctx.mark(name)` during one request."""

import logging

from app.middleware.pipeline import Handler, Request, RequestContext, Response, Stage

logger = logging.getLogger(__name__)


class PerformanceStage(Stage):
    async def handle(self, request: Request, ctx: RequestContext, call_next: Handler) -> Response:
        ctx.markers = []
        ctx.marking_enabled = True
        try:
            response = await call_next(request, ctx)
        finally:
            ctx.marking_enabled = False

        if ctx.markers:
            logger.debug(
                "Performance markers: %s",
                ", ".join(f"{name}={elapsed}ms" for name, elapsed in ctx.markers),
                extra={"markers": list(ctx.markers)},
            )
        ctx.markers = []
        return response
