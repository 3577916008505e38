"""
User API Backend — Health Handler
==================================

What:  GET /health[?detailed=true]
How:   Delegates to HealthService; an `unhealthy` report is returned with
       HTTP 503 so load balancers stop routing to this instance.
"""

from app.middleware.pipeline import Request, RequestContext, Response
from app.responses import success
from app.schemas.health import HealthQuery
from app.services.health_service import health_service
from app.validation import parse_query


async def health_check(request: Request, ctx: RequestContext) -> Response:
    query = parse_query(request, HealthQuery)
    report = await health_service.check_health(detailed=query.detailed)
    ctx.mark("health_checked")
    return success(report, status_code=503 if report.status == "unhealthy" else 200)
