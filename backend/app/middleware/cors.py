"""CORS header injection stage."""

from typing import Dict

from app.middleware.pipeline import Handler, Request, RequestContext, Response, Stage

ALLOWED_METHODS = "GET,POST,PUT,DELETE,OPTIONS"
ALLOWED_HEADERS = "Content-Type,Authorization,X-Correlation-Id"


def cors_headers(allowed_origin: str) -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": allowed_origin,
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
    }


class CorsStage(Stage):
    """Merges the CORS headers into whatever the handler returned."""

    def __init__(self, allowed_origin: str = "*"):
        self.headers = cors_headers(allowed_origin)

    async def handle(self, request: Request, ctx: RequestContext, call_next: Handler) -> Response:
        response = await call_next(request, ctx)
        response.set_headers(self.headers)
        return response
