"""
User API Backend — Hosting Adapters
====================================

What:  Translate between a hosting platform's request/response objects and
       the pipeline's transport-independent Request/Response.
Who:   `app.main` (FastAPI/uvicorn) and `app.lambda_handler` (API Gateway
       proxy events on AWS Lambda).

Two hosts, one pipeline:
    Starlette request ──from_starlette──┐               ┌──to_starlette──→ Starlette response
                                        ├─→ pipeline ─→─┤
    API Gateway event ─from_api_gateway─┘               └─to_api_gateway─→ proxy result dict
"""

import base64
import binascii
from typing import Any, Dict, Optional, Tuple

from starlette.requests import Request as StarletteRequest
from starlette.responses import Response as StarletteResponse

from app.exceptions import BadRequestError
from app.middleware.pipeline import (
    Endpoint,
    Handler,
    InvocationMetadata,
    Pipeline,
    Request,
    RequestContext,
    Response,
)


# ══════════════════════════════════════════════════════════════════════════
# Starlette / FastAPI
# ══════════════════════════════════════════════════════════════════════════


def _starlette_subject(request: StarletteRequest) -> Optional[str]:
    # request.user asserts unless AuthenticationMiddleware populated the scope
    if "user" not in request.scope:
        return None
    user = request.user
    if not getattr(user, "is_authenticated", False):
        return None
    try:
        return str(user.identity)
    except NotImplementedError:
        return user.display_name or None


async def from_starlette(request: StarletteRequest) -> Request:
    return Request(
        method=request.method,
        path=request.url.path,
        headers=request.headers,
        query_params=dict(request.query_params),
        path_params={key: str(value) for key, value in request.path_params.items()},
        body=await request.body(),
        subject=_starlette_subject(request),
        source_ip=request.client.host if request.client else None,
    )


def to_starlette(response: Response) -> StarletteResponse:
    return StarletteResponse(
        content=response.body,
        status_code=response.status_code,
        headers=response.headers,
    )


def endpoint(handler: Handler, pipeline: Pipeline):
    """Turn a business handler into a FastAPI route endpoint behind `pipeline`."""
    wrapped = pipeline.wrap(handler)

    async def route(request: StarletteRequest) -> StarletteResponse:
        result = await wrapped(await from_starlette(request), InvocationMetadata())
        return to_starlette(result)

    route.__name__ = getattr(handler, "__name__", "route")
    route.__doc__ = handler.__doc__
    return route


# ══════════════════════════════════════════════════════════════════════════
# API Gateway (Lambda proxy integration)
# ══════════════════════════════════════════════════════════════════════════


def _event_body(event: Dict[str, Any]) -> bytes:
    body = event.get("body")
    if body is None:
        return b""
    if event.get("isBase64Encoded"):
        try:
            return base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError):
            raise BadRequestError("Request body is not valid base64")
    return body.encode("utf-8")


def _latin1(value: Any) -> str:
    # HTTP header values are latin-1; API Gateway forwards anything the client sent
    return str(value).encode("latin-1", "replace").decode("latin-1")


def _event_headers(event: Dict[str, Any]) -> Dict[str, str]:
    return {_latin1(name): _latin1(value) for name, value in (event.get("headers") or {}).items()}


def from_api_gateway(event: Dict[str, Any], context: Any = None) -> Tuple[Request, InvocationMetadata]:
    """
    Build the pipeline request and invocation metadata from a proxy event.

    Every optional section of the event (headers, query string, path
    parameters, authorizer claims) may be absent or null.
    """
    request_context = event.get("requestContext") or {}
    identity = request_context.get("identity") or {}
    claims = (request_context.get("authorizer") or {}).get("claims") or {}

    request = Request(
        method=event.get("httpMethod") or "GET",
        path=event.get("path") or "/",
        headers=_event_headers(event),
        query_params=dict(event.get("queryStringParameters") or {}),
        path_params=dict(event.get("pathParameters") or {}),
        body=_event_body(event),
        subject=claims.get("sub"),
        source_ip=identity.get("sourceIp"),
    )
    invocation = InvocationMetadata(
        request_id=request_context.get("requestId") or getattr(context, "aws_request_id", None),
        function_name=getattr(context, "function_name", None),
        function_version=getattr(context, "function_version", None),
    )
    return request, invocation


def to_api_gateway(response: Response) -> Dict[str, Any]:
    return {
        "statusCode": response.status_code,
        "headers": dict(response.headers),
        "body": response.body,
        "isBase64Encoded": False,
    }


async def _reject_event(pipeline: Pipeline, exc: Exception, event: Any, context: Any) -> Response:
    """
    Answer an event that could not be converted.

    The conversion error is re-raised from inside the chain, so the error
    stage maps it and the response still gets CORS and a correlation id.
    """

    async def reject(request: Request, ctx: RequestContext) -> Response:
        raise exc

    method = event.get("httpMethod") if isinstance(event, dict) else None
    path = event.get("path") if isinstance(event, dict) else None
    request = Request(
        method=method if isinstance(method, str) else "GET",
        path=path if isinstance(path, str) else "/",
    )
    invocation = InvocationMetadata(
        request_id=getattr(context, "aws_request_id", None),
        function_name=getattr(context, "function_name", None),
        function_version=getattr(context, "function_version", None),
    )
    return await pipeline.wrap(reject)(request, invocation)


def lambda_endpoint(handler: Handler, pipeline: Pipeline):
    """Turn a business handler into `async (event, context) -> proxy result`."""
    wrapped: Endpoint = pipeline.wrap(handler)

    async def invoke(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
        try:
            request, invocation = from_api_gateway(event, context)
        except Exception as exc:
            return to_api_gateway(await _reject_event(pipeline, exc, event, context))
        return to_api_gateway(await wrapped(request, invocation))

    invoke.__name__ = getattr(handler, "__name__", "invoke")
    return invoke
