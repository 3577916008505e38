"""
User API Backend — Request Pipeline Composer
=============================================

What:  Request/response types shared by every stage, and the composer that
       folds an ordered list of stages around a business handler.
How:   Each Stage implements `handle(request, ctx, call_next)`. `Pipeline.wrap`
       folds the list right-to-left so the first stage is the outermost one,
       and returns `(request, invocation) -> Response`. A fresh RequestContext
       is created for every call.

Default order (outermost → innermost):
    ErrorHandling → CorrelationId → RequestLogging → Performance → CORS
        [→ RateLimit] → business handler

    - ErrorHandling is outermost so a failure in ANY inner stage still
      produces a well-formed response and the log scope is always released.
    - CorrelationId wraps RequestLogging so every request log line carries it.
    - CORS is innermost-but-one so its headers land on the handler's response.
    - RateLimit (optional) rejects before the handler runs; its 429 travels
      back out through ErrorHandling like any other failure.

Only the error-handling stage may change a response's status code.
"""

import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from starlette.datastructures import Headers

from app.exceptions import BadRequestError


@dataclass
class Request:
    """Transport-independent view of an inbound HTTP request."""

    method: str
    path: str
    headers: Headers = field(default_factory=lambda: Headers(headers={}))
    query_params: Dict[str, str] = field(default_factory=dict)
    path_params: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    subject: Optional[str] = None
    source_ip: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.headers, Headers):
            self.headers = Headers(headers=dict(self.headers or {}))

    @property
    def user_agent(self) -> Optional[str]:
        return self.headers.get("user-agent")

    def json(self) -> Any:
        """Decode the body as JSON, raising BadRequestError on malformed input."""
        try:
            return json.loads(self.body)
        except (ValueError, UnicodeDecodeError):
            raise BadRequestError("Invalid JSON body")


@dataclass
class Response:
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""

    def json_body(self) -> Any:
        return json.loads(self.body) if self.body else None

    def set_headers(self, headers: Dict[str, str]) -> None:
        """Set headers, replacing any existing spelling of the same name."""
        replaced = {name.lower() for name in headers}
        kept = {name: value for name, value in self.headers.items() if name.lower() not in replaced}
        self.headers = {**kept, **headers}


@dataclass
class InvocationMetadata:
    """What the hosting platform knows about this invocation."""

    request_id: Optional[str] = None
    function_name: Optional[str] = None
    function_version: Optional[str] = None


class RequestContext:
    """
    Mutable per-request state shared by the stages and the business handler.

    Attributes:
        invocation:      Platform metadata for this invocation
        correlation_id:  Set by the correlation-id stage
        start_time:      perf_counter() captured when the pipeline was entered
        markers:         (name, elapsed_ms) pairs recorded through `mark()`
    """

    def __init__(self, invocation: InvocationMetadata):
        self.invocation = invocation
        self.correlation_id: Optional[str] = None
        self.start_time = time.perf_counter()
        self.markers: List[Tuple[str, float]] = []
        self.marking_enabled = False

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.start_time) * 1000

    def mark(self, name: str) -> None:
        """Record a performance marker. No-op unless the performance stage is active."""
        if self.marking_enabled:
            self.markers.append((name, round(self.elapsed_ms(), 2)))


Handler = Callable[[Request, RequestContext], Awaitable[Response]]
Endpoint = Callable[[Request, InvocationMetadata], Awaitable[Response]]


class Stage(ABC):
    """One cross-cutting behaviour wrapped around the rest of the chain."""

    @abstractmethod
    async def handle(self, request: Request, ctx: RequestContext, call_next: Handler) -> Response:
        ...


class Pipeline:
    """An ordered list of stages, outermost first."""

    def __init__(self, stages: Sequence[Stage]):
        self.stages = list(stages)

    def wrap(self, handler: Handler) -> Endpoint:
        chain = handler
        for stage in reversed(self.stages):
            chain = _bind(stage, chain)

        async def endpoint(request: Request, invocation: Optional[InvocationMetadata] = None) -> Response:
            ctx = RequestContext(invocation or InvocationMetadata())
            return await chain(request, ctx)

        endpoint.__name__ = getattr(handler, "__name__", "endpoint")
        return endpoint


def _bind(stage: Stage, inner: Handler) -> Handler:
    async def call(request: Request, ctx: RequestContext) -> Response:
        return await stage.handle(request, ctx, inner)

    return call
