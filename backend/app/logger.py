"""
User API Backend — Logging Setup and Request-Scoped Log Context
================================================================

What:  Configures stdlib logging and carries per-request fields (correlation id,
       platform request id, function name) into every log record.
How:   A ContextVar holds an immutable mapping for the current request.
       `request_scope()` opens a fresh mapping and restores the previous one on
       exit; `bind()` adds fields to it; `RequestContextFilter` copies the
       fields onto each LogRecord.
Who:   `setup_logging()` runs at startup; the pipeline's error-handling stage
       opens the scope and the correlation-id stage binds into it.

Lifecycle:
    The scope is released by token reset, so fields bound during one request
    can never be seen by the next one, even when a warm worker (or a reused
    Lambda execution environment) handles both.
"""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from app.config import settings

_EMPTY: Mapping[str, Any] = MappingProxyType({})

_request_context: ContextVar[Mapping[str, Any]] = ContextVar("request_context", default=_EMPTY)


@contextmanager
def request_scope() -> Iterator[None]:
    """Open an empty request-scoped log context; restore the outer one on exit."""
    token = _request_context.set(_EMPTY)
    try:
        yield
    finally:
        _request_context.reset(token)


def bind(**fields: Any) -> None:
    """Merge fields into the current request scope."""
    merged = dict(_request_context.get())
    merged.update(fields)
    _request_context.set(MappingProxyType(merged))


def current_context() -> Mapping[str, Any]:
    """Read-only view of the fields bound in the current scope."""
    return _request_context.get()


class RequestContextFilter(logging.Filter):
    """Attaches the current request scope's fields to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _request_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        if not hasattr(record, "correlation_id"):
            record.correlation_id = "-"
        return True


def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s [%(correlation_id)s]: %(message)s

    Structured metadata travels in `extra={...}` so handlers that serialise
    records (CloudWatch, ELK shippers) see individual fields.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s [%(correlation_id)s]: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[handler],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
