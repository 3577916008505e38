"""
User API Backend — Error Taxonomy
==================================

What:  Application exceptions carrying an HTTP status code and an
       operational/non-operational flag, plus the mapping from any exception
       to a failure response body.
How:   Services and handlers raise these; the pipeline's error-handling stage
       is the single place that catches them and calls `error_payload()`.

Exception Hierarchy:
    AppError (base)
    ├── BadRequestError          → 400 (operational)
    ├── UnauthorizedError        → 401 (operational)
    ├── ForbiddenError           → 403 (operational)
    ├── NotFoundError            → 404 (operational)
    ├── ConflictError            → 409 (operational)
    ├── ValidationError          → 422 (operational, details = field errors)
    ├── TooManyRequestsError     → 429 (operational, Retry-After header)
    ├── InternalServerError      → 500 (non-operational)
    └── ServiceUnavailableError  → 503 (non-operational)
        └── CircuitBreakerOpenError

Operational errors are expected, caller-attributable failures: their message
is returned as-is. Non-operational errors (and any exception that is not an
AppError) have their message replaced with a generic phrase unless the
service runs outside production.
"""

import traceback
from typing import Any, Dict, Optional, Tuple

GENERIC_MESSAGES = {
    500: "Internal server error",
    503: "Service temporarily unavailable",
}


class AppError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        status_code:     HTTP status returned to the caller
        message:         User-facing error description
        is_operational:  Whether the message is safe to surface in production
        details:         Structured client-facing detail (e.g. field errors)
        headers:         Extra response headers (e.g. Retry-After)
    """

    status_code: int = 500
    is_operational: bool = False
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message or self.default_message
        self.details = details
        self.headers = headers or {}
        super().__init__(self.message)


class BadRequestError(AppError):
    """Malformed request: missing body, unparseable JSON, bad path parameter."""

    status_code = 400
    is_operational = True
    default_message = "Bad Request"


class UnauthorizedError(AppError):
    status_code = 401
    is_operational = True
    default_message = "Unauthorized"


class ForbiddenError(AppError):
    status_code = 403
    is_operational = True
    default_message = "Forbidden"


class NotFoundError(AppError):
    status_code = 404
    is_operational = True
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    is_operational = True
    default_message = "Resource already exists"


class ValidationError(AppError):
    """
    Raised when a well-formed body fails schema validation.

    `details` is a list of {"field": ..., "message": ...} entries built from
    the pydantic error list.
    """

    status_code = 422
    is_operational = True
    default_message = "Validation failed"


class TooManyRequestsError(AppError):
    """
    Raised when a caller exceeds a rate limit.

    The message names the retry-after seconds and the Retry-After header is
    set so HTTP-compliant clients can back off without parsing the body.
    """

    status_code = 429
    is_operational = True

    def __init__(self, retry_after: int, message: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(
            message=message or f"Rate limit exceeded. Try again in {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)},
        )


class InternalServerError(AppError):
    status_code = 500
    is_operational = False
    default_message = "Internal server error"


class ServiceUnavailableError(AppError):
    status_code = 503
    is_operational = False
    default_message = "Service temporarily unavailable"


class CircuitBreakerOpenError(ServiceUnavailableError):
    """
    Raised when a downstream dependency's circuit breaker is OPEN.

    Calls are rejected immediately until `recovery_time` seconds have passed.
    """

    def __init__(self, recovery_time: int = 60, dependency: str = "dependency"):
        self.recovery_time = recovery_time
        super().__init__(
            message=(
                f"The {dependency} is temporarily unavailable due to repeated failures. "
                f"Retrying in approximately {recovery_time} seconds."
            ),
            headers={"Retry-After": str(recovery_time)},
        )


def error_payload(
    exc: BaseException, expose_internals: bool
) -> Tuple[int, Dict[str, Any], Dict[str, str]]:
    """
    Map an exception to (status_code, body, headers).

    Args:
        exc:               Any exception raised inside the pipeline
        expose_internals:  True outside production; adds the original message,
                           a `detail` field and the formatted `stack`

    Body shape:
        {"success": false, "message": "...", "details": ... (when present)}
    """
    if isinstance(exc, AppError):
        status_code = exc.status_code
        operational = exc.is_operational
        message = exc.message
        details = exc.details
        headers = dict(exc.headers)
    else:
        status_code = 500
        operational = False
        message = str(exc) or type(exc).__name__
        details = None
        headers = {}

    body: Dict[str, Any] = {"success": False}
    if operational:
        body["message"] = message
    else:
        body["message"] = GENERIC_MESSAGES.get(status_code, GENERIC_MESSAGES[500])

    if details is not None:
        body["details"] = details

    if not operational and expose_internals:
        body["detail"] = message
        body["stack"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )

    return status_code, body, headers
