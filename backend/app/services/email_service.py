"""
User API Backend — Email Relay Service
=======================================

What:  Sends transactional email (welcome messages, POST /email/send) through an
       HTTP email relay.
How:   Posts a JSON payload with httpx, retrying transient failures with
       tenacity and guarding the relay with a circuit breaker.
Who:   Instantiated once at import time (`email_service`); called by the email
       handler, by the users create handler (fire-and-forget welcome email),
       and by the health check.

Resilience Strategy:
    1. Circuit breaker rejects calls instantly while the relay is known to be down
    2. Tenacity retry with exponential backoff + jitter for transport errors,
       HTTP 5xx and HTTP 429
    3. Relay 4xx (other than 429) is a rejection of the message itself: no
       retry, not counted against the breaker, surfaced as 400

Relay contract:
    POST {EMAIL_API_URL}
    Authorization: Bearer {EMAIL_API_KEY}        (omitted when no key is set)
    {"from": "...", "to": [...], "subject": "...", "text": "...", "html": "..."}
"""

import logging
import time
import uuid
from typing import Any, Callable, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.config import Settings, settings as app_settings
from app.exceptions import BadRequestError, CircuitBreakerOpenError, ServiceUnavailableError
from app.schemas.email import EmailMessage

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════


class CircuitBreaker:
    """
    Circuit breaker for one downstream dependency.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow the next request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Not thread-safe; every caller shares one event loop.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        dependency: str = "dependency",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.dependency = dependency
        self._clock = clock
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Returns True when the call may proceed.

        Raises:
            CircuitBreakerOpenError: circuit is OPEN and the recovery timeout
                has not elapsed yet
        """
        if self.state == self.OPEN:
            elapsed = self._clock() - (self.last_failure_time or 0)
            if elapsed < self.recovery_timeout:
                remaining = max(1, int(self.recovery_timeout - elapsed))
                raise CircuitBreakerOpenError(recovery_time=remaining, dependency=self.dependency)
            logger.info(
                "Circuit breaker for %s transitioning to HALF_OPEN after %.1fs",
                self.dependency,
                elapsed,
            )
            self.state = self.HALF_OPEN
        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker for %s transitioning to CLOSED", self.dependency)
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker for %s returning to OPEN (test request failed)", self.dependency)
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker for %s OPENING after %d consecutive failures",
                self.dependency,
                self.failure_count,
            )
            self.state = self.OPEN


def _is_transient(exc: BaseException) -> bool:
    """Transport errors, 5xx and 429 are worth another attempt; other 4xx are not."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status >= 500 or status == 429
    return False


# ══════════════════════════════════════════════════════════════════════════
# Email Service
# ══════════════════════════════════════════════════════════════════════════


class EmailService:
    """
    Error Handling Chain:
        relay call fails transiently → tenacity retries (RETRY_MAX_ATTEMPTS)
        → all retries fail → breaker failure recorded → ServiceUnavailableError
        → breaker threshold reached → later calls rejected instantly (503)
        → recovery timeout → one test call (HALF_OPEN) → success closes it
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or app_settings
        # Injected in tests (httpx.MockTransport); None means a real network transport
        self._transport = transport
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=self.config.cb_failure_threshold,
            recovery_timeout=self.config.cb_recovery_timeout,
            dependency="email service",
        )

    @property
    def configured(self) -> bool:
        return bool(self.config.email_api_url)

    def _payload(self, message: EmailMessage) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "from": self.config.email_from_address,
            "to": [str(addr) for addr in message.to],
            "subject": message.subject,
            "text": message.body,
        }
        if message.html is not None:
            payload["html"] = message.html
        return payload

    def _headers(self, send_id: str) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Idempotency-Key": send_id}
        if self.config.email_api_key:
            headers["Authorization"] = f"Bearer {self.config.email_api_key}"
        return headers

    async def send(self, message: EmailMessage) -> None:
        """
        Deliver `message` through the relay.

        Raises:
            ServiceUnavailableError: relay not configured, or still failing
                after every retry
            CircuitBreakerOpenError: too many recent failures
            BadRequestError: the relay rejected the message (4xx)
        """
        if not self.configured:
            raise ServiceUnavailableError("Email relay is not configured (EMAIL_API_URL is empty)")

        self.circuit_breaker.can_execute()

        send_id = str(uuid.uuid4())
        try:
            await self._post_with_retry(self._payload(message), send_id)
        except httpx.HTTPStatusError as exc:
            if not _is_transient(exc):
                # The relay is healthy; it refused this particular message
                self.circuit_breaker.record_success()
                logger.warning(
                    "[%s] Email relay rejected message with HTTP %d",
                    send_id,
                    exc.response.status_code,
                )
                raise BadRequestError(
                    "Email rejected by the relay. Please verify the recipients and sender."
                )
            self._record_exhausted(send_id, exc)
            raise ServiceUnavailableError("Email delivery failed after multiple attempts")
        except Exception as exc:
            self._record_exhausted(send_id, exc)
            raise ServiceUnavailableError("Email delivery failed after multiple attempts")

        self.circuit_breaker.record_success()
        logger.info("[%s] Email sent to %d recipient(s)", send_id, len(message.to))

    def _record_exhausted(self, send_id: str, exc: BaseException) -> None:
        self.circuit_breaker.record_failure()
        logger.error(
            "[%s] Email relay failed after %d attempt(s): %s",
            send_id,
            self.config.retry_max_attempts,
            exc,
        )

    async def _post_with_retry(self, payload: Dict[str, Any], send_id: str) -> None:
        # Only the HTTP call is retried; the breaker check above runs once per send
        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(self.config.retry_max_attempts),
            wait=wait_exponential_jitter(
                initial=self.config.retry_min_wait,
                max=self.config.retry_max_wait,
                jitter=1,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async with httpx.AsyncClient(
            timeout=self.config.email_timeout, transport=self._transport
        ) as client:
            async for attempt in retrying:
                with attempt:
                    start_time = time.perf_counter()
                    response = await client.post(
                        self.config.email_api_url,
                        json=payload,
                        headers=self._headers(send_id),
                    )
                    logger.debug(
                        "[%s] Email relay answered %d in %.0fms",
                        send_id,
                        response.status_code,
                        (time.perf_counter() - start_time) * 1000,
                    )
                    response.raise_for_status()

    async def send_welcome_email(self, email: str, name: str) -> None:
        message = EmailMessage(
            to=[email],
            subject=f"Welcome to {self.config.app_name}",
            body=(
                f"Hi {name},\n\n"
                "Your account has been created. We're glad to have you with us.\n"
            ),
            html=(
                f"<p>Hi {name},</p>"
                "<p>Your account has been created. We're glad to have you with us.</p>"
            ),
        )
        await self.send(message)

    def health_check(self) -> Dict[str, Any]:
        """
        Relay status for GET /health?detailed=true.

        Does not contact the relay; reports configuration and breaker state.
        """
        state = self.circuit_breaker.state
        if not self.configured:
            return {"status": "degraded", "message": "Email relay is not configured"}
        if state != CircuitBreaker.CLOSED:
            return {
                "status": "degraded",
                "message": f"Circuit breaker is {state}",
                "details": {"circuit": state, "failures": self.circuit_breaker.failure_count},
            }
        return {"status": "up", "message": "Email relay is configured", "details": {"circuit": state}}


# ── Singleton Instance ────────────────────────────────────────────────────
email_service = EmailService()
