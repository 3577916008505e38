"""
User API Backend — Email Service Tests
=======================================

What:  Tests for the relay client, its circuit breaker and fire-and-forget
       scheduling.
How:   httpx.MockTransport stands in for the relay; retry waits are zero
       (RETRY_MIN_WAIT / RETRY_MAX_WAIT set in conftest).

What we test:
    ✅ Successful send posts the expected payload and headers
    ✅ 5xx retried up to RETRY_MAX_ATTEMPTS, then ServiceUnavailableError
    ✅ 4xx rejection → BadRequestError without retry
    ✅ Unconfigured relay → ServiceUnavailableError
    ✅ Circuit breaker: CLOSED → OPEN → HALF_OPEN → CLOSED/OPEN
    ✅ fire_and_forget logs failures and never raises
"""

import asyncio
import json
import logging

import httpx
import pytest

from app.config import Settings
from app.exceptions import BadRequestError, CircuitBreakerOpenError, ServiceUnavailableError
from app.schemas.email import EmailMessage
from app.services import background
from app.services.email_service import CircuitBreaker, EmailService

RELAY_URL = "https://relay.test/send"


def relay_settings(**overrides):
    values = dict(
        email_api_url=RELAY_URL,
        email_api_key="secret",
        email_from_address="noreply@example.com",
        retry_max_attempts=3,
        retry_min_wait=0,
        retry_max_wait=0,
        cb_failure_threshold=2,
        cb_recovery_timeout=60,
    )
    values.update(overrides)
    return Settings(**values)


class Relay:
    """Records requests and answers with a scripted list of status codes."""

    def __init__(self, *statuses):
        self.statuses = list(statuses) or [202]
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return httpx.Response(status, json={"status": status})


def message(**overrides):
    values = dict(to=["ada@example.com", "grace@example.com"], subject="Hello", body="Hi there")
    values.update(overrides)
    return EmailMessage(**values)


class TestEmailServiceSend:
    @pytest.mark.asyncio
    async def test_send_posts_payload(self):
        relay = Relay(202)
        service = EmailService(relay_settings(), transport=httpx.MockTransport(relay))

        await service.send(message(html="<p>Hi there</p>"))

        assert len(relay.requests) == 1
        sent = relay.requests[0]
        assert str(sent.url) == RELAY_URL
        assert sent.headers["Authorization"] == "Bearer secret"
        payload = json.loads(sent.content)
        assert payload == {
            "from": "noreply@example.com",
            "to": ["ada@example.com", "grace@example.com"],
            "subject": "Hello",
            "text": "Hi there",
            "html": "<p>Hi there</p>",
        }

    @pytest.mark.asyncio
    async def test_no_authorization_header_without_key(self):
        relay = Relay(200)
        service = EmailService(relay_settings(email_api_key=""), transport=httpx.MockTransport(relay))

        await service.send(message())

        assert "Authorization" not in relay.requests[0].headers
        assert "html" not in json.loads(relay.requests[0].content)

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self):
        relay = Relay(503, 502, 202)
        service = EmailService(relay_settings(), transport=httpx.MockTransport(relay))

        await service.send(message())

        assert len(relay.requests) == 3
        assert service.circuit_breaker.state == CircuitBreaker.CLOSED

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_service_unavailable(self):
        relay = Relay(500)
        service = EmailService(relay_settings(), transport=httpx.MockTransport(relay))

        with pytest.raises(ServiceUnavailableError):
            await service.send(message())

        assert len(relay.requests) == 3
        assert service.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_transport_error_raises_service_unavailable(self):
        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        service = EmailService(relay_settings(), transport=httpx.MockTransport(unreachable))

        with pytest.raises(ServiceUnavailableError):
            await service.send(message())

    @pytest.mark.asyncio
    async def test_rejection_is_bad_request_without_retry(self):
        relay = Relay(422)
        service = EmailService(relay_settings(), transport=httpx.MockTransport(relay))

        with pytest.raises(BadRequestError):
            await service.send(message())

        assert len(relay.requests) == 1
        assert service.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_unconfigured_relay(self):
        service = EmailService(relay_settings(email_api_url=""))

        with pytest.raises(ServiceUnavailableError) as exc_info:
            await service.send(message())

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_open_circuit_rejects_without_calling_relay(self):
        relay = Relay(500)
        service = EmailService(
            relay_settings(retry_max_attempts=1), transport=httpx.MockTransport(relay)
        )
        for _ in range(2):
            with pytest.raises(ServiceUnavailableError):
                await service.send(message())

        with pytest.raises(CircuitBreakerOpenError):
            await service.send(message())

        assert len(relay.requests) == 2
        assert service.health_check()["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_welcome_email(self):
        relay = Relay(202)
        service = EmailService(relay_settings(), transport=httpx.MockTransport(relay))

        await service.send_welcome_email("ada@example.com", "Ada")

        payload = json.loads(relay.requests[0].content)
        assert payload["to"] == ["ada@example.com"]
        assert "Welcome" in payload["subject"]
        assert "Hi Ada" in payload["text"]


class TestEmailMessageSchema:
    def test_recipient_limits(self):
        from pydantic import ValidationError

        with pytest.raises(ValidationError):
            EmailMessage(to=[], subject="s", body="b")
        with pytest.raises(ValidationError):
            EmailMessage(to=[f"u{i}@example.com" for i in range(51)], subject="s", body="b")
        with pytest.raises(ValidationError):
            EmailMessage(to=["not-an-email"], subject="s", body="b")


class TestCircuitBreaker:
    def setup_method(self):
        self.now = 1000.0
        self.breaker = CircuitBreaker(
            failure_threshold=3, recovery_timeout=60, dependency="relay", clock=lambda: self.now
        )

    def test_opens_after_threshold(self):
        for _ in range(3):
            assert self.breaker.can_execute()
            self.breaker.record_failure()

        assert self.breaker.state == CircuitBreaker.OPEN
        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            self.breaker.can_execute()
        assert exc_info.value.recovery_time == 60

    def test_half_open_after_recovery_timeout(self):
        for _ in range(3):
            self.breaker.record_failure()

        self.now += 60
        assert self.breaker.can_execute()
        assert self.breaker.state == CircuitBreaker.HALF_OPEN

    def test_half_open_success_closes(self):
        for _ in range(3):
            self.breaker.record_failure()
        self.now += 61
        self.breaker.can_execute()

        self.breaker.record_success()

        assert self.breaker.state == CircuitBreaker.CLOSED
        assert self.breaker.failure_count == 0

    def test_half_open_failure_reopens(self):
        for _ in range(3):
            self.breaker.record_failure()
        self.now += 61
        self.breaker.can_execute()

        self.breaker.record_failure()

        assert self.breaker.state == CircuitBreaker.OPEN
        with pytest.raises(CircuitBreakerOpenError):
            self.breaker.can_execute()

    def test_success_resets_failure_count(self):
        self.breaker.record_failure()
        self.breaker.record_failure()
        self.breaker.record_success()
        self.breaker.record_failure()

        assert self.breaker.state == CircuitBreaker.CLOSED


class TestFireAndForget:
    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, caplog):
        caplog.set_level(logging.ERROR, logger="app.services.background")

        async def boom():
            raise RuntimeError("relay exploded")

        task = background.fire_and_forget(boom(), name="welcome-email:1")
        await background.drain()

        assert task.done()
        assert background.pending_count() == 0
        errors = [r for r in caplog.records if r.name == "app.services.background"]
        assert "welcome-email:1" in errors[0].getMessage()
        assert "relay exploded" in errors[0].getMessage()

    @pytest.mark.asyncio
    async def test_success_is_silent(self, caplog):
        caplog.set_level(logging.WARNING, logger="app.services.background")
        results = []

        async def work():
            results.append("done")

        background.fire_and_forget(work(), name="noop")
        await background.drain()

        assert results == ["done"]
        assert not [r for r in caplog.records if r.name == "app.services.background"]

    @pytest.mark.asyncio
    async def test_caller_does_not_wait(self):
        release = asyncio.Event()

        async def slow():
            await release.wait()

        task = background.fire_and_forget(slow(), name="slow")
        assert not task.done()
        assert background.pending_count() >= 1

        release.set()
        await background.drain()
        assert task.done()
