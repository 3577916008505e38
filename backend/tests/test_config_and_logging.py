"""
User API Backend — Configuration and Log Context Tests
=======================================================

What we test:
    ✅ Settings defaults and validation
    ✅ Production problems reported together
    ✅ request_scope / bind / RequestContextFilter behaviour
"""

import logging

import pytest
from pydantic import ValidationError

from app.config import Settings
from app.logger import RequestContextFilter, bind, current_context, request_scope


class TestSettings:
    def test_defaults(self):
        config = Settings()

        assert config.app_name == "user-api"
        assert config.cors_origin == "*"
        assert config.rate_limit_enabled is False
        assert config.rate_limit_key_prefix == "rl"
        assert config.rate_limit_retention_buffer == 3600
        assert config.is_production is False

    def test_log_level_is_normalised(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValidationError):
            Settings(log_level="LOUD")

    def test_invalid_environment_rejected(self):
        with pytest.raises(ValidationError):
            Settings(app_env="qa")

    def test_development_has_no_production_problems(self):
        Settings(app_env="development").validate_required_for_production()

    def test_production_problems_listed_together(self):
        config = Settings(app_env="production", cors_origin="*", email_api_url="")

        with pytest.raises(ValueError) as exc_info:
            config.validate_required_for_production()

        message = str(exc_info.value)
        assert "CORS_ORIGIN" in message
        assert "EMAIL_API_URL" in message

    def test_production_ready(self):
        config = Settings(
            app_env="production",
            cors_origin="https://admin.example.com",
            email_api_url="https://relay.example.com/send",
        )
        assert config.production_problems() == []


class TestRequestScope:
    def test_bind_inside_scope(self):
        with request_scope():
            bind(correlation_id="abc")
            bind(request_id="req-1")
            assert dict(current_context()) == {"correlation_id": "abc", "request_id": "req-1"}

        assert dict(current_context()) == {}

    def test_scope_cleared_when_body_raises(self):
        with pytest.raises(RuntimeError):
            with request_scope():
                bind(correlation_id="abc")
                raise RuntimeError("handler failed")

        assert dict(current_context()) == {}

    def test_nested_scope_restores_outer(self):
        with request_scope():
            bind(correlation_id="outer")
            with request_scope():
                assert dict(current_context()) == {}
                bind(correlation_id="inner")
            assert current_context()["correlation_id"] == "outer"

    def test_context_is_read_only(self):
        with request_scope():
            bind(correlation_id="abc")
            with pytest.raises(TypeError):
                current_context()["correlation_id"] = "changed"


class TestRequestContextFilter:
    def make_record(self):
        return logging.LogRecord("test", logging.INFO, __file__, 1, "hello", None, None)

    def test_fields_copied_onto_record(self):
        record = self.make_record()
        with request_scope():
            bind(correlation_id="abc", function_name="fn")
            assert RequestContextFilter().filter(record)

        assert record.correlation_id == "abc"
        assert record.function_name == "fn"

    def test_placeholder_outside_request(self):
        record = self.make_record()
        RequestContextFilter().filter(record)
        assert record.correlation_id == "-"

    def test_explicit_extra_wins(self):
        record = self.make_record()
        record.correlation_id = "explicit"
        with request_scope():
            bind(correlation_id="scoped")
            RequestContextFilter().filter(record)
        assert record.correlation_id == "explicit"
