"""
Tests for structured logging processors and context binding.
"""

import structlog

from app.config import settings
from app.observability.logging import (
    REDACTED,
    add_app_context,
    log_context,
    redact_sensitive_fields,
)


class TestProcessors:
    def test_app_context_added(self):
        event = add_app_context(None, "info", {"event": "request_started"})
        assert event["service"] == settings.service_name
        assert event["version"] == settings.api_version

    def test_user_text_and_secrets_redacted(self):
        """Analysed text and credentials never reach the renderer."""
        event = redact_sensitive_fields(
            None,
            "info",
            {
                "event": "debug_dump",
                "text": "my private essay",
                "password": "hunter22",
                "client_secret": "pi_123_secret_abc",
                "tokens": 42,
                "session_id": "anon_1",
            },
        )
        assert event["text"] == REDACTED
        assert event["password"] == REDACTED
        assert event["client_secret"] == REDACTED
        assert event["tokens"] == 42
        assert event["session_id"] == "anon_1"

    def test_absent_keys_not_added(self):
        event = redact_sensitive_fields(None, "info", {"event": "x"})
        assert event == {"event": "x"}


class TestLogContext:
    def test_context_bound_and_released(self):
        with log_context(request_id="req-1"):
            assert structlog.contextvars.get_contextvars()["request_id"] == "req-1"
        assert "request_id" not in structlog.contextvars.get_contextvars()
