"""Tests for chatgate/logging/audit.py — JSON audit logging and redaction."""

import json
import logging

import pytest

from chatgate.logging.audit import (
    REDACTED,
    JSONFormatter,
    RequestTimer,
    generate_request_id,
    get_audit_logger,
    request_id_var,
    sanitize_for_logging,
    setup_logging,
)


class TestJSONFormatter:

    def test_output_is_valid_json(self):
        formatter = JSONFormatter()
        record = logging.LogRecord(
            name="test", level=logging.INFO, pathname="",
            lineno=0, msg="hello", args=(), exc_info=None,
        )
        output = formatter.format(record)
        parsed = json.loads(output)
        assert parsed["message"] == "hello"
        assert parsed["level"] == "INFO"
        assert "timestamp" in parsed

    def test_includes_request_id(self):
        token = request_id_var.set("req-abc123")
        try:
            formatter = JSONFormatter()
            record = logging.LogRecord(
                name="test", level=logging.INFO, pathname="",
                lineno=0, msg="test", args=(), exc_info=None,
            )
            output = formatter.format(record)
            parsed = json.loads(output)
            assert parsed["request_id"] == "req-abc123"
        finally:
            request_id_var.reset(token)

    def test_includes_audit_data(self):
        formatter = JSONFormatter()
        record = logging.LogRecord(
            name="test", level=logging.INFO, pathname="",
            lineno=0, msg="test", args=(), exc_info=None,
        )
        record.audit_data = {"identity": "chat:1.2.3.4", "model": "glm-4.5"}
        output = formatter.format(record)
        parsed = json.loads(output)
        assert parsed["identity"] == "chat:1.2.3.4"
        assert parsed["model"] == "glm-4.5"

    def test_audit_data_is_redacted(self):
        formatter = JSONFormatter()
        record = logging.LogRecord(
            name="test", level=logging.INFO, pathname="",
            lineno=0, msg="test", args=(), exc_info=None,
        )
        record.audit_data = {"api_key": "sk-or-secret", "attempt": 2}
        parsed = json.loads(formatter.format(record))
        assert parsed["api_key"] == REDACTED
        assert parsed["attempt"] == 2
        assert "sk-or-secret" not in formatter.format(record)

    def test_empty_request_id_default(self):
        formatter = JSONFormatter()
        record = logging.LogRecord(
            name="test", level=logging.INFO, pathname="",
            lineno=0, msg="test", args=(), exc_info=None,
        )
        output = formatter.format(record)
        parsed = json.loads(output)
        assert parsed["request_id"] == ""


class TestGenerateRequestId:

    def test_length(self):
        rid = generate_request_id()
        assert len(rid) == 12

    def test_uniqueness(self):
        ids = {generate_request_id() for _ in range(100)}
        assert len(ids) == 100

    def test_hex_chars_only(self):
        rid = generate_request_id()
        assert all(c in "0123456789abcdef" for c in rid)


class TestRequestTimer:

    def test_measures_elapsed(self):
        with RequestTimer() as timer:
            # Do a tiny computation
            _ = sum(range(1000))
        assert timer.elapsed_ms > 0
        assert isinstance(timer.elapsed_ms, float)


class TestSetupLogging:

    def test_creates_stdout_handler(self, override_settings):
        override_settings(AUDIT_LOG_FILE="")
        setup_logging()
        logger = get_audit_logger()
        assert len(logger.handlers) >= 1
        assert any(isinstance(h, logging.StreamHandler) for h in logger.handlers)


class TestSanitizeForLogging:

    def test_nested_redaction(self):
        result = sanitize_for_logging({"password": "x", "nested": {"api_key": "y"}, "ok": 1})
        assert result == {"password": "[REDACTED]", "nested": {"api_key": "[REDACTED]"}, "ok": 1}

    def test_substring_and_case_insensitive(self):
        result = sanitize_for_logging({
            "Authorization": "Bearer abc",
            "X-Session-Id": "s1",
            "refresh_token": "t",
            "clientSecret": "c",
            "user_credentials": ["a"],
            "Cookie": "c=1",
            "apiKey": "k",
        })
        assert set(result.values()) == {REDACTED}

    def test_redacts_whole_nested_value(self):
        result = sanitize_for_logging({"secret": {"inner": "value"}})
        assert result == {"secret": REDACTED}

    def test_lists_walked(self):
        result = sanitize_for_logging({"items": [{"token": "t", "n": 1}, "plain"]})
        assert result == {"items": [{"token": REDACTED, "n": 1}, "plain"]}

    def test_scalars_unchanged(self):
        assert sanitize_for_logging("text") == "text"
        assert sanitize_for_logging(5) == 5
        assert sanitize_for_logging(None) is None

    def test_input_not_mutated(self):
        original = {"password": "x", "nested": {"token": "y"}}
        sanitize_for_logging(original)
        assert original == {"password": "x", "nested": {"token": "y"}}
