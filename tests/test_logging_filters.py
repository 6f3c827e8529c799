"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

from app.core.logging import (
    JsonFormatter,
    SensitiveDataFilter,
    clear_request_id,
    hash_identifier,
    set_request_id,
)


@pytest.fixture
def capture():
    """Return (logger, stream) wired with the redaction filter and JSON formatter."""

    logger = logging.getLogger("test_redaction")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)

    yield logger, stream

    logger.handlers.clear()
    clear_request_id()


def test_sensitive_filter_redacts_api_keys(capture):
    logger, stream = capture

    logger.info(
        "auth.invalid_key",
        extra={
            "api_key": "sk-secret-123",
            "x-api-key": "another-secret",
            "safe_field": "visible",
        },
    )

    output = stream.getvalue()
    assert "sk-secret-123" not in output
    assert "another-secret" not in output
    assert "[REDACTED]" in output
    assert "visible" in output


def test_sensitive_filter_redacts_client_identity_and_store_url(capture):
    logger, stream = capture

    logger.info(
        "rate_limit.exceeded",
        extra={
            "client_key": "203.0.113.7",
            "client_ip": "203.0.113.8",
            "redis_url": "redis://:hunter2@cache:6379/0",
            "limit": 5,
        },
    )

    output = stream.getvalue()
    assert "203.0.113" not in output
    assert "hunter2" not in output
    assert json.loads(output)["limit"] == 5


def test_safe_limiter_fields_pass_through(capture):
    logger, stream = capture

    logger.info(
        "rate_limit.allowed",
        extra={
            "rule": "api",
            "key_hash": hash_identifier("1.2.3.4"),
            "remaining": 4,
            "window_s": 60,
        },
    )

    record = json.loads(stream.getvalue())
    assert record["message"] == "rate_limit.allowed"
    assert record["rule"] == "api"
    assert record["remaining"] == 4
    assert "[REDACTED]" not in stream.getvalue()


def test_sensitive_filter_redacts_nested_headers(capture):
    logger, stream = capture

    logger.info(
        "request.received",
        extra={
            "headers": {
                "X-Forwarded-For": "198.51.100.1",
                "x-api-key": "secret-key",
                "user-agent": "pytest",
            },
        },
    )

    output = stream.getvalue()
    assert "secret-key" not in output
    assert "198.51.100.1" not in output
    assert "pytest" in output


def test_request_id_from_context_is_included(capture):
    logger, stream = capture
    set_request_id("req-abc")

    logger.info("settings.updated")

    assert json.loads(stream.getvalue())["request_id"] == "req-abc"


def test_hash_identifier_is_stable_and_short():
    assert hash_identifier("1.2.3.4") == hash_identifier("1.2.3.4")
    assert hash_identifier("1.2.3.4") != hash_identifier("1.2.3.5")
    assert len(hash_identifier("1.2.3.4")) == 16
