"""Tests for structured logging helpers."""

import structlog

from bureau.infrastructure.observability.logging import add_service_context


def test_service_context_adds_timestamp_and_request_id():
    with structlog.contextvars.bound_contextvars(request_id="task-42"):
        event = add_service_context(None, "info", {"event": "delegation"})

    assert event["request_id"] == "task-42"
    assert "timestamp" in event


def test_service_context_keeps_existing_timestamp():
    structlog.contextvars.clear_contextvars()

    event = add_service_context(None, "info", {"event": "x", "timestamp": "2024-01-01T00:00:00+00:00"})

    assert event["timestamp"] == "2024-01-01T00:00:00+00:00"
    assert "request_id" not in event
