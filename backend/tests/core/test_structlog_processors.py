"""Tests for the structlog processors and logger levels set up by configure_structlog."""

import logging

from asgi_correlation_id.context import correlation_id

from opsdesk.core.logging import (
    QUIET_LOGGERS,
    SERVICE_NAME,
    add_correlation_id,
    add_service_name,
    configure_structlog,
)


def test_correlation_id_added_inside_request():
    token = correlation_id.set("req-42")
    try:
        event = add_correlation_id(None, "info", {"event": "timeline_validation_started"})
    finally:
        correlation_id.reset(token)

    assert event["correlation_id"] == "req-42"


def test_correlation_id_absent_outside_request():
    event = add_correlation_id(None, "info", {"event": "timeline_backlog_drained"})

    assert "correlation_id" not in event


def test_service_name_does_not_override_explicit_value():
    assert add_service_name(None, "info", {})["service"] == SERVICE_NAME
    assert add_service_name(None, "info", {"service": "other"})["service"] == "other"


def test_configure_caps_third_party_loggers():
    configure_structlog(log_level="DEBUG", json_logs=True)

    assert logging.getLogger("opsdesk").level == logging.DEBUG
    for name, level in QUIET_LOGGERS.items():
        assert logging.getLogger(name).level == logging.getLevelName(level)
