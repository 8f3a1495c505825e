"""
Unit tests for the telemetry service.

Tests cover the JSON log format, the tracing fallback when no endpoint is
configured, and the span helper that wraps store transactions.
"""

import json
import logging
import sys
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from telemetry.service import (
    JSONFormatter,
    TelemetryService,
    external_service_span,
    get_telemetry_service,
    initialize_telemetry,
    reset_telemetry,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    """TelemetryService reconfigures the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    reset_telemetry()
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(message, extra_data=None, exc_info=None):
    record = logging.LogRecord(
        name="session.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=42,
        msg=message,
        args=(),
        exc_info=exc_info,
    )
    if extra_data is not None:
        record.extra_data = extra_data
    return record


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_basic_fields(self):
        output = json.loads(JSONFormatter().format(make_record("hello")))

        assert output["level"] == "WARNING"
        assert output["message"] == "hello"
        assert output["logger"] == "session.test"
        assert output["line"] == 42
        assert output["timestamp"].endswith("Z")

    def test_extra_data_is_merged(self):
        record = make_record("op", extra_data={"operation": "set", "duration_ms": 1.5})

        output = json.loads(JSONFormatter().format(record))

        assert output["operation"] == "set"
        assert output["duration_ms"] == 1.5

    def test_exception_is_formatted(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = make_record("failed", exc_info=sys.exc_info())

        output = json.loads(JSONFormatter().format(record))

        assert "ValueError: bad" in output["exception"]


class TestTelemetryService:
    """Tests for TelemetryService setup."""

    def test_installs_json_handler(self):
        TelemetryService(SimpleNamespace(log_level="DEBUG", otel_endpoint=None))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert any(isinstance(h.formatter, JSONFormatter) for h in root.handlers)

    def test_tracing_disabled_without_endpoint(self):
        service = TelemetryService(SimpleNamespace(log_level="INFO", otel_endpoint=None))

        assert service.tracer is None
        with service.create_span("foundationdb.get") as span:
            span.set_attribute("key", "value")

    def test_initialize_sets_global(self):
        assert get_telemetry_service() is None

        service = initialize_telemetry()

        assert get_telemetry_service() is service


class TestExternalServiceSpan:
    """Tests for external_service_span."""

    def test_noop_without_service(self):
        with external_service_span("foundationdb", "get") as span:
            span.set_attribute("sid", "abc")

    def test_logs_successful_operation(self):
        service = initialize_telemetry()

        with patch.object(service, "log_store_operation") as log_operation:
            with external_service_span("foundationdb", "set"):
                pass

        operation, duration_ms, success = log_operation.call_args.args
        assert operation == "set"
        assert duration_ms >= 0
        assert success is True

    def test_logs_and_reraises_failure(self):
        service = initialize_telemetry()

        with patch.object(service, "log_store_operation") as log_operation:
            with pytest.raises(RuntimeError):
                with external_service_span("foundationdb", "destroy"):
                    raise RuntimeError("conflict")

        args = log_operation.call_args.args
        assert args[0] == "destroy"
        assert args[2] is False
        assert args[3] == "conflict"
