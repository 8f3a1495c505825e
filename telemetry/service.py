"""
Telemetry service for structured logging and tracing.

This module provides structured JSON logging and optional OpenTelemetry
integration. Session store transactions are wrapped in spans named
`foundationdb.<operation>` and reported with their duration, so slow or
failing transactions can be correlated with the requests that issued them.
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional


class JSONFormatter(logging.Formatter):
    """
    Custom log formatter that outputs logs in JSON format.

    Each log entry contains:
    - timestamp: ISO 8601 formatted UTC timestamp
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - message: The log message
    - logger: Name of the logger that produced the entry

    Additional fields can be included via the 'extra_data' attribute
    on the log record.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format a log record as a JSON string.

        Args:
            record: The log record to format

        Returns:
            JSON-formatted string containing the log entry
        """
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        if record.module:
            log_data["module"] = record.module
        if record.funcName and record.funcName != "<module>":
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        if hasattr(record, "extra_data") and record.extra_data:
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_data["stack_trace"] = record.stack_info

        return json.dumps(log_data, default=str)


class TelemetryService:
    """
    Centralized telemetry service for logging and tracing.

    This service provides:
    - Structured JSON logging on stdout
    - OpenTelemetry tracing when an OTLP endpoint is configured
    - Per-operation duration logging for the session store
    """

    def __init__(self, settings: Optional[Any] = None):
        """
        Initialize the telemetry service.

        Args:
            settings: Settings containing log_level, otel_endpoint and
                otel_service_name
        """
        self.settings = settings
        self.tracer = None
        self._logger = None
        self._setup_logging()
        self._setup_tracing()

    def _setup_logging(self) -> None:
        """
        Configure structured JSON logging.

        Sets up the root logger with JSONFormatter and configures
        the log level based on settings.
        """
        log_level_str = "INFO"
        if self.settings and hasattr(self.settings, "log_level"):
            log_level_str = self.settings.log_level

        log_level = getattr(logging, log_level_str.upper(), logging.INFO)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)

        # Remove existing handlers to avoid duplicate logs
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(log_level)
        stdout_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(stdout_handler)

        self._logger = logging.getLogger("telemetry")
        self._logger.info("Telemetry service initialized", extra={
            "extra_data": {"log_level": log_level_str}
        })

    def _setup_tracing(self) -> None:
        """
        Configure OpenTelemetry tracing.

        Tracing stays disabled unless an OTEL endpoint is configured and the
        optional `tracing` extra is installed.
        """
        if not self.settings:
            return

        otel_endpoint = getattr(self.settings, "otel_endpoint", None)
        if not otel_endpoint:
            self._logger.debug("OpenTelemetry endpoint not configured, tracing disabled")
            return

        try:
            from opentelemetry import trace
            from opentelemetry.sdk.trace import TracerProvider
            from opentelemetry.sdk.trace.export import BatchSpanProcessor
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
            from opentelemetry.sdk.resources import Resource, SERVICE_NAME

            service_name = getattr(self.settings, "otel_service_name", "fdb-session-store")

            provider = TracerProvider(resource=Resource(attributes={
                SERVICE_NAME: service_name
            }))
            provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=otel_endpoint))
            )
            trace.set_tracer_provider(provider)

            self.tracer = trace.get_tracer(service_name)

            self._logger.info("OpenTelemetry tracing configured", extra={
                "extra_data": {
                    "otel_endpoint": otel_endpoint,
                    "service_name": service_name
                }
            })
        except ImportError as e:
            self._logger.warning(
                "OpenTelemetry packages not installed, tracing disabled",
                extra={"extra_data": {"error": str(e)}}
            )

    def log_store_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        """
        Log a completed session store transaction.

        Args:
            operation: Store operation name (get, set, destroy, ...)
            duration_ms: Wall time of the transaction in milliseconds
            success: Whether the transaction committed
            error: Error message if the transaction failed
        """
        log_data = {
            "operation": operation,
            "duration_ms": round(duration_ms, 3),
            "success": success,
        }
        if error:
            log_data["error"] = error

        level = logging.DEBUG if success else logging.WARNING
        self._logger.log(
            level,
            f"Store operation: {operation}",
            extra={"extra_data": log_data}
        )

    def create_span(self, name: str, attributes: Optional[Dict[str, Any]] = None):
        """
        Create an OpenTelemetry span.

        Returns:
            A span context manager, or a no-op one if tracing is disabled
        """
        if self.tracer:
            return self.tracer.start_as_current_span(name, attributes=attributes)
        return _NoOpSpanContextManager()

    def create_external_service_span(
        self,
        service_name: str,
        operation: str,
        attributes: Optional[Dict[str, Any]] = None
    ):
        """
        Create a span for a call into an external service.

        Args:
            service_name: Name of the external service (e.g. "foundationdb")
            operation: The operation being performed (e.g. "get", "clear")
            attributes: Optional additional attributes for the span
        """
        span_attributes = {
            "service.name": service_name,
            "operation.name": operation,
            "span.kind": "client",
        }
        if attributes:
            span_attributes.update(attributes)

        return self.create_span(f"{service_name}.{operation}", span_attributes)


class _NoOpSpanContextManager:
    """
    No-op context manager for when tracing is not configured.

    This allows code to use span context managers without checking
    if tracing is enabled.
    """

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def record_exception(self, exception: Exception) -> None:
        pass


# Global telemetry service instance
_telemetry_service: Optional[TelemetryService] = None


def get_telemetry_service() -> Optional[TelemetryService]:
    """
    Get the global telemetry service instance.

    Returns:
        The telemetry service instance, or None if not initialized
    """
    return _telemetry_service


def initialize_telemetry(settings: Optional[Any] = None) -> TelemetryService:
    """
    Initialize the global telemetry service.

    Args:
        settings: Settings for configuration

    Returns:
        The initialized telemetry service
    """
    global _telemetry_service
    _telemetry_service = TelemetryService(settings)
    return _telemetry_service


def reset_telemetry() -> None:
    """Forget the global telemetry service (used by tests)."""
    global _telemetry_service
    _telemetry_service = None


@contextmanager
def external_service_span(
    service_name: str,
    operation: str,
    attributes: Optional[Dict[str, Any]] = None
) -> Iterator[Any]:
    """
    Trace and time one external call through the global telemetry service.

    A no-op when telemetry has not been initialized.
    """
    service = _telemetry_service
    if service is None:
        yield _NoOpSpanContextManager()
        return

    started = time.perf_counter()
    with service.create_external_service_span(service_name, operation, attributes) as span:
        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            service.log_store_operation(
                operation, (time.perf_counter() - started) * 1000, False, str(e)
            )
            raise
    service.log_store_operation(operation, (time.perf_counter() - started) * 1000, True)
