"""
Telemetry module for structured logging and tracing.

This module provides:
- JSONFormatter for structured JSON log output
- TelemetryService for centralized logging and tracing
- external_service_span for timing store transactions
"""

from telemetry.service import (
    JSONFormatter,
    TelemetryService,
    external_service_span,
    get_telemetry_service,
    initialize_telemetry,
    reset_telemetry,
)

__all__ = [
    "JSONFormatter",
    "TelemetryService",
    "external_service_span",
    "get_telemetry_service",
    "initialize_telemetry",
    "reset_telemetry",
]
