"""Observability - logging, metrics, tracing."""

from observable_api.observability.logging import (
    LogLevel,
    StructuredLogger,
    configure_logging,
    get_logger,
    shutdown_logging,
)
from observable_api.observability.metrics import MetricsRecorder, create_registry, render_latest
from observable_api.observability.tracing import (
    SpanHandle,
    SpanRecorder,
    configure_tracing,
    shutdown_tracing,
)

__all__ = [
    "LogLevel",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "shutdown_logging",
    "MetricsRecorder",
    "create_registry",
    "render_latest",
    "SpanHandle",
    "SpanRecorder",
    "configure_tracing",
    "shutdown_tracing",
]
