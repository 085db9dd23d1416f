"""OpenTelemetry tracing configuration and the per-request span wrapper."""

from __future__ import annotations

import platform
from enum import Enum
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.sdk.trace.sampling import ALWAYS_ON, Sampler, TraceIdRatioBased
from opentelemetry.trace import Status, StatusCode

from observable_api.core.settings import Settings, get_settings
from observable_api.observability.logging import StructuredLogger, get_logger

TRACER_NAME = "observable_api"

_PRIMITIVES = (str, bool, int, float)


def build_sampler(rate: float) -> Sampler:
    """Always-sample at rate 1.0, otherwise sample by trace id ratio."""
    if rate >= 1.0:
        return ALWAYS_ON
    return TraceIdRatioBased(rate)


def configure_tracing(
    settings: Settings | None = None,
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """Build a tracer provider for the service.

    Finished spans go to ``exporter`` when one is given (tests), otherwise to
    the OTLP collector at ``otlp_endpoint`` when tracing is enabled.
    """
    settings = settings or get_settings()

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": settings.service_version,
            "process.runtime.version": platform.python_version(),
        }
    )
    provider = TracerProvider(resource=resource, sampler=build_sampler(settings.trace_sample_rate))

    if exporter is not None:
        provider.add_span_processor(SimpleSpanProcessor(exporter))
    elif settings.tracing_enabled:
        otlp = OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=True)
        provider.add_span_processor(BatchSpanProcessor(otlp))

    if settings.trace_log_spans:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    return provider


def shutdown_tracing(provider: TracerProvider, logger: StructuredLogger | None = None) -> None:
    """Flush and shut down the provider; failures are logged, not raised."""
    try:
        provider.shutdown()
    except Exception as e:
        (logger or get_logger(__name__)).error("tracing_shutdown_failed", error=str(e))


def _span_attributes(attributes: dict[str, Any]) -> dict[str, Any]:
    # OpenTelemetry only accepts primitive attribute values.
    return {
        key: value if isinstance(value, _PRIMITIVES) else str(value)
        for key, value in attributes.items()
        if value is not None
    }


class SpanState(str, Enum):
    """Span lifecycle states."""

    ACTIVE = "active"
    FINISHED = "finished"


class SpanHandle:
    """One request's span: ``log`` any number of events, then ``finish`` once.

    Misuse after ``finish`` (another ``log`` or ``finish``) is reported to the
    structured log and otherwise ignored.
    """

    def __init__(self, span: trace.Span, operation_name: str, logger: StructuredLogger):
        self._span = span
        self._logger = logger
        self.operation_name = operation_name
        self.events: list[tuple[str, dict[str, Any]]] = []
        self.state = SpanState.ACTIVE

    @property
    def finished(self) -> bool:
        return self.state is SpanState.FINISHED

    @property
    def trace_id(self) -> str:
        return format(self._span.get_span_context().trace_id, "032x")

    def log(self, event: str, **attributes: Any) -> None:
        if self.finished:
            self._logger.error(
                "span_log_after_finish", operation=self.operation_name, event=event
            )
            return
        self.events.append((event, dict(attributes)))
        try:
            self._span.add_event(event, attributes=_span_attributes(attributes))
        except Exception as e:
            self._logger.error("span_event_failed", event=event, error=str(e))

    def set_error(self, description: str) -> None:
        if self.finished:
            self._logger.error("span_log_after_finish", operation=self.operation_name)
            return
        try:
            self._span.set_status(Status(StatusCode.ERROR, description))
        except Exception as e:
            self._logger.error("span_status_failed", error=str(e))

    def record_error(self, exc: BaseException) -> None:
        """Log an ``exception`` event for ``exc`` and mark the span as failed."""
        self.log(
            "exception",
            **{"exception.type": type(exc).__name__, "exception.message": str(exc)},
        )
        self.set_error(str(exc) or type(exc).__name__)

    def finish(self) -> None:
        if self.finished:
            self._logger.error("span_already_finished", operation=self.operation_name)
            return
        self.state = SpanState.FINISHED
        try:
            self._span.end()
        except Exception as e:
            self._logger.error(
                "span_flush_failed", operation=self.operation_name, error=str(e)
            )


class SpanRecorder:
    """Starts request spans on an injected tracer."""

    def __init__(self, tracer: trace.Tracer, logger: StructuredLogger | None = None):
        self._tracer = tracer
        self._logger = logger or get_logger(__name__)

    @classmethod
    def from_provider(
        cls, provider: TracerProvider, logger: StructuredLogger | None = None
    ) -> SpanRecorder:
        return cls(provider.get_tracer(TRACER_NAME), logger)

    def start(self, operation_name: str, **attributes: Any) -> SpanHandle:
        span = self._tracer.start_span(operation_name, attributes=_span_attributes(attributes))
        return SpanHandle(span, operation_name, self._logger)
