"""Pytest configuration and fixtures."""

import logging

import pytest
import structlog
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from observable_api.core.settings import Settings, get_settings
from observable_api.observability.logging import TRANSPORT_LOGGERS, get_logger, shutdown_logging
from observable_api.observability.metrics import MetricsRecorder, create_registry
from observable_api.observability.tracing import SpanRecorder, configure_tracing
from observable_api.pipeline.downstream import DownstreamSimulator
from observable_api.pipeline.orchestrator import RequestOrchestrator
from tests._support import (
    EXTERNAL_URL,
    QUERIES,
    RecordingLogger,
    make_external,
    payload_handler,
)

_UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")
_CONFIGURED_LOGGERS = (*_UVICORN_LOGGERS, *TRANSPORT_LOGGERS)


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo configure_logging() so tests stay isolated."""
    root = logging.getLogger()
    root_handlers, root_level = root.handlers[:], root.level
    saved = {
        name: (
            logging.getLogger(name).handlers[:],
            logging.getLogger(name).propagate,
            logging.getLogger(name).level,
        )
        for name in _CONFIGURED_LOGGERS
    }
    yield
    shutdown_logging()
    structlog.reset_defaults()
    get_logger.cache_clear()
    root.handlers = root_handlers
    root.setLevel(root_level)
    for name, (handlers, propagate, level) in saved.items():
        logger = logging.getLogger(name)
        logger.handlers = handlers
        logger.propagate = propagate
        logger.setLevel(level)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        external_url=EXTERNAL_URL,
        downstream_queries=list(QUERIES),
        tracing_enabled=False,
        process_metrics_enabled=False,
    )


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def registry():
    return create_registry(include_process_metrics=False)


@pytest.fixture
def metrics(registry, recording_logger) -> MetricsRecorder:
    return MetricsRecorder(registry, logger=recording_logger)


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def tracer_provider(settings, span_exporter):
    provider = configure_tracing(settings, exporter=span_exporter)
    yield provider
    provider.shutdown()


@pytest.fixture
def spans(tracer_provider, recording_logger) -> SpanRecorder:
    return SpanRecorder.from_provider(tracer_provider, logger=recording_logger)


@pytest.fixture
def downstream() -> DownstreamSimulator:
    return DownstreamSimulator(0.5, 0.5, delay=lambda ceiling: 0.0)


@pytest.fixture
def build_orchestrator(metrics, spans, downstream, recording_logger):
    """Factory: orchestrator whose external call is served by ``handler``."""

    def build(handler=None, **overrides) -> RequestOrchestrator:
        options = {
            "external": make_external(handler or payload_handler()),
            "downstream": downstream,
            "metrics": metrics,
            "spans": spans,
            "logger": recording_logger,
            "queries": QUERIES,
        }
        options.update(overrides)
        return RequestOrchestrator(**options)

    return build
