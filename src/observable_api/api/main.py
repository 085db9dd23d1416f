"""FastAPI application.

``create_app()`` is the composition root: the metrics registry, tracer
provider and request orchestrator are built once here and handed to the
routes through ``app.state``. Tests pass their own collaborators in.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from opentelemetry.sdk.trace import TracerProvider
from prometheus_client import CollectorRegistry

from observable_api.api.routes import data, health
from observable_api.core.settings import Settings, get_settings
from observable_api.observability.logging import configure_logging, get_logger, shutdown_logging
from observable_api.observability.metrics import MetricsRecorder, create_registry
from observable_api.observability.tracing import SpanRecorder, configure_tracing, shutdown_tracing
from observable_api.pipeline.orchestrator import RequestOrchestrator

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings: Settings = app.state.settings
    if app.state.configure_logging:
        configure_logging(settings)
    logger.info(
        "application_started",
        service=settings.service_name,
        external_url=settings.external_url,
        tracing_enabled=settings.tracing_enabled,
    )

    yield

    await app.state.orchestrator.external.aclose()
    shutdown_tracing(app.state.tracer_provider)
    logger.info("application_stopped")
    if app.state.configure_logging:
        shutdown_logging()


def create_app(
    settings: Settings | None = None,
    *,
    registry: CollectorRegistry | None = None,
    tracer_provider: TracerProvider | None = None,
    orchestrator: RequestOrchestrator | None = None,
    configure_logs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    if orchestrator is not None:
        registry = orchestrator.metrics.registry
    registry = registry or create_registry(settings.process_metrics_enabled)
    tracer_provider = tracer_provider or configure_tracing(settings)

    if orchestrator is None:
        orchestrator = RequestOrchestrator.from_settings(
            settings,
            MetricsRecorder(registry),
            SpanRecorder.from_provider(tracer_provider),
        )

    app = FastAPI(
        title="Observable API",
        description="Request pipeline instrumented with traces, metrics and structured logs",
        version=settings.service_version,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.registry = registry
    app.state.tracer_provider = tracer_provider
    app.state.orchestrator = orchestrator
    app.state.configure_logging = configure_logs

    app.include_router(health.router, tags=["Health"])
    app.include_router(data.router, tags=["Data"])

    return app
