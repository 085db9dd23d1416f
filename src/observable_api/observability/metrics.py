"""Prometheus metrics for the request pipeline.

Instruments live on an injected ``CollectorRegistry`` instead of the
prometheus_client global registry, so each process (or test) owns its own set.

prometheus_client values are lock-protected, so overlapping request tasks
can increment and observe concurrently without lost updates.
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    GCCollector,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

from observable_api.observability.logging import StructuredLogger, get_logger

REQUEST_LATENCY_BUCKETS = (0.1, 0.5, 1.0, 2.0, 5.0, 10.0)
DOWNSTREAM_LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.2, 0.5, 1.0)


def create_registry(include_process_metrics: bool = True) -> CollectorRegistry:
    """Create a registry, optionally with the default process collectors."""
    registry = CollectorRegistry()
    if include_process_metrics:
        ProcessCollector(registry=registry)
        PlatformCollector(registry=registry)
        GCCollector(registry=registry)
    return registry


def render_latest(registry: CollectorRegistry) -> tuple[bytes, str]:
    """Render the registry in the Prometheus text exposition format."""
    return generate_latest(registry), CONTENT_TYPE_LATEST


class MetricsRecorder:
    """Request, error and downstream-call instruments behind a label API.

    No method raises: a recording fault is logged as ``metrics_record_failed``
    and the request carries on.
    """

    def __init__(
        self,
        registry: CollectorRegistry,
        logger: StructuredLogger | None = None,
    ) -> None:
        self.registry = registry
        self._logger = logger or get_logger(__name__)

        self.requests_total = Counter(
            "http_requests_total",
            "Total number of HTTP requests",
            ["method", "route"],
            registry=registry,
        )
        self.request_errors_total = Counter(
            "http_request_errors_total",
            "Total number of HTTP request errors",
            ["method", "route"],
            registry=registry,
        )
        self.request_duration = Histogram(
            "http_request_duration_seconds",
            "Duration of HTTP requests in seconds",
            ["method", "route", "status"],
            buckets=REQUEST_LATENCY_BUCKETS,
            registry=registry,
        )
        self.downstream_duration = Histogram(
            "db_query_duration_seconds",
            "Duration of database queries in seconds",
            ["query"],
            buckets=DOWNSTREAM_LATENCY_BUCKETS,
            registry=registry,
        )
        # prometheus_client appends ``_total`` on exposition: db_query_count_total
        self.downstream_calls = Counter(
            "db_query_count",
            "Total number of database queries",
            ["query"],
            registry=registry,
        )

    def _failed(self, instrument: str, exc: Exception, **labels: object) -> None:
        self._logger.error(
            "metrics_record_failed",
            instrument=instrument,
            error=str(exc),
            error_type=type(exc).__name__,
            **labels,
        )

    def increment_requests(self, method: str, route: str) -> None:
        try:
            self.requests_total.labels(method=method, route=route).inc()
        except Exception as e:
            self._failed("http_requests_total", e, method=method, route=route)

    def increment_errors(self, method: str, route: str) -> None:
        try:
            self.request_errors_total.labels(method=method, route=route).inc()
        except Exception as e:
            self._failed("http_request_errors_total", e, method=method, route=route)

    def observe_request_latency(
        self, method: str, route: str, status_code: int, seconds: float
    ) -> None:
        try:
            self.request_duration.labels(
                method=method, route=route, status=str(status_code)
            ).observe(seconds)
        except Exception as e:
            self._failed(
                "http_request_duration_seconds", e, method=method, route=route, status=status_code
            )

    def observe_downstream_call(self, label: str, seconds: float) -> None:
        try:
            self.downstream_duration.labels(query=label).observe(seconds)
        except Exception as e:
            self._failed("db_query_duration_seconds", e, query=label)

    def increment_downstream_call(self, label: str) -> None:
        try:
            self.downstream_calls.labels(query=label).inc()
        except Exception as e:
            self._failed("db_query_count", e, query=label)
