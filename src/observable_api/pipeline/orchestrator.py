"""Request orchestrator: the observable ``GET /api/data`` pipeline.

Flow for one request:

1. Create the correlation context, start the span, log receipt and count
   the request.
2. Fetch the external payload (the only step that can fail).
3. Run each configured downstream query in order.
4. Log completion, including an illustrative external-API latency.
5./6. Build the 200 or 500 response.
7. Always: finish the span and observe the request latency with the actual
   status.

Every dependency call, the external one included, gets one latency
observation and one count increment under its own label, whatever the
request's final outcome.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from observable_api.core.context import CorrelationContext
from observable_api.core.errors import ExternalCallError
from observable_api.core.settings import Settings
from observable_api.observability.logging import StructuredLogger, get_logger
from observable_api.observability.metrics import MetricsRecorder
from observable_api.observability.tracing import SpanHandle, SpanRecorder
from observable_api.pipeline.downstream import DownstreamSimulator
from observable_api.pipeline.external import ExternalClient

DEFAULT_QUERIES = ("SELECT * FROM users", "SELECT * FROM products")
FAILURE_MESSAGE = "Failed to fetch data"


@dataclass(frozen=True)
class PipelineResponse:
    """Status code and JSON body returned to the routing layer."""

    status_code: int
    body: dict[str, Any]

    @property
    def request_id(self) -> str:
        return self.body["requestId"]

    @classmethod
    def success(cls, data: Any, request_id: str) -> PipelineResponse:
        return cls(200, {"data": data, "requestId": request_id})

    @classmethod
    def failure(cls, request_id: str) -> PipelineResponse:
        return cls(500, {"error": FAILURE_MESSAGE, "requestId": request_id})


class RequestOrchestrator:
    """Drive one request through the external call and downstream queries."""

    def __init__(
        self,
        external: ExternalClient,
        downstream: DownstreamSimulator,
        metrics: MetricsRecorder,
        spans: SpanRecorder,
        logger: StructuredLogger | None = None,
        queries: Sequence[str] = DEFAULT_QUERIES,
        operation_name: str = "get-data",
    ):
        self.external = external
        self.downstream = downstream
        self.metrics = metrics
        self.spans = spans
        self.logger = logger or get_logger(__name__)
        self.queries = tuple(queries)
        self.operation_name = operation_name

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        metrics: MetricsRecorder,
        spans: SpanRecorder,
        external: ExternalClient | None = None,
        downstream: DownstreamSimulator | None = None,
    ) -> RequestOrchestrator:
        external = external or ExternalClient(
            settings.external_url, timeout=settings.external_timeout_seconds
        )
        downstream = downstream or DownstreamSimulator(
            settings.downstream_max_delay_seconds,
            settings.synthetic_latency_max_seconds,
        )
        return cls(external, downstream, metrics, spans, queries=settings.downstream_queries)

    async def handle(self, method: str = "GET", route: str = "/api/data") -> PipelineResponse:
        ctx = CorrelationContext.create(method, route)
        span = self.spans.start(
            self.operation_name,
            **{"request.id": ctx.request_id, "http.method": method, "http.route": route},
        )
        self.logger.info(
            "Request received",
            ctx.request_id,
            method=method,
            route=route,
            receivedAt=ctx.received_at.isoformat(),
            traceId=span.trace_id,
        )
        self.metrics.increment_requests(method, route)

        status_code = 500
        try:
            try:
                payload = await self._fetch_external(ctx, span)
            except ExternalCallError as e:
                response = self._fail(ctx, span, e)
            else:
                await self._run_queries(ctx, span)
                self._log_completion(ctx)
                response = PipelineResponse.success(payload, ctx.request_id)
            status_code = response.status_code
            return response
        except Exception as e:
            span.record_error(e)
            raise
        finally:
            span.finish()
            self.metrics.observe_request_latency(
                method, route, status_code, ctx.elapsed_seconds()
            )

    def _record_call(self, label: str, seconds: float) -> None:
        self.metrics.observe_downstream_call(label, seconds)
        self.metrics.increment_downstream_call(label)

    async def _fetch_external(self, ctx: CorrelationContext, span: SpanHandle) -> Any:
        span.log("Fetching external data")
        start = time.perf_counter()
        try:
            payload = await self.external.fetch()
        finally:
            self._record_call(self.external.label, time.perf_counter() - start)
        span.log("External data fetched")
        self.logger.info("External data fetched", ctx.request_id, data=payload)
        return payload

    async def _run_queries(self, ctx: CorrelationContext, span: SpanHandle) -> None:
        for label in self.queries:
            result = await self.downstream.call(label)
            self._record_call(result.label, result.duration_seconds)
            span.log("Database query completed", query=label, durationSeconds=result.duration_seconds)

    def _log_completion(self, ctx: CorrelationContext) -> None:
        self.logger.info("Database queries completed", ctx.request_id, queries=len(self.queries))
        self.logger.info(
            "External API call",
            ctx.request_id,
            externalApi=self.external.label,
            externalApiLatency=self.downstream.synthetic_latency(),
        )

    def _fail(
        self, ctx: CorrelationContext, span: SpanHandle, error: ExternalCallError
    ) -> PipelineResponse:
        span.log("Error fetching data", error=error.reason)
        span.set_error(error.reason)
        self.logger.error(
            "Error fetching data", ctx.request_id, error=error.reason, **error.context.to_dict()
        )
        self.metrics.increment_errors(ctx.method, ctx.route)
        return PipelineResponse.failure(ctx.request_id)
