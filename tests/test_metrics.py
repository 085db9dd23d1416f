"""Tests for the Prometheus metrics recorder."""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from observable_api.observability.metrics import (
    DOWNSTREAM_LATENCY_BUCKETS,
    REQUEST_LATENCY_BUCKETS,
    MetricsRecorder,
    create_registry,
    render_latest,
)
from tests._support import sample

ROUTE = {"method": "GET", "route": "/api/data"}


class _BrokenInstrument:
    def labels(self, *args, **kwargs):
        raise ValueError("incorrect label names")


class TestCounters:
    def test_increment_requests(self, metrics, registry):
        metrics.increment_requests("GET", "/api/data")
        metrics.increment_requests("GET", "/api/data")

        assert sample(registry, "http_requests_total", ROUTE) == 2

    def test_increment_errors(self, metrics, registry):
        metrics.increment_errors("GET", "/api/data")

        assert sample(registry, "http_request_errors_total", ROUTE) == 1
        assert sample(registry, "http_requests_total", ROUTE) == 0

    def test_downstream_calls_are_tagged_by_label(self, metrics, registry):
        metrics.increment_downstream_call("SELECT * FROM users")
        metrics.observe_downstream_call("SELECT * FROM users", 0.03)
        metrics.increment_downstream_call("SELECT * FROM products")
        metrics.observe_downstream_call("SELECT * FROM products", 0.3)

        users = {"query": "SELECT * FROM users"}
        products = {"query": "SELECT * FROM products"}
        assert sample(registry, "db_query_count_total", users) == 1
        assert sample(registry, "db_query_count_total", products) == 1
        assert sample(registry, "db_query_duration_seconds_count", users) == 1
        assert sample(registry, "db_query_duration_seconds_bucket", {**users, "le": "0.05"}) == 1
        assert sample(registry, "db_query_duration_seconds_bucket", {**users, "le": "0.01"}) == 0
        assert sample(registry, "db_query_duration_seconds_bucket", {**products, "le": "0.2"}) == 0
        assert sample(registry, "db_query_duration_seconds_bucket", {**products, "le": "0.5"}) == 1


class TestRequestLatency:
    def test_observation_lands_in_matching_bucket(self, metrics, registry):
        metrics.observe_request_latency("GET", "/api/data", 200, 0.3)

        labels = {**ROUTE, "status": "200"}
        assert sample(registry, "http_request_duration_seconds_count", labels) == 1
        assert sample(registry, "http_request_duration_seconds_sum", labels) == pytest.approx(0.3)
        assert sample(registry, "http_request_duration_seconds_bucket", {**labels, "le": "0.1"}) == 0
        assert sample(registry, "http_request_duration_seconds_bucket", {**labels, "le": "0.5"}) == 1

    def test_status_is_a_label(self, metrics, registry):
        metrics.observe_request_latency("GET", "/api/data", 200, 0.2)
        metrics.observe_request_latency("GET", "/api/data", 500, 0.2)

        assert sample(registry, "http_request_duration_seconds_count", {**ROUTE, "status": "200"}) == 1
        assert sample(registry, "http_request_duration_seconds_count", {**ROUTE, "status": "500"}) == 1

    def test_bucket_boundaries(self, metrics, registry):
        metrics.observe_request_latency("GET", "/api/data", 200, 0.05)
        metrics.observe_downstream_call("q", 0.005)

        for bound in REQUEST_LATENCY_BUCKETS:
            labels = {**ROUTE, "status": "200", "le": str(float(bound))}
            assert sample(registry, "http_request_duration_seconds_bucket", labels) == 1
        for bound in DOWNSTREAM_LATENCY_BUCKETS:
            labels = {"query": "q", "le": str(float(bound))}
            assert sample(registry, "db_query_duration_seconds_bucket", labels) == 1

    def test_configured_buckets(self):
        assert REQUEST_LATENCY_BUCKETS == (0.1, 0.5, 1.0, 2.0, 5.0, 10.0)
        assert DOWNSTREAM_LATENCY_BUCKETS == (0.01, 0.05, 0.1, 0.2, 0.5, 1.0)


class TestConcurrency:
    def test_thread_increments_are_not_lost(self, metrics, registry):
        def work():
            for _ in range(1000):
                metrics.increment_requests("GET", "/api/data")
                metrics.observe_request_latency("GET", "/api/data", 200, 0.05)

        with ThreadPoolExecutor(max_workers=8) as pool:
            for _ in range(8):
                pool.submit(work)

        assert sample(registry, "http_requests_total", ROUTE) == 8000
        assert sample(registry, "http_request_duration_seconds_count", {**ROUTE, "status": "200"}) == 8000

    @pytest.mark.asyncio
    async def test_overlapping_tasks(self, metrics, registry):
        async def work(label):
            await asyncio.sleep(0)
            metrics.increment_downstream_call(label)
            await asyncio.sleep(0)
            metrics.observe_downstream_call(label, 0.01)

        await asyncio.gather(*(work("q") for _ in range(200)))

        assert sample(registry, "db_query_count_total", {"query": "q"}) == 200
        assert sample(registry, "db_query_duration_seconds_count", {"query": "q"}) == 200


class TestFaultTolerance:
    def test_recording_fault_is_logged_not_raised(self, metrics, registry, recording_logger):
        metrics.requests_total = _BrokenInstrument()
        metrics.downstream_duration = _BrokenInstrument()

        metrics.increment_requests("GET", "/api/data")
        metrics.observe_downstream_call("q", 0.1)

        failures = recording_logger.find("metrics_record_failed")
        assert [f["fields"]["instrument"] for f in failures] == [
            "http_requests_total",
            "db_query_duration_seconds",
        ]
        assert failures[0]["level"] == "error"
        assert failures[0]["fields"]["error"] == "incorrect label names"

    def test_error_counter_fault_is_absorbed(self, metrics, recording_logger):
        metrics.request_errors_total = _BrokenInstrument()
        metrics.increment_errors("GET", "/api/data")

        assert recording_logger.messages("error") == ["metrics_record_failed"]


class TestRegistry:
    def test_registries_are_isolated(self):
        first, second = create_registry(False), create_registry(False)
        MetricsRecorder(first).increment_requests("GET", "/api/data")
        MetricsRecorder(second)

        assert sample(first, "http_requests_total", ROUTE) == 1
        assert sample(second, "http_requests_total", ROUTE) == 0

    def test_process_metrics_are_included_by_default(self):
        content, content_type = render_latest(create_registry())

        assert b"python_info" in content
        assert content_type.startswith("text/plain")

    def test_exposition_contains_recorded_series(self, metrics, registry):
        metrics.increment_requests("GET", "/api/data")
        content, _ = render_latest(registry)

        assert b'http_requests_total{method="GET",route="/api/data"} 1.0' in content
