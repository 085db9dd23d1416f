"""
Test support utilities for observable-api tests.

Helpers that don't fit as pytest fixtures but are shared across test files:
an in-memory structured logger, metric sample lookup and mock transports for
the external dependency.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx

from observable_api.observability.logging import LogLevel, StructuredLogger
from observable_api.pipeline.external import ExternalClient

EXTERNAL_URL = "https://deps.test/todos/1"
QUERIES = ("SELECT * FROM users", "SELECT * FROM products")


class RecordingLogger(StructuredLogger):
    """StructuredLogger that keeps entries in memory instead of emitting them."""

    def __init__(self) -> None:
        super().__init__("test")
        self.entries: list[dict[str, Any]] = []

    def log(self, level, message, request_id=None, **fields):
        self.entries.append(
            {
                "level": LogLevel(level).value,
                "message": message,
                "requestId": request_id,
                "fields": fields,
            }
        )

    def messages(self, level: str | None = None) -> list[str]:
        return [e["message"] for e in self.entries if level is None or e["level"] == level]

    def find(self, message: str) -> list[dict[str, Any]]:
        return [e for e in self.entries if e["message"] == message]


def sample(registry, name: str, labels: dict[str, str] | None = None) -> float:
    """Current sample value, 0.0 when the series was never touched."""
    value = registry.get_sample_value(name, labels or {})
    return value if value is not None else 0.0


def payload_handler(
    payload: Any = None, status_code: int = 200
) -> Callable[[httpx.Request], httpx.Response]:
    """Mock transport handler answering every request with ``payload``."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=payload if payload is not None else {"id": 1})

    return handler


def refused_handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connect ECONNREFUSED 127.0.0.1:443", request=request)


def make_external(handler: Callable[[httpx.Request], httpx.Response]) -> ExternalClient:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ExternalClient(EXTERNAL_URL, timeout=1.0, client=client)
