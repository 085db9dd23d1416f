"""Per-request correlation context.

Every inbound request gets exactly one ``CorrelationContext``. Its
``request_id`` ties together the span, the metric observations and the log
entries produced while handling that request.

Identifiers are independent UUID4 values, so contexts can be created at any
rate from any task without a shared counter or lock.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class CorrelationContext:
    """Immutable identity and timing anchor for one request."""

    request_id: str
    method: str
    route: str
    started_at: float = field(default_factory=time.perf_counter)
    received_at: datetime = field(default_factory=utcnow)

    @classmethod
    def create(cls, method: str, route: str) -> CorrelationContext:
        """Create a fresh context with a new 128-bit random identifier."""
        return cls(request_id=str(uuid.uuid4()), method=method, route=route)

    def elapsed_seconds(self) -> float:
        """Seconds since the context was created, from the monotonic clock."""
        return time.perf_counter() - self.started_at
