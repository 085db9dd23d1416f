"""Simulated downstream dependency calls.

The simulator stands in for a database: each call sleeps for a random
duration up to a fixed ceiling and then succeeds. Randomness and sleeping are
both injectable so tests can run with deterministic, instant delays.
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CallSuccess:
    """Call returned a payload."""

    payload: Any


@dataclass(frozen=True)
class CallFailure:
    """Call failed with a reason."""

    reason: str


@dataclass(frozen=True)
class DownstreamCallResult:
    """Outcome and measured wall time of one dependency call."""

    label: str
    duration_seconds: float
    outcome: CallSuccess | CallFailure

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, CallSuccess)


class DownstreamSimulator:
    """Bounded-random-latency stand-in for downstream queries.

    ``call`` never fails.
    """

    result_payload = {"result": "database result"}

    def __init__(
        self,
        max_delay_seconds: float = 0.5,
        synthetic_max_seconds: float = 0.5,
        *,
        delay: Callable[[float], float] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        self.max_delay_seconds = max_delay_seconds
        self.synthetic_max_seconds = synthetic_max_seconds
        self._rng = rng or random.Random()
        self._delay = delay or self._uniform
        self._sleep = sleep

    def _uniform(self, ceiling: float) -> float:
        return self._rng.uniform(0.0, ceiling)

    async def call(self, label: str) -> DownstreamCallResult:
        start = time.perf_counter()
        await self._sleep(self._delay(self.max_delay_seconds))
        duration = time.perf_counter() - start
        return DownstreamCallResult(
            label=label,
            duration_seconds=duration,
            outcome=CallSuccess(dict(self.result_payload)),
        )

    def synthetic_latency(self) -> float:
        """Illustrative external-API latency value for the completion log."""
        return self._uniform(self.synthetic_max_seconds)
