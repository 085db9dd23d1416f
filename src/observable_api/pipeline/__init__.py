"""The observable request pipeline and its dependency calls."""

from observable_api.pipeline.downstream import (
    CallFailure,
    CallSuccess,
    DownstreamCallResult,
    DownstreamSimulator,
)
from observable_api.pipeline.external import ExternalClient
from observable_api.pipeline.orchestrator import PipelineResponse, RequestOrchestrator

__all__ = [
    "CallFailure",
    "CallSuccess",
    "DownstreamCallResult",
    "DownstreamSimulator",
    "ExternalClient",
    "PipelineResponse",
    "RequestOrchestrator",
]
