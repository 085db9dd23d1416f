"""Observable API - one request pipeline, three correlated telemetry surfaces."""

__version__ = "1.0.0"
