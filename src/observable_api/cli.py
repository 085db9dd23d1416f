"""Observable API CLI."""

import asyncio
from collections import Counter
from typing import Optional

import httpx
import typer

from observable_api.core.errors import ConfigurationError
from observable_api.core.settings import Settings, get_settings

app = typer.Typer(
    name="observable-api",
    help="Observable request pipeline: traces, metrics and structured logs",
    no_args_is_help=True,
)

CANNED_PAYLOAD = {"userId": 1, "id": 1, "title": "delectus aut autem", "completed": False}


def _load_settings() -> Settings:
    try:
        return get_settings()
    except ConfigurationError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1) from e


def _offline_transport(fail: bool) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if fail:
            raise httpx.ConnectError("connect ECONNREFUSED", request=request)
        return httpx.Response(200, json=CANNED_PAYLOAD)

    return httpx.MockTransport(handler)


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on changes"),
):
    """Start the API server."""
    import uvicorn

    settings = _load_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    typer.echo(f"Server listening at http://{host}:{port}")
    uvicorn.run(
        "observable_api.api.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload or settings.api_reload,
        log_config=None,
    )


@app.command("simulate")
def simulate(
    requests: int = typer.Option(10, "--requests", "-n", min=1, help="Concurrent requests to run"),
    offline: bool = typer.Option(
        True, "--offline/--online", help="Serve a canned payload instead of calling the external URL"
    ),
    fail: bool = typer.Option(False, "--fail", help="Make every offline external call fail"),
    show_metrics: bool = typer.Option(True, "--metrics/--no-metrics", help="Print pipeline metrics"),
    trace: bool = typer.Option(False, "--trace", help="Export spans to the OTLP endpoint"),
):
    """Run the pipeline in-process and report outcomes."""
    from observable_api.observability.logging import configure_logging, shutdown_logging
    from observable_api.observability.metrics import MetricsRecorder, create_registry, render_latest
    from observable_api.observability.tracing import (
        SpanRecorder,
        configure_tracing,
        shutdown_tracing,
    )
    from observable_api.pipeline.external import ExternalClient
    from observable_api.pipeline.orchestrator import RequestOrchestrator

    settings = _load_settings().model_copy(update={"tracing_enabled": trace})
    configure_logging(settings)
    registry = create_registry(include_process_metrics=False)
    provider = configure_tracing(settings)

    client = None
    if offline:
        client = httpx.AsyncClient(transport=_offline_transport(fail))
    external = ExternalClient(settings.external_url, settings.external_timeout_seconds, client)
    orchestrator = RequestOrchestrator.from_settings(
        settings,
        MetricsRecorder(registry),
        SpanRecorder.from_provider(provider),
        external=external,
    )

    async def run() -> list[int]:
        try:
            responses = await asyncio.gather(*(orchestrator.handle() for _ in range(requests)))
        finally:
            await external.aclose()
        return [r.status_code for r in responses]

    try:
        statuses = asyncio.run(run())
    finally:
        shutdown_tracing(provider)
        shutdown_logging()

    typer.echo(f"Completed {len(statuses)} requests")
    for status, count in sorted(Counter(statuses).items()):
        typer.echo(f"  {status}: {count}")

    if show_metrics:
        content, _ = render_latest(registry)
        for line in content.decode().splitlines():
            if line and not line.startswith("#") and "_created" not in line:
                typer.echo(line)


@app.command("version")
def version():
    """Show the service name and version."""
    settings = _load_settings()
    typer.echo(f"{settings.service_name} {settings.service_version}")


if __name__ == "__main__":
    app()
