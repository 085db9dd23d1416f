"""Structured logging with structlog.

Every entry is rendered as one JSON object carrying ``level``, ``message``,
``timestamp``, the fixed ``service`` label and the request's ``requestId``.

Sinks:
- stdout, always (JSON or console renderer).
- Grafana Loki, when ``loki_url`` is configured. Entries are pushed from a
  background ``QueueListener`` thread so the event loop never waits on the
  transport.

Logging is best-effort: neither ``StructuredLogger`` nor ``LokiHandler`` ever
raises into the caller.

Example:
    >>> configure_logging(get_settings())
    >>> log = get_logger("observable_api.pipeline")
    >>> log.info("Request received", request_id="0b6f...")
"""

from __future__ import annotations

import logging
import logging.handlers
import queue
import sys
import time
from enum import Enum
from functools import lru_cache
from typing import Any, TextIO

import httpx
import structlog

from observable_api.core.settings import Settings, get_settings

_listener: logging.handlers.QueueListener | None = None

# Loggers of the HTTP transport used by the Loki sink.
TRANSPORT_LOGGERS = ("httpx", "httpcore")


class LogLevel(str, Enum):
    """Levels the pipeline emits."""

    INFO = "info"
    ERROR = "error"


class LokiHandler(logging.Handler):
    """Push formatted records to the Loki HTTP push API.

    Each record becomes one value in a single stream labelled with the
    handler's fixed label set.
    """

    push_path = "/loki/api/v1/push"

    def __init__(
        self,
        url: str,
        labels: dict[str, str],
        timeout: float = 2.0,
        client: httpx.Client | None = None,
    ) -> None:
        super().__init__()
        self.push_url = url.rstrip("/") + self.push_path
        self.labels = dict(labels)
        self._client = client or httpx.Client(timeout=timeout)

    def build_payload(self, record: logging.LogRecord) -> dict[str, Any]:
        line = self.format(record)
        timestamp_ns = str(int(record.created * 1e9)) if record.created else str(time.time_ns())
        return {"streams": [{"stream": self.labels, "values": [[timestamp_ns, line]]}]}

    def emit(self, record: logging.LogRecord) -> None:
        try:
            response = self._client.post(self.push_url, json=self.build_payload(record))
            response.raise_for_status()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        try:
            self._client.close()
        finally:
            super().close()


class _ExcludeLoggers(logging.Filter):
    """Drop records from the named loggers and their children."""

    def __init__(self, names: tuple[str, ...]):
        super().__init__()
        self.names = names

    def filter(self, record: logging.LogRecord) -> bool:
        return not any(
            record.name == name or record.name.startswith(name + ".") for name in self.names
        )


def _add_service(service_name: str):
    def processor(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return processor


def configure_logging(
    settings: Settings | None = None,
    stream: TextIO | None = None,
    loki_client: httpx.Client | None = None,
) -> None:
    """Configure structlog and the stdlib handlers for the application.

    ``loki_client`` replaces the HTTP client the Loki handler pushes with.
    """
    global _listener
    settings = settings or get_settings()
    shutdown_logging()

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _add_service(settings.service_name),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    json_formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.EventRenamer("message"),
            structlog.processors.JSONRenderer(),
        ],
        foreign_pre_chain=pre_chain,
    )
    if settings.log_format == "json":
        formatter = json_formatter
    else:
        formatter = structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=False),
            foreign_pre_chain=pre_chain,
        )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [handler]

    if settings.loki_url:
        log_queue: queue.SimpleQueue[logging.LogRecord] = queue.SimpleQueue()
        queue_handler = logging.handlers.QueueHandler(log_queue)
        # Loki always receives JSON, whatever the stdout renderer is.
        queue_handler.setFormatter(json_formatter)
        # Pushing logs through httpx must not queue another entry.
        queue_handler.addFilter(_ExcludeLoggers(TRANSPORT_LOGGERS))
        loki = LokiHandler(
            settings.loki_url,
            labels={"app": settings.service_name},
            timeout=settings.loki_timeout_seconds,
            client=loki_client,
        )
        _listener = logging.handlers.QueueListener(log_queue, loki)
        _listener.start()
        handlers.append(queue_handler)

    root = logging.getLogger()
    root.handlers = handlers
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers = handlers
        uv_logger.propagate = False

    # One INFO line per outbound request carries no request id.
    for name in TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def shutdown_logging() -> None:
    """Stop the Loki listener, flushing queued entries."""
    global _listener
    if _listener is None:
        return
    _listener.stop()
    for handler in _listener.handlers:
        handler.close()
    _listener = None


class StructuredLogger:
    """Leveled, correlation-tagged log entries.

    ``log`` is synchronous and never raises; a failing sink must not change
    the outcome of the request being logged.
    """

    def __init__(self, name: str):
        self.name = name
        self._logger = structlog.get_logger(name)

    def log(
        self,
        level: LogLevel | str,
        message: str,
        request_id: str | None = None,
        **fields: Any,
    ) -> None:
        try:
            level_name = LogLevel(level).value
            entry = dict(fields)
            if request_id is not None:
                entry["requestId"] = request_id
            getattr(self._logger, level_name)(message, **entry)
        except Exception:
            # Logging is best-effort.
            pass

    def info(self, message: str, request_id: str | None = None, **fields: Any) -> None:
        self.log(LogLevel.INFO, message, request_id, **fields)

    def error(self, message: str, request_id: str | None = None, **fields: Any) -> None:
        self.log(LogLevel.ERROR, message, request_id, **fields)


@lru_cache(maxsize=100)
def get_logger(name: str) -> StructuredLogger:
    """Get a logger instance."""
    return StructuredLogger(name)
