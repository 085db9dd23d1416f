"""
Structured error types for the observable API.

The pipeline knows two kinds of failure:

- **Dependency failures** (``ExternalCallError``): the external HTTP call
  failed with a connection error, a timeout or a non-2xx status. These are
  recovered by the orchestrator into a generic 500 response; the detail is
  only ever written to logs and the span.
- **Configuration failures** (``ConfigurationError``): invalid settings at
  process start.

Observability-sink failures (log transport, metric update, span export) are
not represented here at all: they are absorbed at the component boundary
where they occur.

Examples:
    >>> error = ExternalCallError("connect ECONNREFUSED", url="http://dep")
    >>> error.category
    <ErrorCategory.DEPENDENCY: 'DEPENDENCY'>
    >>> error.to_dict()["context"]["url"]
    'http://dep'
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    DEPENDENCY = "DEPENDENCY"  # External call, network, timeout
    CONFIG = "CONFIG"          # Missing or invalid settings
    INTERNAL = "INTERNAL"      # Bugs, unexpected state


@dataclass
class ErrorContext:
    """Structured metadata attached to an error for logging."""

    request_id: str | None = None
    url: str | None = None
    http_status: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["request_id", "url", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ObservableApiError(Exception):
    """Base exception for all observable API errors."""

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ObservableApiError:
        """Add context to this error (fluent API)."""
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class ExternalCallError(ObservableApiError):
    """The external dependency call failed (network error, timeout, non-2xx)."""

    default_category = ErrorCategory.DEPENDENCY

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        http_status: int | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(
            message,
            context=ErrorContext(url=url, http_status=http_status),
            cause=cause,
        )

    @property
    def reason(self) -> str:
        """Short failure reason, suitable for logs and span events."""
        return self.message


class ConfigurationError(ObservableApiError):
    """Settings could not be loaded or are invalid."""

    default_category = ErrorCategory.CONFIG
