"""Core types: settings, errors and the per-request correlation context."""

from observable_api.core.context import CorrelationContext
from observable_api.core.errors import (
    ConfigurationError,
    ErrorCategory,
    ExternalCallError,
    ObservableApiError,
)
from observable_api.core.settings import Settings, get_settings

__all__ = [
    "CorrelationContext",
    "ConfigurationError",
    "ErrorCategory",
    "ExternalCallError",
    "ObservableApiError",
    "Settings",
    "get_settings",
]
