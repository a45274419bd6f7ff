"""Core domain models, settings, logging configuration, and shared utilities."""

from natpmp_refresh.core.exceptions import (
    ConfigError,
    NatpmpRefreshError,
    SchedulerError,
    ShutdownRequested,
)
from natpmp_refresh.core.logging_config import JsonFormatter, configure_logging
from natpmp_refresh.core.models import (
    CycleResult,
    HttpResponse,
    Protocol,
    RenewalFailure,
    RenewalRequest,
    RenewalSuccess,
    TransportFailure,
)
from natpmp_refresh.core.settings import Settings, load_settings
from natpmp_refresh.core.shutdown import ShutdownToken, handle_signals

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Domain models
    "Protocol",
    "RenewalRequest",
    "HttpResponse",
    "TransportFailure",
    "RenewalSuccess",
    "RenewalFailure",
    "CycleResult",
    # Settings
    "Settings",
    "load_settings",
    # Lifecycle
    "ShutdownToken",
    "handle_signals",
    # Exceptions
    "NatpmpRefreshError",
    "ConfigError",
    "ShutdownRequested",
    "SchedulerError",
]
