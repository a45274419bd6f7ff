"""natpmp-refresh exception taxonomy.

Every custom exception inherits from :class:`NatpmpRefreshError`.  Transport
and HTTP failures are deliberately **not** represented here: the requester
and renewer layers convert them into outcome values (see
:mod:`natpmp_refresh.core.models`) so a single failed request can never
escape as an uncaught fault.

    Layer hierarchy
    ---------------
    NatpmpRefreshError
    ├── ConfigError
    ├── ShutdownRequested
    └── SchedulerError

Usage:

    from natpmp_refresh.core.exceptions import ConfigError

    raise ConfigError("INTERNAL_PORT must be a valid port number") from exc
"""

from __future__ import annotations

import logging

__all__ = [
    "NatpmpRefreshError",
    "ConfigError",
    "ShutdownRequested",
    "SchedulerError",
]

logger = logging.getLogger(__name__)


class NatpmpRefreshError(Exception):
    """Root exception for all natpmp-refresh errors."""


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(NatpmpRefreshError):
    """Raised when the environment configuration is invalid or incomplete.

    Examples:
        - ``NATPMP_SERVICE`` or ``INTERNAL_PORT`` is missing.
        - ``REFRESH_INTERVAL`` is not strictly less than ``DURATION``.
        - Both ``ENABLE_TCP`` and ``ENABLE_UDP`` are false.
    """


# ---------------------------------------------------------------------------
# Lifecycle layer
# ---------------------------------------------------------------------------


class ShutdownRequested(NatpmpRefreshError):
    """Raised at a cancellation point once a graceful shutdown was requested.

    Cancellation points are the retry-delay sleep, the inter-cycle sleep and
    the checkpoint before each protocol renewal.  The scheduler catches this
    and terminates with exit code ``0``.

    Args:
        signame: Name of the signal that triggered shutdown, if known.
    """

    def __init__(self, signame: str | None = None) -> None:
        self.signame = signame
        detail = f" ({signame})" if signame else ""
        super().__init__(f"Shutdown requested{detail}")


class SchedulerError(NatpmpRefreshError):
    """Raised for misuse of the scheduler lifecycle.

    Examples:
        - Calling :meth:`~natpmp_refresh.orchestrator.scheduler.Scheduler.run`
          on a scheduler that has already terminated.
    """
