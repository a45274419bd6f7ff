"""Renewal scheduling, retry, and failure-handling.

Public API
----------
* :func:`~natpmp_refresh.orchestrator.scheduler.run_continuous` — default
  runtime entry-point; renews mappings until a signal or sustained failure
  and returns the process exit code.
* :class:`~natpmp_refresh.orchestrator.scheduler.Scheduler` — the cycle
  loop and consecutive-failure counter, with an injectable cycle callable.
* :func:`~natpmp_refresh.orchestrator.runner.run_once` — single renewal
  cycle; used by ``--once`` mode.
* :func:`~natpmp_refresh.orchestrator.pipeline.run_cycle` — sequential
  per-protocol renewal pass.
* :class:`~natpmp_refresh.orchestrator.renewer.ProtocolRenewer` — one
  protocol, fixed-delay retries, stop at first success.
* :class:`~natpmp_refresh.orchestrator.metrics.LifetimeStats` — cumulative
  cross-cycle statistics.
"""

from natpmp_refresh.orchestrator.metrics import (
    LifetimeStats,
    ProtocolLifetimeStats,
    write_stats_file,
)
from natpmp_refresh.orchestrator.pipeline import run_cycle
from natpmp_refresh.orchestrator.renewer import ProtocolRenewer
from natpmp_refresh.orchestrator.runner import run_once
from natpmp_refresh.orchestrator.scheduler import (
    EXIT_FAILURE,
    EXIT_OK,
    Scheduler,
    SchedulerState,
    run_continuous,
)

__all__ = [
    # Scheduler / lifecycle
    "run_continuous",
    "Scheduler",
    "SchedulerState",
    "EXIT_OK",
    "EXIT_FAILURE",
    # Single-cycle entry-point
    "run_once",
    # Cycle primitives
    "run_cycle",
    "ProtocolRenewer",
    # Lifetime metrics
    "LifetimeStats",
    "ProtocolLifetimeStats",
    "write_stats_file",
]
