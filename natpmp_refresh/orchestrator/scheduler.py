"""Renewal scheduler and process lifecycle.

Drives renewal cycles forever at a fixed ``REFRESH_INTERVAL`` and owns the
only mutable state that survives a cycle: the consecutive-failure counter.

State machine
~~~~~~~~~~~~~
::

    RUNNING ──(shutdown observed at a sleep/checkpoint)──▶ SHUTTING_DOWN
       │                                                        │
       │ (consecutive failures reach MAX_CONSECUTIVE_FAILURES)  │
       ▼                                                        ▼
    TERMINATED(exit_code=1)                         TERMINATED(exit_code=0)

Each RUNNING iteration:

1. Run one cycle (:func:`~natpmp_refresh.orchestrator.pipeline.run_cycle`).
2. Any protocol renewed → counter reset to 0.  Otherwise counter + 1, and
   reaching the maximum terminates with exit code 1.
3. Sleep ``refresh_interval`` on the
   :class:`~natpmp_refresh.core.shutdown.ShutdownToken`, then loop.

Graceful shutdown
~~~~~~~~~~~~~~~~~
:func:`run_continuous` routes SIGTERM and SIGINT to the shutdown token via
:func:`~natpmp_refresh.core.shutdown.handle_signals`.  The inter-cycle sleep and retry
delays wake immediately; an in-flight HTTP request is allowed to finish, but
no further attempt or cycle starts.  The handlers are removed when the
agent returns.

Typical usage::

    import asyncio
    from natpmp_refresh.core.settings import load_settings
    from natpmp_refresh.orchestrator.scheduler import run_continuous

    exit_code = asyncio.run(run_continuous(load_settings()))
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Awaitable, Callable
from enum import StrEnum

from natpmp_refresh.client.http_client import ForwardServiceClient
from natpmp_refresh.core.exceptions import SchedulerError, ShutdownRequested
from natpmp_refresh.core.models import CycleResult
from natpmp_refresh.core.settings import Settings
from natpmp_refresh.core.shutdown import ShutdownToken, handle_signals
from natpmp_refresh.orchestrator.metrics import STATS_PATH, LifetimeStats, write_stats_file
from natpmp_refresh.orchestrator.pipeline import run_cycle
from natpmp_refresh.orchestrator.renewer import ProtocolRenewer

__all__ = [
    "HEARTBEAT_PATH",
    "EXIT_OK",
    "EXIT_FAILURE",
    "SchedulerState",
    "Scheduler",
    "run_continuous",
]

logger = logging.getLogger(__name__)

#: Path to the heartbeat file written after every cycle.  A container
#: health check can compare its timestamp against ``REFRESH_INTERVAL`` plus
#: the worst-case retry time to detect a hung agent.
HEARTBEAT_PATH: str = os.environ.get(
    "NATPMP_REFRESH_HEARTBEAT_PATH", "/tmp/natpmp_refresh_heartbeat"
)

EXIT_OK: int = 0
EXIT_FAILURE: int = 1

#: Runs cycle number N and returns its result.
CycleFn = Callable[[int], Awaitable[CycleResult]]


def _write_heartbeat(path: str = HEARTBEAT_PATH) -> None:
    """Write the current epoch timestamp to the heartbeat file.

    Errors are logged at WARNING level and never propagated.
    """
    if not path:
        return
    try:
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(str(time.time()))
    except OSError:
        logger.warning("Failed to write heartbeat file '%s'.", path, exc_info=True)


class SchedulerState(StrEnum):
    """Lifecycle states of :class:`Scheduler`."""

    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class Scheduler:
    """Owns the cycle loop, the failure counter, and the exit decision.

    Args:
        cycle: Coroutine function running cycle number N.  Injected so the
            loop can be exercised without any HTTP machinery.
        settings: Provides ``refresh_interval`` and
            ``max_consecutive_failures``.
        shutdown: Token observed at every sleep.  A fresh one is created
            when omitted.
        stats: Lifetime statistics accumulator.
        heartbeat_path: Heartbeat file; empty disables it.
        stats_path: JSON stats file; empty disables it.

    Attributes:
        state: Current :class:`SchedulerState`.
        consecutive_failures: Fully failed cycles in a row.
        cycles_run: Cycles completed so far.
        exit_code: ``None`` until terminated, then ``0`` or ``1``.
    """

    def __init__(
        self,
        cycle: CycleFn,
        settings: Settings,
        shutdown: ShutdownToken | None = None,
        stats: LifetimeStats | None = None,
        *,
        heartbeat_path: str = HEARTBEAT_PATH,
        stats_path: str = STATS_PATH,
    ) -> None:
        self._cycle = cycle
        self._refresh_interval = settings.refresh_interval
        self._max_failures = settings.max_consecutive_failures
        self._shutdown = shutdown or ShutdownToken()
        self.stats = stats or LifetimeStats()
        self._heartbeat_path = heartbeat_path
        self._stats_path = stats_path

        self.state = SchedulerState.RUNNING
        self.consecutive_failures = 0
        self.cycles_run = 0
        self.exit_code: int | None = None

    @property
    def shutdown(self) -> ShutdownToken:
        return self._shutdown

    # ------------------------------------------------------------------
    # Failure counter
    # ------------------------------------------------------------------

    def record_cycle(self, result: CycleResult) -> bool:
        """Update the failure counter from *result*.

        Returns:
            ``True`` if the counter has reached the configured maximum and
            the scheduler must terminate with :data:`EXIT_FAILURE`.
        """
        if result.any_success:
            self.consecutive_failures = 0
            return False

        self.consecutive_failures += 1
        logger.warning(
            "⚠ All protocols failed. Consecutive failures: %d/%d",
            self.consecutive_failures,
            self._max_failures,
        )
        return self.consecutive_failures >= self._max_failures

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self) -> int:
        """Run cycles until shutdown or sustained failure.

        Returns:
            :data:`EXIT_OK` after a graceful shutdown, :data:`EXIT_FAILURE`
            once the consecutive-failure limit is reached.

        Raises:
            SchedulerError: If the scheduler has already terminated.
        """
        if self.state is not SchedulerState.RUNNING:
            raise SchedulerError(f"Scheduler cannot run from state {self.state!r}")

        try:
            while True:
                self._shutdown.raise_if_requested()
                result = await self._run_one_cycle(self.cycles_run + 1)

                if self.record_cycle(result):
                    self._log_fatal()
                    return self._terminate(EXIT_FAILURE)

                logger.info("Sleeping %ds until next renewal...", self._refresh_interval)
                await self._shutdown.sleep(self._refresh_interval)
        except ShutdownRequested as exc:
            self.state = SchedulerState.SHUTTING_DOWN
            logger.info(
                "Graceful shutdown complete (signal: %s) after %d cycle(s).",
                exc.signame or "n/a",
                self.cycles_run,
            )
            return self._terminate(EXIT_OK)

    async def _run_one_cycle(self, cycle_number: int) -> CycleResult:
        """Run one cycle; an unexpected error counts as a fully failed cycle."""
        try:
            result = await self._cycle(cycle_number)
        except ShutdownRequested:
            raise
        except Exception:
            logger.exception("Unhandled exception in cycle %d — counted as failed.", cycle_number)
            result = CycleResult(cycle_number=cycle_number)

        self.cycles_run += 1
        self.stats.update(result)
        _write_heartbeat(self._heartbeat_path)
        write_stats_file(self.stats, self._stats_path)
        logger.debug("%s", self.stats.format_summary())
        return result

    def _terminate(self, exit_code: int) -> int:
        self.state = SchedulerState.TERMINATED
        self.exit_code = exit_code
        return exit_code

    def _log_fatal(self) -> None:
        logger.error(
            "Reached maximum consecutive failures (%d). "
            "Exiting due to persistent connectivity issues. Please check:\n"
            "  - NAT-PMP service is running and accessible\n"
            "  - Network connectivity is stable\n"
            "  - API token is valid (if using authentication)",
            self._max_failures,
        )


# ---------------------------------------------------------------------------
# Public entry-point
# ---------------------------------------------------------------------------


def _log_banner(settings: Settings) -> None:
    if settings.auth_configured:
        logger.info("Using Bearer token authentication")
    else:
        logger.warning("No API_TOKEN set - running without authentication")

    logger.info("Starting NAT-PMP refresh service...")
    logger.info("Service: %s", settings.forward_url)
    logger.info("Internal Port: %d", settings.internal_port)
    logger.info("Protocols: %s", " ".join(settings.protocols))
    logger.info("Duration: %ds", settings.duration)
    logger.info("Refresh Interval: %ds", settings.refresh_interval)
    logger.info("Max Retries: %d", settings.max_retries)
    logger.info("Retry Delay: %ds", settings.retry_delay)
    logger.info("Max Consecutive Failures: %d", settings.max_consecutive_failures)


async def run_continuous(
    settings: Settings,
    client: ForwardServiceClient | None = None,
    shutdown: ShutdownToken | None = None,
) -> int:
    """Keep the mappings alive until a signal or sustained failure.

    Args:
        settings: Validated agent settings.
        client: Requester to use; a :class:`ForwardServiceClient` with
            ``settings.request_timeout`` is created when ``None``.
        shutdown: Token to observe.  Created when ``None``; SIGTERM and
            SIGINT are wired to it either way.

    Returns:
        The process exit code: :data:`EXIT_OK` or :data:`EXIT_FAILURE`.
    """
    if client is None:
        client = ForwardServiceClient(timeout=settings.request_timeout)
    if shutdown is None:
        shutdown = ShutdownToken()

    _log_banner(settings)

    with handle_signals(shutdown):
        async with client:
            renewer = ProtocolRenewer(client, settings, shutdown)

            async def _cycle(cycle_number: int) -> CycleResult:
                return await run_cycle(
                    renewer,
                    settings.protocols,
                    internal_port=settings.internal_port,
                    cycle_number=cycle_number,
                )

            scheduler = Scheduler(_cycle, settings, shutdown)
            exit_code = await scheduler.run()
            logger.info("%s", scheduler.stats.format_summary())
            return exit_code
