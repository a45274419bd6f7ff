"""Orchestrator entry-point for a single renewal cycle.

:func:`run_once` opens the HTTP requester, renews every enabled protocol
once via :func:`~natpmp_refresh.orchestrator.pipeline.run_cycle`, and closes
the requester again.  It backs the ``--once`` CLI mode, which is handy for
checking credentials and connectivity before deploying the long-running
agent.

Typical usage::

    import asyncio
    from natpmp_refresh.core.settings import load_settings
    from natpmp_refresh.orchestrator.runner import run_once

    result = asyncio.run(run_once(load_settings()))
    print(result.any_success)
"""

from __future__ import annotations

import logging

from natpmp_refresh.client.http_client import ForwardServiceClient
from natpmp_refresh.core.models import CycleResult
from natpmp_refresh.core.settings import Settings
from natpmp_refresh.core.shutdown import ShutdownToken, handle_signals
from natpmp_refresh.orchestrator.pipeline import run_cycle
from natpmp_refresh.orchestrator.renewer import ProtocolRenewer

__all__ = ["run_once"]

logger = logging.getLogger(__name__)


async def run_once(
    settings: Settings,
    client: ForwardServiceClient | None = None,
    shutdown: ShutdownToken | None = None,
) -> CycleResult:
    """Execute exactly one renewal cycle.

    Args:
        settings: Validated agent settings.
        client: Requester to use.  A new :class:`ForwardServiceClient` with
            ``settings.request_timeout`` is created when ``None``.  The
            client is closed on return either way.
        shutdown: Token for the retry sleeps.  Created when ``None``;
            SIGTERM and SIGINT are wired to it either way.

    Returns:
        The :class:`~natpmp_refresh.core.models.CycleResult` of the cycle.

    Raises:
        ShutdownRequested: If a signal arrives (or *shutdown* fires) before
            or during the cycle.
    """
    if client is None:
        client = ForwardServiceClient(timeout=settings.request_timeout)
    if shutdown is None:
        shutdown = ShutdownToken()

    with handle_signals(shutdown):
        async with client:
            renewer = ProtocolRenewer(client, settings, shutdown)
            return await run_cycle(
                renewer,
                settings.protocols,
                internal_port=settings.internal_port,
            )
