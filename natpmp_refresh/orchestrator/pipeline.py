"""Single renewal cycle: renew every enabled protocol once, in order.

:func:`run_cycle` invokes the
:class:`~natpmp_refresh.orchestrator.renewer.ProtocolRenewer` sequentially
for each enabled protocol (tcp before udp) and collects the outcomes into a
:class:`~natpmp_refresh.core.models.CycleResult`.

A protocol's failure never prevents the remaining protocols from being
attempted.  ``CycleResult.any_success`` is the only thing the scheduler's
failure counter looks at.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable

from natpmp_refresh.core.logging_config import CYCLE_ID_CTX
from natpmp_refresh.core.models import CycleResult, Protocol
from natpmp_refresh.orchestrator.renewer import ProtocolRenewer

__all__ = ["run_cycle"]

logger = logging.getLogger(__name__)


async def run_cycle(
    renewer: ProtocolRenewer,
    protocols: Iterable[Protocol],
    internal_port: int,
    cycle_number: int = 1,
) -> CycleResult:
    """Run one renewal pass over *protocols*.

    Args:
        renewer: Renewer bound to an open HTTP client and the settings.
        protocols: Enabled protocols in renewal order.
        internal_port: Port being renewed (for the cycle banner only).
        cycle_number: 1-based cycle counter used for log correlation.

    Returns:
        The per-protocol outcomes of this cycle.

    Raises:
        ShutdownRequested: If shutdown is observed before a protocol starts
            or during a retry delay.  Outcomes gathered so far are discarded.
    """
    token = CYCLE_ID_CTX.set(f"c{cycle_number}")
    t0 = time.monotonic()
    try:
        logger.info("Requesting NAT-PMP port mappings for port %d...", internal_port)
        result = CycleResult(cycle_number=cycle_number)
        for protocol in protocols:
            result.outcomes[protocol] = await renewer.renew(protocol)
        result.duration_s = time.monotonic() - t0
        logger.info("%s", result.format_cycle_report())
        return result
    finally:
        CYCLE_ID_CTX.reset(token)
