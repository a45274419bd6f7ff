"""Cumulative cross-cycle statistics for natpmp-refresh.

Tracks lifetime totals across all renewal cycles and provides two output
paths:

1. **Log summary** — :meth:`LifetimeStats.format_summary` returns a
   human-readable string logged once at shutdown (and at DEBUG after every
   cycle).
2. **JSON stats file** — :func:`write_stats_file` serialises
   :meth:`LifetimeStats.as_dict` to the path in ``NATPMP_REFRESH_STATS_PATH``
   after every cycle.  Unset means no file is written.  Operators can then
   ``docker exec <container> cat <path>`` to see the last granted external
   ports.

Write errors are logged at WARNING level and never propagated.
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime

from natpmp_refresh.core.models import CycleResult, Protocol, RenewalSuccess

__all__ = [
    "STATS_PATH",
    "ProtocolLifetimeStats",
    "LifetimeStats",
    "write_stats_file",
]

logger = logging.getLogger(__name__)

#: Destination for the JSON stats snapshot; empty disables the file.
STATS_PATH: str = os.environ.get("NATPMP_REFRESH_STATS_PATH", "")


@dataclass
class ProtocolLifetimeStats:
    """Accumulated counters for one protocol across all completed cycles.

    Attributes:
        protocol: The protocol these counters belong to.
        renewed: Cycles in which the mapping was renewed.
        failed: Cycles in which every attempt failed.
        attempts: Total HTTP requests made for this protocol.
        last_external_port: External port from the latest successful
            renewal whose response carried one.
        last_renewed_at: UTC time of the latest successful renewal.
    """

    protocol: Protocol
    renewed: int = 0
    failed: int = 0
    attempts: int = 0
    last_external_port: int | None = None
    last_renewed_at: datetime | None = None


@dataclass
class LifetimeStats:
    """Cumulative statistics accumulated across all completed cycles.

    Attributes:
        cycles_run: Completed cycles, successful or not.
        failed_cycles: Cycles in which no protocol was renewed.
    """

    cycles_run: int = 0
    failed_cycles: int = 0

    _start_monotonic: float = field(default_factory=time.monotonic, repr=False)
    _started_at: datetime = field(
        default_factory=lambda: datetime.now(UTC),
        repr=False,
    )
    _protocols: dict[Protocol, ProtocolLifetimeStats] = field(
        default_factory=dict,
        repr=False,
    )

    @property
    def uptime_s(self) -> float:
        """Seconds since this :class:`LifetimeStats` instance was created."""
        return time.monotonic() - self._start_monotonic

    @property
    def protocols(self) -> dict[Protocol, ProtocolLifetimeStats]:
        """Per-protocol lifetime stats, keyed by protocol."""
        return self._protocols

    def update(self, cycle: CycleResult) -> None:
        """Accumulate a completed cycle into lifetime totals."""
        self.cycles_run += 1
        if not cycle.any_success:
            self.failed_cycles += 1

        for protocol, outcome in cycle.outcomes.items():
            p = self._protocols.setdefault(protocol, ProtocolLifetimeStats(protocol=protocol))
            p.attempts += outcome.attempts
            if isinstance(outcome, RenewalSuccess):
                p.renewed += 1
                p.last_renewed_at = datetime.now(UTC)
                if outcome.external_port is not None:
                    p.last_external_port = outcome.external_port
            else:
                p.failed += 1

    def format_summary(self) -> str:
        """Return a human-readable multi-line lifetime summary.

        Example output::

            lifetime stats — uptime: 2h14m22s | cycles=179 failed_cycles=1
              tcp: renewed=178 failed=1 attempts=183 external_port=40123
              udp: renewed=179 failed=0 attempts=179 external_port=40123
        """
        hours, rem = divmod(int(self.uptime_s), 3600)
        minutes, seconds = divmod(rem, 60)

        lines = [
            f"lifetime stats — uptime: {hours}h{minutes:02d}m{seconds:02d}s | "
            f"cycles={self.cycles_run} failed_cycles={self.failed_cycles}"
        ]
        for p in sorted(self._protocols.values(), key=lambda x: x.protocol):
            port = p.last_external_port if p.last_external_port is not None else "-"
            lines.append(
                f"  {p.protocol}: renewed={p.renewed} failed={p.failed} "
                f"attempts={p.attempts} external_port={port}"
            )
        return "\n".join(lines)

    def as_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of lifetime stats."""
        return {
            "started_at": self._started_at.isoformat(),
            "uptime_s": round(self.uptime_s, 1),
            "cycles_run": self.cycles_run,
            "failed_cycles": self.failed_cycles,
            "protocols": {
                str(proto): {
                    "renewed": p.renewed,
                    "failed": p.failed,
                    "attempts": p.attempts,
                    "last_external_port": p.last_external_port,
                    "last_renewed_at": (
                        p.last_renewed_at.isoformat() if p.last_renewed_at else None
                    ),
                }
                for proto, p in sorted(self._protocols.items())
            },
        }


def write_stats_file(stats: LifetimeStats, path: str = STATS_PATH) -> None:
    """Write a JSON snapshot of *stats* to *path* (no-op when *path* is empty).

    Args:
        stats: Current :class:`LifetimeStats` instance to serialise.
        path: Destination file path.  Defaults to :data:`STATS_PATH`.
    """
    if not path:
        return
    try:
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(stats.as_dict(), fh, indent=2)
    except OSError:
        logger.warning("Failed to write stats file '%s'.", path, exc_info=True)
