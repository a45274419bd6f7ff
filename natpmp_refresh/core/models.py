"""natpmp-refresh core domain models.

Defines the renewal request sent over the wire and the value types every
layer uses to report what happened, so that failures are always explicit,
countable results rather than exceptions:

* :class:`HttpResponse` / :class:`TransportFailure` — what the HTTP requester
  returns for one POST.
* :class:`RenewalSuccess` / :class:`RenewalFailure` — what the protocol
  renewer returns after its retry budget.
* :class:`CycleResult` — per-protocol outcomes of one renewal cycle.

Typical usage::

    from natpmp_refresh.core.models import Protocol, RenewalRequest

    request = RenewalRequest(internal_port=6881, protocol=Protocol.TCP, duration=60)
    payload = request.to_payload()
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "Protocol",
    "RenewalRequest",
    "HttpResponse",
    "TransportFailure",
    "RequestResult",
    "RenewalSuccess",
    "RenewalFailure",
    "RenewalOutcome",
    "CycleResult",
    "extract_external_port",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Protocol(StrEnum):
    """Transport protocols the mapping service can forward.

    Serialises as the plain lowercase string expected in the request body.
    """

    TCP = "tcp"
    UDP = "udp"


# ---------------------------------------------------------------------------
# Wire model
# ---------------------------------------------------------------------------


class RenewalRequest(BaseModel):
    """JSON body POSTed to the ``/forward`` endpoint.

    Attributes:
        internal_port: Port on this host whose mapping is renewed.
        protocol: ``tcp`` or ``udp``.
        duration: Requested mapping lifetime in seconds.
    """

    model_config = ConfigDict(frozen=True)

    internal_port: int = Field(ge=1, le=65535)
    protocol: Protocol
    duration: int = Field(gt=0)

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-serialisable request body."""
        return self.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Requester results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HttpResponse:
    """A completed HTTP exchange, whatever its status.

    Attributes:
        status_code: Final HTTP status code (after redirects).
        body: Raw response body text.
    """

    status_code: int
    body: str

    @property
    def is_success(self) -> bool:
        """``True`` for any 2xx status."""
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class TransportFailure:
    """The request never produced an HTTP response.

    Covers DNS failures, refused connections, timeouts and protocol errors.
    The renewer treats it exactly like a non-2xx status.

    Attributes:
        reason: Short human-readable description (usually the exception type
            and message).
    """

    reason: str

    @property
    def is_success(self) -> bool:
        return False


RequestResult = HttpResponse | TransportFailure


# ---------------------------------------------------------------------------
# Renewer outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RenewalSuccess:
    """A protocol mapping was renewed.

    Attributes:
        protocol: The renewed protocol.
        status_code: 2xx status returned by the service.
        body: Raw response body, passed through for logging.
        attempts: Requests made, including the successful one.
        external_port: External port granted by the service, when the body
            is a JSON object carrying an integer ``external_port``.
    """

    protocol: Protocol
    status_code: int
    body: str
    attempts: int
    external_port: int | None = None

    @property
    def succeeded(self) -> bool:
        return True


@dataclass(frozen=True)
class RenewalFailure:
    """Every attempt for a protocol failed.

    Attributes:
        protocol: The protocol that could not be renewed.
        status_code: Last HTTP status seen, or ``None`` when the last attempt
            was a transport error.
        body: Last response body (or the transport error description).
        attempts: Requests made (``max_retries + 1``).
    """

    protocol: Protocol
    status_code: int | None
    body: str
    attempts: int

    @property
    def succeeded(self) -> bool:
        return False

    @property
    def network_error(self) -> bool:
        """``True`` if the last attempt never got an HTTP response."""
        return self.status_code is None


RenewalOutcome = RenewalSuccess | RenewalFailure


# ---------------------------------------------------------------------------
# Cycle result
# ---------------------------------------------------------------------------


@dataclass
class CycleResult:
    """Outcomes of one renewal cycle across all enabled protocols.

    Attributes:
        cycle_number: 1-based cycle counter assigned by the caller.
        outcomes: Per-protocol outcomes in renewal order.
        duration_s: Wall-clock duration of the cycle, set by the runner.
    """

    cycle_number: int = 0
    outcomes: dict[Protocol, RenewalOutcome] = field(default_factory=dict)
    duration_s: float = 0.0

    @property
    def any_success(self) -> bool:
        """``True`` iff at least one protocol was renewed this cycle."""
        return any(o.succeeded for o in self.outcomes.values())

    @property
    def succeeded(self) -> list[Protocol]:
        return [p for p, o in self.outcomes.items() if o.succeeded]

    @property
    def failed(self) -> list[Protocol]:
        return [p for p, o in self.outcomes.items() if not o.succeeded]

    @property
    def total_attempts(self) -> int:
        """Sum of HTTP requests made across all protocols."""
        return sum(o.attempts for o in self.outcomes.values())

    def format_cycle_report(self) -> str:
        """Return a one-line summary of the cycle for logging."""
        parts = []
        for protocol, outcome in self.outcomes.items():
            if isinstance(outcome, RenewalSuccess):
                port = (
                    f" → external {outcome.external_port}"
                    if outcome.external_port is not None
                    else ""
                )
                parts.append(f"{protocol}=ok{port}")
            else:
                parts.append(f"{protocol}=failed")
        return (
            f"cycle {self.cycle_number} complete in {self.duration_s:.1f}s — "
            f"{' '.join(parts) or 'no protocols'} | attempts={self.total_attempts}"
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def extract_external_port(body: str) -> int | None:
    """Return ``external_port`` from a JSON object body, else ``None``.

    The response body is otherwise opaque; anything that is not a JSON object
    with an integer ``external_port`` yields ``None``.
    """
    try:
        data = json.loads(body)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    port = data.get("external_port")
    if isinstance(port, int) and not isinstance(port, bool):
        return port
    return None
