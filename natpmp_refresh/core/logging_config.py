"""natpmp-refresh logging configuration.

Call ``configure_logging()`` once at process startup (in ``__main__``).
Every other module defines its own logger at module scope:

    import logging
    logger = logging.getLogger(__name__)

Every record is tagged with the renewal it belongs to: the cycle label
(``c<N>``, set by :func:`~natpmp_refresh.orchestrator.pipeline.run_cycle`)
and the protocol being renewed (set by
:meth:`~natpmp_refresh.orchestrator.renewer.ProtocolRenewer.renew`).  Both
read ``-`` outside a renewal, so a text line looks like::

    2026-03-01 12:00:05 WARNING  [c3/udp] natpmp_refresh.orchestrator.renewer: ✗ udp mapping failed (HTTP 503): ...

Supported environment variables (read at call time):
    LOG_LEVEL   DEBUG | INFO | WARNING | ERROR   (default: INFO)
    LOG_FORMAT  text | json                      (default: text)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Callable
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

__all__ = [
    "configure_logging",
    "JsonFormatter",
    "RenewalContextFilter",
    "CYCLE_ID_CTX",
    "PROTOCOL_CTX",
]

#: Current cycle label, ``"c<N>"`` while a cycle runs.
CYCLE_ID_CTX: ContextVar[str] = ContextVar("cycle_id", default="-")

#: Protocol currently being renewed (``"tcp"``/``"udp"``).
PROTOCOL_CTX: ContextVar[str] = ContextVar("protocol", default="-")

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_FORMATS = ("text", "json")

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(cycle_id)s/%(protocol)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

#: Libraries that log every request at INFO.
_CHATTY_LOGGERS = ("httpx", "httpcore")

#: Attributes every LogRecord carries; anything else came from ``extra=``.
_STANDARD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "cycle_id", "protocol"}


class RenewalContextFilter(logging.Filter):
    """Stamp ``cycle_id`` and ``protocol`` onto every record it sees."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.cycle_id = CYCLE_ID_CTX.get()
        record.protocol = PROTOCOL_CTX.get()
        return True


def _resolve(
    value: str | None,
    env_var: str,
    default: str,
    allowed: tuple[str, ...],
    normalise: Callable[[str], str],
) -> str:
    resolved = normalise(value or os.environ.get(env_var, default))
    if resolved not in allowed:
        raise ValueError(
            f"Unknown {env_var} {resolved!r}. Must be one of: {', '.join(allowed)}"
        )
    return resolved


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Install one stdout handler on the root logger.

    Args:
        level: Level name; falls back to ``$LOG_LEVEL``, then ``INFO``.
        fmt: ``text`` or ``json``; falls back to ``$LOG_FORMAT``, then
            ``text``.
        force: Replace an existing handler.  Without it a second call only
            adjusts the level.

    Raises:
        ValueError: If *level* or *fmt* is not recognised.
    """
    resolved_level = _resolve(level, "LOG_LEVEL", "INFO", _LEVELS, str.upper)
    resolved_fmt = _resolve(fmt, "LOG_FORMAT", "text", _FORMATS, str.lower)

    root = logging.getLogger()
    root.setLevel(resolved_level)
    if root.handlers and not force:
        return

    # Container log collectors read stdout.
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RenewalContextFilter())
    if resolved_fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt=_TEXT_FORMAT, datefmt=_DATE_FORMAT))

    root.handlers.clear()
    root.addHandler(handler)

    quiet = logging.NOTSET if resolved_level == "DEBUG" else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shippers.

    Output shape::

        {"ts": "2026-03-01T12:00:05.123Z", "level": "INFO",
         "logger": "natpmp_refresh.orchestrator.renewer",
         "message": "✓ tcp mapping successful: {...}",
         "cycle": "c3", "protocol": "tcp", "extra": {}}

    ``cycle`` and ``protocol`` are ``null`` outside a renewal.  ``extra``
    holds any ``extra=`` fields passed by the caller; values that are not
    JSON types are rendered with ``str()``.  ``exc_info`` is added when the
    record carries an exception.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        ts = datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds")
        cycle = getattr(record, "cycle_id", "-")
        protocol = getattr(record, "protocol", "-")

        payload: dict[str, Any] = {
            "ts": ts.replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "cycle": None if cycle == "-" else cycle,
            "protocol": None if protocol == "-" else str(protocol),
            "extra": {k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS},
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=False)
