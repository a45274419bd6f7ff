"""natpmp-refresh process entry-point.

Usage:
    python -m natpmp_refresh [--once] [--log-level LEVEL] [--log-format FORMAT]

The orchestration logic lives in ``natpmp_refresh.orchestrator``.  This
module is thin: it configures logging first, validates the environment, then
hands off to the scheduler and exits with the code it returns.

Exit codes:
    0   graceful shutdown (SIGTERM / SIGINT), or a successful ``--once`` cycle
    1   invalid configuration, too many consecutive failed cycles, or a
        failed ``--once`` cycle
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from natpmp_refresh.core import configure_logging
from natpmp_refresh.core.exceptions import ConfigError, ShutdownRequested
from natpmp_refresh.core.settings import load_settings


def main() -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    parser = argparse.ArgumentParser(
        prog="natpmp-refresh",
        description="Keep NAT-PMP port mappings alive via a remote mapping service.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single renewal cycle and exit (0 if any protocol was renewed).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )

    args = parser.parse_args()

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"natpmp-refresh: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    logger = logging.getLogger(__name__)

    try:
        settings = load_settings()
    except ConfigError as exc:
        logger.critical("Error: %s", exc)
        sys.exit(1)

    # Lazy import keeps startup fast when module is imported without running.
    from natpmp_refresh.orchestrator.runner import run_once  # noqa: PLC0415
    from natpmp_refresh.orchestrator.scheduler import run_continuous  # noqa: PLC0415

    if args.once:
        logger.info("Running single renewal cycle (--once mode).")
        try:
            result = asyncio.run(run_once(settings))
        except (KeyboardInterrupt, ShutdownRequested):
            logger.info("Interrupted — exiting.")
            sys.exit(0)
        sys.exit(0 if result.any_success else 1)

    sys.exit(asyncio.run(run_continuous(settings)))


if __name__ == "__main__":
    main()
