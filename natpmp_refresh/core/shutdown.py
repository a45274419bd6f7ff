"""Cancellable waits for graceful shutdown.

A :class:`ShutdownToken` is created once per process and handed to every
component that sleeps.  Signal handlers call :meth:`ShutdownToken.request`;
every in-progress :meth:`~ShutdownToken.sleep` then wakes immediately and
raises :class:`~natpmp_refresh.core.exceptions.ShutdownRequested`, so the
agent exits promptly instead of waiting out a 45 s refresh interval or a
retry delay.  An HTTP request already in flight is not interrupted.

Typical usage::

    token = ShutdownToken()
    loop.add_signal_handler(signal.SIGTERM, token.request, "SIGTERM")

    try:
        await token.sleep(45)
    except ShutdownRequested:
        ...
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from collections.abc import Iterator

from natpmp_refresh.core.exceptions import ShutdownRequested

__all__ = ["ShutdownToken", "handle_signals"]

logger = logging.getLogger(__name__)


class ShutdownToken:
    """One-shot shutdown flag with an interruptible sleep primitive.

    The underlying :class:`asyncio.Event` is created lazily so the token can
    be constructed outside a running event loop.
    """

    def __init__(self) -> None:
        self._event: asyncio.Event | None = None
        self._signame: str | None = None

    @property
    def _flag(self) -> asyncio.Event:
        if self._event is None:
            self._event = asyncio.Event()
        return self._event

    @property
    def requested(self) -> bool:
        """``True`` once :meth:`request` has been called."""
        return self._flag.is_set()

    @property
    def signame(self) -> str | None:
        """Name of the signal that requested shutdown, if any."""
        return self._signame

    def request(self, signame: str | None = None) -> None:
        """Request a graceful shutdown.

        Idempotent: only the first call is logged and records *signame*.
        """
        if self._flag.is_set():
            return
        self._signame = signame
        logger.info(
            "Received %s, shutting down gracefully...",
            signame or "shutdown request",
        )
        self._flag.set()

    def raise_if_requested(self) -> None:
        """Checkpoint: raise if shutdown has been requested.

        Raises:
            ShutdownRequested: If :meth:`request` has been called.
        """
        if self.requested:
            raise ShutdownRequested(self._signame)

    async def sleep(self, seconds: float) -> None:
        """Sleep for *seconds* unless shutdown is requested first.

        Args:
            seconds: Maximum wait.  Non-positive values only checkpoint.

        Raises:
            ShutdownRequested: If shutdown was requested before or during the
                wait.
        """
        self.raise_if_requested()
        if seconds > 0:
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._flag.wait(), timeout=seconds)
        self.raise_if_requested()


@contextlib.contextmanager
def handle_signals(
    token: ShutdownToken,
    signals: tuple[signal.Signals, ...] = (signal.SIGTERM, signal.SIGINT),
) -> Iterator[ShutdownToken]:
    """Route *signals* to ``token.request`` on the running loop while active.

    Must be entered from inside a coroutine.  The handlers are removed on
    exit, restoring the default signal behaviour.
    """
    loop = asyncio.get_running_loop()
    for sig in signals:
        loop.add_signal_handler(sig, token.request, sig.name)
    try:
        yield token
    finally:
        for sig in signals:
            with contextlib.suppress(Exception):
                loop.remove_signal_handler(sig)
