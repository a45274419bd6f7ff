"""Async HTTP requester for the remote port-mapping service.

Wraps :class:`httpx.AsyncClient` with a single operation,
:meth:`ForwardServiceClient.send`, which POSTs one JSON body and reports the
outcome as a value:

* :class:`~natpmp_refresh.core.models.HttpResponse` — any HTTP response,
  2xx or not.
* :class:`~natpmp_refresh.core.models.TransportFailure` — DNS failure,
  refused connection, timeout, redirect loop, undecodable body, or any
  other :class:`httpx.RequestError`.

Nothing is retried and nothing is raised for network faults here; retry
policy belongs to :mod:`natpmp_refresh.orchestrator.renewer`.

Typical usage::

    from natpmp_refresh.client.http_client import ForwardServiceClient

    async with ForwardServiceClient(timeout=30) as client:
        result = await client.send(
            "http://natpmp-service:8080/forward",
            {"internal_port": 6881, "protocol": "tcp", "duration": 60},
            {"Content-Type": "application/json"},
        )
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Final

import httpx

from natpmp_refresh.core.models import HttpResponse, RequestResult, TransportFailure

__all__ = ["ForwardServiceClient"]

logger = logging.getLogger(__name__)

#: Default overall request timeout in seconds.
_DEFAULT_TIMEOUT: Final[float] = 30.0

#: Identifies the agent in the mapping service's access logs.
_USER_AGENT: Final[str] = "natpmp-refresh/0.1"


class ForwardServiceClient:
    """HTTP requester used by the protocol renewer.

    Manages a single :class:`httpx.AsyncClient` for the object lifetime.  Use
    as an ``async with`` context manager (preferred) to guarantee the
    connection pool is closed on exit, or call :meth:`close` explicitly.

    Args:
        timeout: Default per-request timeout in seconds, applied to connect,
            read, write and pool acquisition alike.
        transport: Optional custom :class:`httpx.AsyncBaseTransport` (tests
            pass an :class:`httpx.MockTransport`).

    Raises:
        ValueError: If ``timeout`` is not positive.
    """

    def __init__(
        self,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout!r}.")

        self._timeout = timeout
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ForwardServiceClient:
        """Open the connection pool and return ``self``."""
        await self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the connection pool on exit."""
        await self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send(
        self,
        url: str,
        body: dict[str, Any],
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> RequestResult:
        """POST *body* as JSON to *url* exactly once.

        Args:
            url: Absolute request URL.
            body: JSON-serialisable request body.
            headers: Extra request headers (e.g. ``Authorization``).
            timeout: Per-call timeout override in seconds.

        Returns:
            :class:`HttpResponse` for any HTTP response (the caller classifies
            the status), or :class:`TransportFailure` when no response was
            received.
        """
        client = await self._ensure_client()
        request_timeout = httpx.Timeout(timeout if timeout is not None else self._timeout)

        logger.debug("HTTP POST %s body=%s", url, body)

        try:
            response = await client.post(
                url,
                json=body,
                headers=headers,
                timeout=request_timeout,
            )
        except httpx.TimeoutException as exc:
            logger.debug("Timeout on POST %s.", url, exc_info=True)
            return TransportFailure(reason=f"timeout ({type(exc).__name__})")
        except httpx.RequestError as exc:
            logger.debug("Request error on POST %s.", url, exc_info=True)
            detail = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
            return TransportFailure(reason=detail)

        logger.debug(
            "HTTP POST %s → %d (%d bytes)",
            url,
            response.status_code,
            len(response.content),
        )
        return HttpResponse(status_code=response.status_code, body=response.text)

    async def close(self) -> None:
        """Close the underlying HTTP client and release pooled connections.

        Safe to call multiple times or when no requests have been made yet.
        """
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            logger.debug("ForwardServiceClient HTTP session closed.")
        self._http = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Return the open HTTP client, creating it lazily if needed."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                # The status classified is the final one after redirects.
                follow_redirects=True,
                headers={
                    "Accept": "application/json, */*",
                    "User-Agent": _USER_AGENT,
                },
                transport=self._transport,
            )
            logger.debug("ForwardServiceClient session opened.")
        return self._http
