"""Per-protocol renewal with bounded fixed-delay retries.

:class:`ProtocolRenewer` turns one protocol's renewal into an explicit
:class:`~natpmp_refresh.core.models.RenewalSuccess` or
:class:`~natpmp_refresh.core.models.RenewalFailure`:

1. Build the :class:`~natpmp_refresh.core.models.RenewalRequest` body.
2. Make up to ``max_retries + 1`` POSTs through the requester, sleeping
   ``retry_delay`` seconds before every attempt after the first.
3. Stop at the first 2xx.  A non-2xx status and a transport failure count
   the same: one failed attempt.
4. If every attempt failed, report the last status/body observed.

The retry loop is driven by :class:`tenacity.AsyncRetrying` with a fixed wait
and a result-based retry predicate.  Its sleep primitive is
:meth:`~natpmp_refresh.core.shutdown.ShutdownToken.sleep`, so a shutdown
signal during a retry delay raises
:class:`~natpmp_refresh.core.exceptions.ShutdownRequested` and no further
attempts are made.

Typical usage::

    async with ForwardServiceClient(timeout=settings.request_timeout) as client:
        renewer = ProtocolRenewer(client, settings, shutdown)
        outcome = await renewer.renew(Protocol.TCP)
"""

from __future__ import annotations

import logging

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from natpmp_refresh.client.http_client import ForwardServiceClient
from natpmp_refresh.core.logging_config import PROTOCOL_CTX
from natpmp_refresh.core.models import (
    HttpResponse,
    Protocol,
    RenewalFailure,
    RenewalOutcome,
    RenewalRequest,
    RenewalSuccess,
    RequestResult,
    extract_external_port,
)
from natpmp_refresh.core.settings import Settings
from natpmp_refresh.core.shutdown import ShutdownToken

__all__ = ["ProtocolRenewer"]

logger = logging.getLogger(__name__)


def _attempt_failed(result: RequestResult) -> bool:
    """Retry predicate: anything but a 2xx response is retried."""
    return not result.is_success


def _last_result(retry_state: RetryCallState) -> RequestResult:
    """Return the final attempt's result once the attempt budget is spent."""
    outcome = retry_state.outcome
    if outcome is None:
        raise RuntimeError("retry budget exhausted before any attempt completed")
    return outcome.result()


class ProtocolRenewer:
    """Renews one protocol mapping at a time against the mapping service.

    Holds no state between calls; the consecutive-failure policy lives in the
    scheduler, which only ever sees the returned outcomes.

    Args:
        client: Open HTTP requester.
        settings: Validated agent settings (port, duration, retry policy,
            token, timeout).
        shutdown: Token whose cancellable sleep is used between retries.
            A fresh, never-triggered token is used when omitted.
    """

    def __init__(
        self,
        client: ForwardServiceClient,
        settings: Settings,
        shutdown: ShutdownToken | None = None,
    ) -> None:
        self._client = client
        self._settings = settings
        self._shutdown = shutdown or ShutdownToken()

    @property
    def headers(self) -> dict[str, str]:
        """Request headers, including the bearer token when configured."""
        headers = {"Content-Type": "application/json"}
        if self._settings.api_token:
            headers["Authorization"] = f"Bearer {self._settings.api_token}"
        return headers

    async def renew(self, protocol: Protocol) -> RenewalOutcome:
        """Renew *protocol*, retrying failed attempts with a fixed delay.

        Args:
            protocol: The protocol mapping to renew.

        Returns:
            :class:`RenewalSuccess` after the first 2xx response, otherwise
            :class:`RenewalFailure` carrying the last status/body.

        Raises:
            ShutdownRequested: If shutdown is requested before the first
                attempt or during a retry delay.
        """
        self._shutdown.raise_if_requested()

        token = PROTOCOL_CTX.set(str(protocol))
        try:
            return await self._renew(protocol)
        finally:
            PROTOCOL_CTX.reset(token)

    async def _renew(self, protocol: Protocol) -> RenewalOutcome:
        settings = self._settings
        max_retries = settings.max_retries
        payload = RenewalRequest(
            internal_port=settings.internal_port,
            protocol=protocol,
            duration=settings.duration,
        ).to_payload()

        logger.info("→ %s mapping...", protocol)

        def _before_sleep(rs: RetryCallState) -> None:
            logger.info(
                "Retry attempt %d/%d after %ds...",
                rs.attempt_number,
                max_retries,
                settings.retry_delay,
            )

        attempts = 0

        async def _counted_attempt() -> RequestResult:
            nonlocal attempts
            attempts += 1
            return await self._attempt(protocol, payload)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_retries + 1),
            wait=wait_fixed(settings.retry_delay),
            retry=retry_if_result(_attempt_failed),
            sleep=self._shutdown.sleep,
            before_sleep=_before_sleep,
            # Exhaustion returns the last result instead of raising RetryError.
            retry_error_callback=_last_result,
        )
        result: RequestResult = await retrying(_counted_attempt)

        if isinstance(result, HttpResponse) and result.is_success:
            return RenewalSuccess(
                protocol=protocol,
                status_code=result.status_code,
                body=result.body,
                attempts=attempts,
                external_port=extract_external_port(result.body),
            )

        logger.error("✗ %s mapping failed after %d retries", protocol, max_retries)
        if isinstance(result, HttpResponse):
            return RenewalFailure(
                protocol=protocol,
                status_code=result.status_code,
                body=result.body,
                attempts=attempts,
            )
        return RenewalFailure(
            protocol=protocol,
            status_code=None,
            body=result.reason,
            attempts=attempts,
        )

    async def _attempt(self, protocol: Protocol, payload: dict[str, object]) -> RequestResult:
        """Make exactly one request and log its outcome."""
        result = await self._client.send(
            self._settings.forward_url,
            payload,
            self.headers,
            timeout=self._settings.request_timeout,
        )

        if isinstance(result, HttpResponse):
            if result.is_success:
                logger.info("✓ %s mapping successful: %s", protocol, result.body)
            else:
                logger.warning(
                    "✗ %s mapping failed (HTTP %d): %s",
                    protocol,
                    result.status_code,
                    result.body,
                )
        else:
            logger.warning(
                "✗ %s mapping failed: Network error or timeout (%s)",
                protocol,
                result.reason,
            )
        return result
