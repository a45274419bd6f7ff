"""Unit tests for logging correlation, lifetime stats and status files.

Coverage
--------
* :class:`~natpmp_refresh.core.logging_config.RenewalContextFilter` — stamps
  ``cycle_id`` and ``protocol`` from their ContextVars; ``"-"`` outside a
  renewal; never suppresses a record.
* :class:`~natpmp_refresh.core.logging_config.JsonFormatter` — one JSON
  object per record with top-level ``cycle``/``protocol`` and caller
  ``extra=`` fields.
* End to end: a real cycle logged through ``configure_logging(fmt="json")``
  carries the cycle label and the protocol on every renewer line.
* :class:`~natpmp_refresh.orchestrator.metrics.LifetimeStats` — counter
  accumulation, last external port tracking, summary text, dict shape.
* :func:`~natpmp_refresh.orchestrator.metrics.write_stats_file` and the
  scheduler heartbeat — written when a path is set, skipped when empty,
  write errors logged rather than raised.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from natpmp_refresh.client.http_client import ForwardServiceClient
from natpmp_refresh.core.logging_config import (
    CYCLE_ID_CTX,
    PROTOCOL_CTX,
    JsonFormatter,
    RenewalContextFilter,
    configure_logging,
)
from natpmp_refresh.core.models import (
    CycleResult,
    HttpResponse,
    Protocol,
    RenewalFailure,
    RenewalSuccess,
)
from natpmp_refresh.core.settings import Settings
from natpmp_refresh.orchestrator.metrics import LifetimeStats, write_stats_file
from natpmp_refresh.orchestrator.pipeline import run_cycle
from natpmp_refresh.orchestrator.renewer import ProtocolRenewer
from natpmp_refresh.orchestrator.scheduler import _write_heartbeat

logger = logging.getLogger(__name__)


def _make_record(msg: str = "test", level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def _stamped_record(cycle: str, protocol: str, msg: str = "test") -> logging.LogRecord:
    record = _make_record(msg)
    cycle_token = CYCLE_ID_CTX.set(cycle)
    protocol_token = PROTOCOL_CTX.set(protocol)
    try:
        RenewalContextFilter().filter(record)
    finally:
        PROTOCOL_CTX.reset(protocol_token)
        CYCLE_ID_CTX.reset(cycle_token)
    return record


def _cycle(n: int, tcp_ok: bool, udp_ok: bool, port: int | None = None) -> CycleResult:
    def outcome(protocol: Protocol, ok: bool) -> RenewalSuccess | RenewalFailure:
        if ok:
            return RenewalSuccess(
                protocol=protocol, status_code=200, body="{}", attempts=1, external_port=port
            )
        return RenewalFailure(protocol=protocol, status_code=500, body="", attempts=4)

    return CycleResult(
        cycle_number=n,
        outcomes={
            Protocol.TCP: outcome(Protocol.TCP, tcp_ok),
            Protocol.UDP: outcome(Protocol.UDP, udp_ok),
        },
    )


# ---------------------------------------------------------------------------
# RenewalContextFilter
# ---------------------------------------------------------------------------


class TestRenewalContextFilter:
    def test_outside_a_renewal_both_fields_are_dash(self) -> None:
        record = _make_record()
        assert RenewalContextFilter().filter(record) is True
        assert record.cycle_id == "-"  # type: ignore[attr-defined]
        assert record.protocol == "-"  # type: ignore[attr-defined]

    def test_stamps_active_cycle_and_protocol(self) -> None:
        record = _stamped_record("c12", "udp")
        assert record.cycle_id == "c12"  # type: ignore[attr-defined]
        assert record.protocol == "udp"  # type: ignore[attr-defined]

    def test_always_returns_true(self) -> None:
        f = RenewalContextFilter()
        for level in (logging.DEBUG, logging.INFO, logging.WARNING, logging.ERROR):
            assert f.filter(_make_record(level=level)) is True


# ---------------------------------------------------------------------------
# JsonFormatter
# ---------------------------------------------------------------------------


class TestJsonFormatter:
    def test_renewal_fields_are_top_level(self) -> None:
        record = _stamped_record("c3", "tcp", "tcp mapping successful")

        payload = json.loads(JsonFormatter().format(record))

        assert payload["level"] == "INFO"
        assert payload["logger"] == "test.logger"
        assert payload["message"] == "tcp mapping successful"
        assert payload["cycle"] == "c3"
        assert payload["protocol"] == "tcp"
        assert payload["extra"] == {}
        assert payload["ts"].endswith("Z")
        assert "exc_info" not in payload

    def test_outside_a_renewal_fields_are_null(self) -> None:
        payload = json.loads(JsonFormatter().format(_stamped_record("-", "-")))
        assert payload["cycle"] is None
        assert payload["protocol"] is None

    def test_unfiltered_record_is_still_formatted(self) -> None:
        payload = json.loads(JsonFormatter().format(_make_record("startup")))
        assert payload["message"] == "startup"
        assert payload["cycle"] is None

    def test_includes_exception_text(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord(
                "t", logging.ERROR, "t.py", 1, "failed", (), sys.exc_info()
            )

        payload = json.loads(JsonFormatter().format(record))

        assert "RuntimeError: boom" in payload["exc_info"]

    def test_caller_extra_fields_kept_and_stringified(self) -> None:
        record = _make_record()
        record.external_port = 40123
        record.path = Path("/tmp/x")

        payload = json.loads(JsonFormatter().format(record))

        assert payload["extra"] == {"external_port": 40123, "path": "/tmp/x"}

    async def test_cycle_logged_as_json_carries_protocol(
        self, capsys: pytest.CaptureFixture[str], make_settings: Callable[..., Settings]
    ) -> None:
        configure_logging(level="INFO", fmt="json", force=True)
        client = MagicMock(spec=ForwardServiceClient)
        client.send = AsyncMock(
            side_effect=[HttpResponse(200, "{}"), HttpResponse(200, "{}")]
        )
        renewer = ProtocolRenewer(client, make_settings())
        capsys.readouterr()

        await run_cycle(renewer, (Protocol.TCP, Protocol.UDP), internal_port=6881, cycle_number=4)

        lines = [json.loads(line) for line in capsys.readouterr().out.splitlines() if line]
        renewer_lines = [p for p in lines if p["logger"] == "natpmp_refresh.orchestrator.renewer"]
        assert renewer_lines
        assert {p["cycle"] for p in lines} == {"c4"}
        assert [p["protocol"] for p in renewer_lines] == ["tcp", "tcp", "udp", "udp"]
        assert PROTOCOL_CTX.get() == "-"

# ---------------------------------------------------------------------------
# LifetimeStats
# ---------------------------------------------------------------------------


class TestLifetimeStats:
    def test_initial_state(self) -> None:
        stats = LifetimeStats()
        assert stats.cycles_run == 0
        assert stats.failed_cycles == 0
        assert stats.protocols == {}
        assert stats.uptime_s >= 0

    def test_update_accumulates_per_protocol(self) -> None:
        stats = LifetimeStats()
        stats.update(_cycle(1, tcp_ok=True, udp_ok=False, port=40123))
        stats.update(_cycle(2, tcp_ok=True, udp_ok=True, port=40124))

        assert stats.cycles_run == 2
        assert stats.failed_cycles == 0
        tcp = stats.protocols[Protocol.TCP]
        udp = stats.protocols[Protocol.UDP]
        assert (tcp.renewed, tcp.failed, tcp.attempts) == (2, 0, 2)
        assert (udp.renewed, udp.failed, udp.attempts) == (1, 1, 5)
        assert tcp.last_external_port == 40124
        assert tcp.last_renewed_at is not None

    def test_fully_failed_cycle_counted(self) -> None:
        stats = LifetimeStats()
        stats.update(_cycle(1, tcp_ok=False, udp_ok=False))
        stats.update(CycleResult(cycle_number=2))

        assert stats.cycles_run == 2
        assert stats.failed_cycles == 2
        assert stats.protocols[Protocol.UDP].last_renewed_at is None

    def test_success_without_port_keeps_last_port(self) -> None:
        stats = LifetimeStats()
        stats.update(_cycle(1, tcp_ok=True, udp_ok=True, port=40123))
        stats.update(_cycle(2, tcp_ok=True, udp_ok=True, port=None))

        assert stats.protocols[Protocol.TCP].last_external_port == 40123

    def test_format_summary(self) -> None:
        stats = LifetimeStats()
        stats.update(_cycle(1, tcp_ok=True, udp_ok=False, port=40123))

        summary = stats.format_summary()

        assert "cycles=1 failed_cycles=0" in summary
        assert "tcp: renewed=1 failed=0 attempts=1 external_port=40123" in summary
        assert "udp: renewed=0 failed=1 attempts=4 external_port=-" in summary

    def test_as_dict_is_json_serialisable(self) -> None:
        stats = LifetimeStats()
        stats.update(_cycle(1, tcp_ok=True, udp_ok=False, port=40123))

        data = json.loads(json.dumps(stats.as_dict()))

        assert data["cycles_run"] == 1
        assert data["protocols"]["tcp"]["last_external_port"] == 40123
        assert data["protocols"]["udp"]["last_renewed_at"] is None


# ---------------------------------------------------------------------------
# Status files
# ---------------------------------------------------------------------------


class TestStatusFiles:
    def test_write_stats_file(self, tmp_path: Path) -> None:
        stats = LifetimeStats()
        stats.update(_cycle(1, tcp_ok=True, udp_ok=True, port=40123))
        path = tmp_path / "stats.json"

        write_stats_file(stats, str(path))

        assert json.loads(path.read_text())["protocols"]["udp"]["renewed"] == 1

    def test_empty_stats_path_writes_nothing(self, tmp_path: Path) -> None:
        write_stats_file(LifetimeStats(), "")
        assert list(tmp_path.iterdir()) == []

    def test_stats_write_error_is_logged(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        bad = tmp_path / "missing-dir" / "stats.json"

        with caplog.at_level(logging.WARNING):
            write_stats_file(LifetimeStats(), str(bad))

        assert "Failed to write stats file" in caplog.text

    def test_heartbeat_contains_timestamp(self, tmp_path: Path) -> None:
        path = tmp_path / "heartbeat"
        _write_heartbeat(str(path))
        assert float(path.read_text()) > 0

    def test_heartbeat_write_error_is_logged(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING):
            _write_heartbeat(str(tmp_path / "nope" / "heartbeat"))

        assert "Failed to write heartbeat file" in caplog.text
