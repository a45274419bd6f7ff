"""Shared pytest fixtures and configuration for the natpmp-refresh test suite.

This file is loaded automatically by pytest before any test module.
It provides project-wide fixtures used across unit and integration tests.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from typing import Any

import pytest
from pydantic_settings import SettingsConfigDict

from natpmp_refresh.core import configure_logging
from natpmp_refresh.core.settings import Settings

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test."""
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------

_CONFIG_VARS = (
    "NATPMP_SERVICE",
    "INTERNAL_PORT",
    "API_TOKEN",
    "ENABLE_TCP",
    "ENABLE_UDP",
    "DURATION",
    "REFRESH_INTERVAL",
    "MAX_RETRIES",
    "RETRY_DELAY",
    "MAX_CONSECUTIVE_FAILURES",
    "REQUEST_TIMEOUT",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every configuration env var for the duration of a test.

    Also disables pydantic-settings `.env` file loading so that values in a
    developer's local `.env` file do not leak into Settings isolation tests.
    """
    for key in list(os.environ):
        if key.upper() in _CONFIG_VARS:
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
            frozen=True,
        ),
    )


@pytest.fixture()
def make_settings(clean_env: None) -> Callable[..., Settings]:
    """Return a factory building :class:`Settings` with fast test defaults.

    Retry delays are zero so that tests never actually sleep unless they opt
    in by overriding ``retry_delay``.
    """

    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "natpmp_service": "natpmp-service:8080",
            "internal_port": 6881,
            "retry_delay": 0,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def logger() -> logging.Logger:
    """Return a ``logging.Logger`` scoped to the running test."""
    return logging.getLogger("tests")
