"""natpmp-refresh settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated, immutable settings object.

Every environment variable maps 1-to-1 to a field in :class:`Settings`.  The
field name is the **lowercase** version of the env-var name (e.g.
``NATPMP_SERVICE`` → ``natpmp_service``).

Typical usage::

    from natpmp_refresh.core.settings import load_settings

    settings = load_settings()          # raises ConfigError when invalid
    print(settings.forward_url)         # http://natpmp-service:8080/forward
    print(settings.protocols)           # (Protocol.TCP, Protocol.UDP)
"""

from __future__ import annotations

import logging

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from natpmp_refresh.core.exceptions import ConfigError
from natpmp_refresh.core.models import Protocol

__all__ = ["Settings", "load_settings"]

logger = logging.getLogger(__name__)

#: Strings (compared case-insensitively) that enable a protocol flag.
#: Anything else, including typos, disables it.
_TRUTHY: frozenset[str] = frozenset({"true", "1", "yes", "on"})


def _normalize_bool(value: object) -> bool:
    """Map an env-style flag to ``True`` only for :data:`_TRUTHY` spellings."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


class Settings(BaseSettings):
    """Central agent configuration.

    Values are loaded in priority order:

    1. Actual environment variables (highest priority).
    2. ``.env`` file in the working directory.
    3. Field defaults (lowest priority).

    The model is frozen: configuration is immutable for the lifetime of the
    process.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Remote mapping service
    # ------------------------------------------------------------------
    natpmp_service: str = Field(
        min_length=1,
        description="host:port of the mapping service (e.g. natpmp-service:8080).",
    )
    api_token: str = Field(
        default="",
        description="Optional bearer token sent in the Authorization header.",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="Seconds to wait for one HTTP request before giving up.",
    )

    # ------------------------------------------------------------------
    # Mapping parameters
    # ------------------------------------------------------------------
    internal_port: int = Field(
        ge=1,
        le=65535,
        description="Internal port whose mappings are kept alive.",
    )
    enable_tcp: bool = Field(default=True, description="Renew the TCP mapping.")
    enable_udp: bool = Field(default=True, description="Renew the UDP mapping.")
    duration: int = Field(
        default=60,
        gt=0,
        description="Requested mapping lifetime in seconds.",
    )

    # ------------------------------------------------------------------
    # Scheduling and failure policy
    # ------------------------------------------------------------------
    refresh_interval: int = Field(
        default=45,
        gt=0,
        description="Seconds between renewal cycles (must be < duration).",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Retries per protocol after the first failed attempt.",
    )
    retry_delay: int = Field(
        default=5,
        ge=0,
        description="Fixed delay in seconds before each retry.",
    )
    max_consecutive_failures: int = Field(
        default=10,
        gt=0,
        description="Fully failed cycles in a row before exiting with status 1.",
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("natpmp_service", mode="before")
    @classmethod
    def _strip_service(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @field_validator("enable_tcp", "enable_udp", mode="before")
    @classmethod
    def _parse_flag(cls, v: object) -> bool:
        """Accept ``true|1|yes|on`` (any case) as true; everything else is false."""
        return _normalize_bool(v)

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v!r}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, v: str) -> str:
        allowed = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got {v!r}")
        return v_lower

    # ------------------------------------------------------------------
    # Model validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def _validate_timing(self) -> Settings:
        """Ensure a mapping is always renewed before it expires."""
        if self.refresh_interval >= self.duration:
            raise ValueError(
                f"REFRESH_INTERVAL ({self.refresh_interval}) must be less than "
                f"DURATION ({self.duration}); recommended: ~75% of DURATION"
            )
        return self

    @model_validator(mode="after")
    def _validate_protocols(self) -> Settings:
        if not (self.enable_tcp or self.enable_udp):
            raise ValueError(
                "At least one protocol must be enabled (ENABLE_TCP or ENABLE_UDP)"
            )
        return self

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def protocols(self) -> tuple[Protocol, ...]:
        """Enabled protocols in renewal order (tcp before udp)."""
        enabled: list[Protocol] = []
        if self.enable_tcp:
            enabled.append(Protocol.TCP)
        if self.enable_udp:
            enabled.append(Protocol.UDP)
        return tuple(enabled)

    @property
    def forward_url(self) -> str:
        """Absolute URL of the mapping service's ``/forward`` endpoint."""
        return f"http://{self.natpmp_service}/forward"

    @property
    def auth_configured(self) -> bool:
        """``True`` if a bearer token will be sent with every request."""
        return bool(self.api_token)


def load_settings(**overrides: object) -> Settings:
    """Build :class:`Settings` from the environment, mapping validation errors.

    Args:
        **overrides: Field values that take precedence over the environment
            (used by tests and programmatic callers).

    Returns:
        A validated, frozen :class:`Settings` instance.

    Raises:
        ConfigError: If any variable is missing or out of range.  The message
            lists every offending field.
    """
    try:
        return Settings(**overrides)  # type: ignore[arg-type]
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']).upper() or 'config'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigError(f"Invalid configuration: {problems}") from exc
