"""
apcupsd NIS client configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
A settings instance is passed explicitly to the client, the scanner and the
timestamp formatting, so concurrent callers can use different settings
without sharing mutable module state.

CHANGELOG:
- 2026-10-14: Add read deadline and retry bound for stalled daemons
- 2026-10-09: Initial creation

TODO:
- None
"""

from datetime import tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings

DEFAULT_NIS_PORT = 3551
"""Port apcupsd's Network Information Server listens on by default."""


class NisSettings(BaseSettings):
    """Client configuration for querying apcupsd daemons.

    All values may come from environment variables (``NIS_HOST``,
    ``TIMEOUT_S``, ...) or a ``.env`` file; every field has a default.

    Attributes:
        nis_host: Host queried when no network scan is requested.
        nis_port: apcupsd NIS port, used for queries and scan probes.
        scan_network: IPv4 CIDR block to scan for daemons, e.g.
            ``192.168.1.0/24``.  Empty disables scanning.
        timeout_s: Connect timeout in seconds, per query or scan probe.
        read_timeout_s: Timeout for reading a single response frame.
        max_read_retries: Consecutive read timeouts tolerated before the
            response is treated as truncated.
        read_deadline_s: Upper bound on reading one whole response.
        display_tz: IANA zone for rendering outage timestamps; empty means
            the host's local zone.
        max_concurrency: Optional cap on simultaneous scan probes;
            ``None`` probes every address at once.
    """

    nis_host: str = "localhost"
    nis_port: int = DEFAULT_NIS_PORT
    scan_network: str = ""
    timeout_s: float = 5.0
    read_timeout_s: float = 5.0
    max_read_retries: int = 3
    read_deadline_s: float = 30.0
    display_tz: str = ""
    max_concurrency: int | None = None

    @field_validator("nis_port")
    @classmethod
    def nis_port_must_be_valid(cls, v: int) -> int:
        """Validate TCP port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("NIS_PORT must be between 1 and 65535")
        return v

    @field_validator("timeout_s", "read_timeout_s", "read_deadline_s")
    @classmethod
    def timeouts_must_be_positive(cls, v: float) -> float:
        """Validate timeouts are strictly positive."""
        if v <= 0:
            raise ValueError("timeouts must be > 0 seconds")
        return v

    @field_validator("max_read_retries")
    @classmethod
    def max_read_retries_must_be_non_negative(cls, v: int) -> int:
        """Validate read retry bound is non-negative."""
        if v < 0:
            raise ValueError("MAX_READ_RETRIES must be >= 0")
        return v

    @field_validator("max_concurrency")
    @classmethod
    def max_concurrency_must_be_positive(cls, v: int | None) -> int | None:
        """Validate the probe cap, when set, admits at least one probe."""
        if v is not None and v < 1:
            raise ValueError("MAX_CONCURRENCY must be >= 1 when set")
        return v

    @field_validator("display_tz")
    @classmethod
    def display_tz_must_be_known(cls, v: str) -> str:
        """Validate the display zone exists in the zone database."""
        if v:
            try:
                ZoneInfo(v)
            except (ZoneInfoNotFoundError, ValueError) as exc:
                raise ValueError(f"DISPLAY_TZ {v!r} is not a known time zone") from exc
        return v

    @property
    def display_zone(self) -> tzinfo | None:
        """Display zone, or ``None`` for the host's local zone."""
        return ZoneInfo(self.display_tz) if self.display_tz else None

    @property
    def target_endpoint(self) -> str:
        """``host:port`` endpoint for a single-target query."""
        return f"{self.nis_host}:{self.nis_port}"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
