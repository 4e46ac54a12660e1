"""
Tests for the async status client.

Runs the client against loopback asyncio servers that behave like apcupsd
daemons: well-behaved, truncated, stalled, or absent.

CHANGELOG:
- 2026-10-18: Check the client hangs up after success, retry exhaustion and deadline
- 2026-10-14: Cover read retries and the overall read deadline
- 2026-10-12: Cover query_many
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Callable
from typing import Any

import pytest
from apcnis.src.client import (
    ConnectFailedError,
    StatusClient,
    query_status,
    split_endpoint,
)
from apcnis.src.codec import STATUS_REQUEST, encode_frame
from apcnis.src.config import NisSettings
from apcnis.src.models import UpsSummary
from apcnis.src.parser import IncompleteError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _frames(lines: list[str]) -> list[bytes]:
    return [encode_frame(line.encode("ascii")) for line in lines]


def _unused_port() -> int:
    """Return a loopback port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _fast_settings(**overrides: Any) -> NisSettings:
    values: dict[str, Any] = {
        "timeout_s": 1.0,
        "read_timeout_s": 0.05,
        "max_read_retries": 1,
        "read_deadline_s": 2.0,
        "display_tz": "UTC",
    }
    values.update(overrides)
    return NisSettings(**values)


# ===========================================================================
# Successful exchange
# ===========================================================================


class TestQuery:
    """A well-behaved daemon yields a summary."""

    @pytest.mark.asyncio
    async def test_returns_summary(
        self, nis_server: Callable[..., Any], transcript: list[str]
    ) -> None:
        async with nis_server(_frames(transcript)) as (endpoint, _, _):
            summary = await StatusClient(_fast_settings()).query(endpoint)

        assert isinstance(summary, UpsSummary)
        assert summary.name == "rack-ups"
        assert summary.power_w == 45
        assert summary.backup_minutes == 10
        assert summary.charge_wh == 8
        assert summary.last_outage == "2026-10-01 19:00:00 +0000"

    @pytest.mark.asyncio
    async def test_sends_status_request(
        self, nis_server: Callable[..., Any], transcript: list[str]
    ) -> None:
        async with nis_server(_frames(transcript)) as (endpoint, requests, _):
            await StatusClient(_fast_settings()).query(endpoint)

        assert requests == [STATUS_REQUEST]

    @pytest.mark.asyncio
    async def test_skips_noise_frames(
        self, nis_server: Callable[..., Any], transcript: list[str]
    ) -> None:
        frames = [encode_frame(b""), encode_frame(b"short\n"), *_frames(transcript)]
        async with nis_server(frames) as (endpoint, _, _):
            summary = await StatusClient(_fast_settings()).query(endpoint)

        assert summary.name == "rack-ups"

    @pytest.mark.asyncio
    async def test_stops_reading_at_sentinel(
        self, nis_server: Callable[..., Any], transcript: list[str]
    ) -> None:
        """The daemon keeps the connection open; the client returns and hangs up."""
        settings = _fast_settings(read_timeout_s=5.0)
        async with nis_server(_frames(transcript), hold_open=True) as (
            endpoint,
            _,
            hung_up,
        ):
            summary = await StatusClient(settings).query(endpoint)
            await asyncio.wait_for(hung_up.wait(), timeout=1.0)

        assert summary.name == "rack-ups"

    @pytest.mark.asyncio
    async def test_query_status_wrapper(
        self, nis_server: Callable[..., Any], transcript: list[str]
    ) -> None:
        async with nis_server(_frames(transcript)) as (endpoint, _, _):
            summary = await query_status(endpoint, _fast_settings())

        assert summary.transfer_count == 2


# ===========================================================================
# Failures
# ===========================================================================


class TestQueryFailures:
    """Connect failures and truncated responses surface as errors."""

    @pytest.mark.asyncio
    async def test_connect_refused(self) -> None:
        endpoint = f"127.0.0.1:{_unused_port()}"

        with pytest.raises(ConnectFailedError) as exc_info:
            await StatusClient(_fast_settings()).query(endpoint)

        assert exc_info.value.endpoint == endpoint
        assert isinstance(exc_info.value.__cause__, OSError)

    @pytest.mark.asyncio
    async def test_connect_failure_logged(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        endpoint = f"127.0.0.1:{_unused_port()}"

        with (
            caplog.at_level(logging.WARNING, logger="apcnis.src.client"),
            pytest.raises(ConnectFailedError),
        ):
            await StatusClient(_fast_settings()).query(endpoint)

        assert any(endpoint in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_closed_before_sentinel(
        self, nis_server: Callable[..., Any], transcript: list[str]
    ) -> None:
        async with nis_server(_frames(transcript[:-1])) as (endpoint, _, _):
            with pytest.raises(IncompleteError):
                await StatusClient(_fast_settings()).query(endpoint)

    @pytest.mark.asyncio
    async def test_closed_mid_frame(
        self, nis_server: Callable[..., Any], transcript: list[str]
    ) -> None:
        frames = [*_frames(transcript[:3]), b"\x00\x40UPSNAME  : tr"]
        async with nis_server(frames) as (endpoint, _, _):
            with pytest.raises(IncompleteError):
                await StatusClient(_fast_settings()).query(endpoint)

    @pytest.mark.asyncio
    async def test_stalled_daemon_gives_up_after_retries(
        self, nis_server: Callable[..., Any], transcript: list[str]
    ) -> None:
        async with nis_server(_frames(transcript[:-1]), hold_open=True) as (
            endpoint,
            _,
            hung_up,
        ):
            with pytest.raises(IncompleteError):
                await StatusClient(_fast_settings()).query(endpoint)
            await asyncio.wait_for(hung_up.wait(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_stalled_daemon_hits_read_deadline(
        self, nis_server: Callable[..., Any], transcript: list[str]
    ) -> None:
        settings = _fast_settings(max_read_retries=1000, read_deadline_s=0.3)
        async with nis_server(_frames(transcript[:-1]), hold_open=True) as (
            endpoint,
            _,
            hung_up,
        ):
            with pytest.raises(IncompleteError):
                await StatusClient(settings).query(endpoint)
            await asyncio.wait_for(hung_up.wait(), timeout=1.0)


# ===========================================================================
# Multiple targets
# ===========================================================================


class TestQueryMany:
    """Each endpoint succeeds or fails independently."""

    @pytest.mark.asyncio
    async def test_mixed_results(
        self, nis_server: Callable[..., Any], transcript: list[str]
    ) -> None:
        dead = f"127.0.0.1:{_unused_port()}"
        async with nis_server(_frames(transcript)) as (live, _, _):
            results = await StatusClient(_fast_settings()).query_many([live, dead])

        assert set(results) == {live, dead}
        assert isinstance(results[live], UpsSummary)
        assert isinstance(results[dead], ConnectFailedError)

    @pytest.mark.asyncio
    async def test_no_targets(self) -> None:
        assert await StatusClient(_fast_settings()).query_many([]) == {}


class TestSplitEndpoint:
    """Endpoints are host:port strings."""

    def test_host_and_port(self) -> None:
        assert split_endpoint("192.168.1.20:3551") == ("192.168.1.20", 3551)

    def test_hostname(self) -> None:
        assert split_endpoint("ups.local:4000") == ("ups.local", 4000)

    @pytest.mark.parametrize("endpoint", ["ups.local", ":3551", "ups.local:port"])
    def test_invalid(self, endpoint: str) -> None:
        with pytest.raises(ValueError):
            split_endpoint(endpoint)
