"""
Shared test fixtures for the apcupsd NIS client tests.

Provides environment isolation for NisSettings, canned status transcripts,
and a loopback asyncio server that plays a transcript back like an apcupsd
daemon.

CHANGELOG:
- 2026-10-18: nis_server reports client hang-up
- 2026-10-15: Add nis_server fixture
- 2026-10-09: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest
from apcnis.src.codec import STATUS_REQUEST

# All NisSettings environment variable names, used for cleanup.
_ALL_NIS_ENV_VARS = (
    "NIS_HOST",
    "NIS_PORT",
    "SCAN_NETWORK",
    "TIMEOUT_S",
    "READ_TIMEOUT_S",
    "MAX_READ_RETRIES",
    "READ_DEADLINE_S",
    "DISPLAY_TZ",
    "MAX_CONCURRENCY",
)


@pytest.fixture(autouse=True)
def _clean_nis_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all NIS env vars and isolate from .env files before each test."""
    for var in _ALL_NIS_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


def _status_line(key: str, value: str) -> str:
    """Format one apcupsd status line, e.g. ``"LINEV    : 121.0 Volts\\n"``."""
    return f"{key:<9}: {value}\n"


@pytest.fixture()
def transcript() -> list[str]:
    """A complete status response from a 1500 VA unit on line power."""
    return [
        _status_line("APC", "001,036,0878"),
        _status_line("DATE", "2026-10-01 14:05:00 -0600"),
        _status_line("UPSNAME", "rack-ups"),
        _status_line("STATUS", "ONLINE "),
        _status_line("LINEV", "121.0 Volts"),
        _status_line("LOADPCT", "5.0 Percent"),
        _status_line("BCHARGE", "100.0 Percent"),
        _status_line("TIMELEFT", "10.0 Minutes"),
        _status_line("NUMXFERS", "2"),
        _status_line("XONBATT", "2026-10-01 13:00:00 -0600"),
        _status_line("XOFFBATT", "2026-10-01 13:00:02 -0600"),
        _status_line("NOMPOWER", "900 Watts"),
        _status_line("END APC", "2026-10-01 14:05:01 -0600"),
    ]


@pytest.fixture()
def nis_server() -> Callable[..., Any]:
    """Factory for a loopback daemon serving a fixed list of frames.

    Usage::

        async with nis_server(frames) as (endpoint, requests, hung_up):
            ...

    The server reads one request frame, writes *frames* and then either
    closes the connection or, with ``hold_open=True``, waits until the
    client hangs up.  ``requests`` collects the raw request bytes received;
    ``hung_up`` is set once a held-open connection sees the client's EOF.
    """

    @contextlib.asynccontextmanager
    async def _serve(
        frames: list[bytes], *, hold_open: bool = False
    ) -> AsyncIterator[tuple[str, list[bytes], asyncio.Event]]:
        requests: list[bytes] = []
        hung_up = asyncio.Event()

        async def _handle(
            reader: asyncio.StreamReader, writer: asyncio.StreamWriter
        ) -> None:
            try:
                requests.append(await reader.readexactly(len(STATUS_REQUEST)))
                for frame in frames:
                    writer.write(frame)
                await writer.drain()
                if hold_open:
                    await reader.read()
                    hung_up.set()
            except (asyncio.IncompleteReadError, ConnectionError):
                pass
            finally:
                writer.close()

        server = await asyncio.start_server(_handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            yield f"127.0.0.1:{port}", requests, hung_up
        finally:
            server.close()
            await server.wait_closed()

    return _serve
