"""
Discovery sweep for apcupsd daemons on an IPv4 network.

Every candidate address in a CIDR block gets its own probe task: a plain TCP
connect to the NIS port, closed straight away with no protocol exchange.
Probes that connect within the timeout report ``"address:port"``; failures
are dropped silently.

Results flow to a single collector task through an :class:`asyncio.Queue`;
the collector is the only writer of the result list.  A stop marker is
queued only after every probe has finished, so the collector drains every
report before the list is returned.  Result order follows completion order
and is not stable across scans.

The candidate range runs from the network address + 1 up to and including
the broadcast address.

CHANGELOG:
- 2026-10-18: A failing probe no longer aborts the scan
- 2026-10-14: Optional max_concurrency semaphore for large blocks
- 2026-10-11: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import ipaddress
import logging

from apcnis.src.config import DEFAULT_NIS_PORT

logger = logging.getLogger(__name__)

_STOP = None
"""Queue marker telling the collector that no more reports will arrive."""


def candidate_hosts(network: str) -> list[ipaddress.IPv4Address]:
    """List the addresses probed for *network*.

    Host bits set in *network* are masked off, so ``192.168.1.7/30`` and
    ``192.168.1.4/30`` describe the same block.

    Raises:
        ValueError: *network* is not an IPv4 CIDR block.
    """
    block = ipaddress.ip_network(network, strict=False)
    if not isinstance(block, ipaddress.IPv4Network):
        raise ValueError(f"{network!r} is not an IPv4 network")
    first = int(block.network_address) + 1
    last = int(block.broadcast_address)
    return [ipaddress.IPv4Address(n) for n in range(first, last + 1)]


async def _probe(
    endpoint: str,
    host: str,
    port: int,
    timeout_s: float,
    reports: asyncio.Queue[str | None],
    limit: asyncio.Semaphore | None,
) -> None:
    async with limit if limit is not None else contextlib.nullcontext():
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=timeout_s,
            )
        except (OSError, TimeoutError):
            return
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
    await reports.put(endpoint)


async def _collect(reports: asyncio.Queue[str | None]) -> list[str]:
    found: list[str] = []
    while (endpoint := await reports.get()) is not _STOP:
        found.append(endpoint)
    return found


async def scan(
    network: str,
    timeout_s: float,
    *,
    port: int = DEFAULT_NIS_PORT,
    max_concurrency: int | None = None,
) -> list[str]:
    """Probe every host of an IPv4 CIDR block for a listening daemon.

    Args:
        network: CIDR block such as ``"192.168.1.0/24"``.
        timeout_s: Connect timeout per probe, in seconds.
        port: TCP port to probe.
        max_concurrency: Optional cap on simultaneous probes.  ``None``
            launches one concurrent probe per address.

    Returns:
        Unordered ``"address:port"`` strings of responsive endpoints.  An
        empty list for unparseable or IPv6 networks; a scan never raises.
    """
    try:
        hosts = candidate_hosts(network)
    except ValueError as exc:
        logger.warning("Not scanning %r: %s", network, exc)
        return []

    reports: asyncio.Queue[str | None] = asyncio.Queue()
    limit = asyncio.Semaphore(max_concurrency) if max_concurrency else None
    collector = asyncio.create_task(_collect(reports))

    # Launch every probe before awaiting any of them.
    probes = [
        asyncio.create_task(
            _probe(f"{host}:{port}", str(host), port, timeout_s, reports, limit)
        )
        for host in hosts
    ]
    try:
        outcomes = await asyncio.gather(*probes, return_exceptions=True)
    finally:
        await reports.put(_STOP)
    found = await collector

    for host, outcome in zip(hosts, outcomes, strict=True):
        if isinstance(outcome, BaseException):
            logger.warning("Probe of %s failed: %r", host, outcome)

    logger.info(
        "Scanned %s (%d addresses): %d responsive", network, len(hosts), len(found)
    )
    return found
