"""
Command-line entrypoint: query apcupsd daemons and log their summaries.

Queries the single ``--target`` daemon, or -- with ``--network`` -- every
daemon found by scanning that IPv4 block.  All targets are queried
concurrently; each logs either its summary as JSON or its error.  Runs once
and exits.

Usage:
    apcnis --target ups.local
    apcnis --network 192.168.1.0/24 --timeout 2

Flags override the matching NisSettings environment variables.

CHANGELOG:
- 2026-10-18: Structured endpoint and summary fields in JSON log lines
- 2026-10-15: Initial creation

TODO:
- None
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import UTC, datetime

from apcnis.src.client import StatusClient
from apcnis.src.config import NisSettings
from apcnis.src.scanner import scan

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


_CONTEXT_FIELDS = ("endpoint", "summary")
"""Record attributes, passed via ``extra=``, copied into each JSON line."""


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Per-daemon records carry ``endpoint`` and, on success, ``summary`` as a
    nested object so log shippers can index UPS fields directly.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for field in _CONTEXT_FIELDS:
            if hasattr(record, field):
                entry[field] = getattr(record, field)
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: int = logging.INFO) -> None:
    """Send JSON lines to stderr from the root logger at *level*."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    p = argparse.ArgumentParser(
        description="Query apcupsd daemons and summarise their status"
    )
    p.add_argument(
        "--target",
        help="server to query at --port (overridden by --network)",
    )
    p.add_argument("--port", type=int, help="apcupsd NIS port (default 3551)")
    p.add_argument(
        "--network",
        help="IPv4 network to scan for daemons, e.g. 192.168.1.0/24",
    )
    p.add_argument(
        "--timeout", type=float, help="connect timeout in seconds (default 5)"
    )
    p.add_argument("--debug", action="store_true", help="log skipped lines and fields")
    return p.parse_args(argv)


def build_settings(args: argparse.Namespace) -> NisSettings:
    """Overlay command-line flags on environment-loaded settings."""
    overrides = {
        "nis_host": args.target,
        "nis_port": args.port,
        "scan_network": args.network,
        "timeout_s": args.timeout,
    }
    return NisSettings(**{k: v for k, v in overrides.items() if v is not None})


async def run(settings: NisSettings) -> int:
    """Resolve targets, query them all, and log the outcome.

    Returns:
        Process exit status: 1 when a scan finds nothing, else 0.
    """
    targets = [settings.target_endpoint]
    if settings.scan_network:
        targets = await scan(
            settings.scan_network,
            settings.timeout_s,
            port=settings.nis_port,
            max_concurrency=settings.max_concurrency,
        )
        if not targets:
            logger.error("No targets found in network=%r", settings.scan_network)
            return 1

    results = await StatusClient(settings).query_many(targets)
    for endpoint, result in results.items():
        context: dict[str, object] = {"endpoint": endpoint}
        if isinstance(result, Exception):
            logger.warning("%s: %s", endpoint, result, extra=context)
        else:
            context["summary"] = result.model_dump(mode="json")
            logger.info("Status of %s", endpoint, extra=context)
    return 0


def main(argv: list[str] | None = None) -> None:
    """Synchronous entrypoint."""
    args = parse_args(argv)
    configure_logging(logging.DEBUG if args.debug else logging.INFO)
    sys.exit(asyncio.run(run(build_settings(args))))


if __name__ == "__main__":
    main()
