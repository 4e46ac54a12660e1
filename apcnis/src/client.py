"""
Async client for the apcupsd Network Information Server.

Dials an apcupsd daemon, sends the fixed ``status`` request frame, and feeds
the response frames to a :class:`~apcnis.src.parser.StatusParser` until the
``END APC`` sentinel is read.  Every query opens its own connection and
closes it before returning, whatever the outcome.

- Connect failures raise :class:`ConnectFailedError`, chained from the
  underlying network error.  They are never retried here.
- A response that stops before the sentinel -- the daemon closed the
  connection, stalled past ``max_read_retries`` read timeouts, or overran
  ``read_deadline_s`` -- raises :class:`~apcnis.src.parser.IncompleteError`.

CHANGELOG:
- 2026-10-14: Bound the read loop with per-read retries and an overall deadline
- 2026-10-12: Add query_many for concurrent multi-target queries
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Iterable

from apcnis.src.codec import STATUS_REQUEST, NisError, read_frame
from apcnis.src.config import NisSettings
from apcnis.src.models import UpsSummary
from apcnis.src.parser import IncompleteError, LineAction, StatusParser, classify_read_error

logger = logging.getLogger(__name__)


class ConnectFailedError(NisError):
    """The daemon could not be reached within the connect timeout."""

    def __init__(self, endpoint: str, reason: BaseException) -> None:
        super().__init__(f"connect to {endpoint} failed: {reason!r}")
        self.endpoint = endpoint


def split_endpoint(endpoint: str) -> tuple[str, int]:
    """Split ``"host:port"`` into its parts.

    Raises:
        ValueError: No port, or the port is not an integer.
    """
    host, sep, port = endpoint.rpartition(":")
    if not sep or not host:
        raise ValueError(f"endpoint {endpoint!r} is not host:port")
    return host, int(port)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class StatusClient:
    """Query apcupsd daemons for their status summary.

    Args:
        settings: Timeouts, read bounds and display zone.  Defaults to a
            freshly loaded :class:`NisSettings`.
    """

    def __init__(self, settings: NisSettings | None = None) -> None:
        self._settings = settings if settings is not None else NisSettings()

    @property
    def settings(self) -> NisSettings:
        return self._settings

    async def query(self, endpoint: str) -> UpsSummary:
        """Fetch and summarise the status of the daemon at *endpoint*.

        Args:
            endpoint: ``"host:port"`` address of the daemon.

        Returns:
            The summary of a complete status response.

        Raises:
            ConnectFailedError: The connection could not be established.
            IncompleteError: The response ended before ``END APC``.
        """
        host, port = split_endpoint(endpoint)
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self._settings.timeout_s,
            )
        except (OSError, TimeoutError) as exc:
            logger.warning("Failed to connect to apcupsd at %s: %r", endpoint, exc)
            raise ConnectFailedError(endpoint, exc) from exc

        try:
            writer.write(STATUS_REQUEST)
            await writer.drain()
            parser = StatusParser(display_tz=self._settings.display_zone)
            await self._read_response(reader, parser, endpoint)
        except OSError as exc:
            logger.warning("Status request to %s failed: %r", endpoint, exc)
            raise IncompleteError(f"incomplete apcupsd read from {endpoint}") from exc
        finally:
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()

        return parser.summary()

    async def query_many(
        self, endpoints: Iterable[str]
    ) -> dict[str, UpsSummary | Exception]:
        """Query several daemons concurrently.

        Returns:
            ``{endpoint: summary}`` for successes and ``{endpoint: error}``
            for failures.  Each endpoint fails independently.
        """
        targets = list(endpoints)
        results = await asyncio.gather(
            *(self.query(ep) for ep in targets),
            return_exceptions=True,
        )
        return dict(zip(targets, results, strict=True))

    async def _read_response(
        self,
        reader: asyncio.StreamReader,
        parser: StatusParser,
        endpoint: str,
    ) -> None:
        """Feed frames from *reader* to *parser* until the sentinel or a stop.

        Returns normally on both outcomes; the caller learns which one from
        ``parser.complete``.
        """
        timeouts = 0
        try:
            async with asyncio.timeout(self._settings.read_deadline_s):
                while True:
                    try:
                        frame = await asyncio.wait_for(
                            read_frame(reader),
                            timeout=self._settings.read_timeout_s,
                        )
                    except (OSError, TimeoutError, asyncio.IncompleteReadError) as exc:
                        action = classify_read_error(exc)
                        if action is LineAction.ABORT:
                            logger.warning(
                                "Response stream from %s ended: %r", endpoint, exc
                            )
                            return
                        timeouts += 1
                        if timeouts > self._settings.max_read_retries:
                            logger.warning(
                                "Giving up on %s after %d read timeouts",
                                endpoint,
                                timeouts,
                            )
                            return
                        continue

                    timeouts = 0
                    if parser.feed_frame(frame) is LineAction.END:
                        return
        except TimeoutError:
            logger.warning(
                "Response from %s exceeded %.1fs read deadline",
                endpoint,
                self._settings.read_deadline_s,
            )


async def query_status(endpoint: str, settings: NisSettings | None = None) -> UpsSummary:
    """Query one daemon with a throwaway :class:`StatusClient`."""
    return await StatusClient(settings).query(endpoint)
