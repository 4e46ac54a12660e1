"""
Best-effort parser for apcupsd status responses.

A status response is a stream of frames, each holding one text line of the
form ``"KEY      : value"``: a 9-character space-padded key, a separator,
and a value region starting at column 11.  The stream ends with a line
starting ``END APC``.

Parsing is deliberately forgiving.  Undersized lines, frames that fail to
decode, unknown keys and garbled values are skipped without aborting the
response.  Only a missing ``END APC`` sentinel is fatal: :meth:`summary`
then raises :class:`IncompleteError`.

What to do with each outcome is an explicit decision expressed through
:class:`LineAction` rather than incidental loop control:

- ``ACCEPT``: the line was consumed (recognised or ignored key).
- ``SKIP``: the line or read attempt is dropped; keep reading.
- ``ABORT``: the stream is unusable; stop reading.
- ``END``: the sentinel was seen; the response is complete.

CHANGELOG:
- 2026-10-18: Drop non-finite readings; skip undersized lines before the sentinel check
- 2026-10-14: Require a preceding XONBATT before pairing XOFFBATT
- 2026-10-11: Make skip/abort policy explicit via LineAction
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

import enum
import logging
import math
from collections.abc import Callable
from datetime import datetime, tzinfo

from apcnis.src.codec import FrameError, NisError, decode_frame
from apcnis.src.duration import parse_duration
from apcnis.src.metrics import StatusAccumulator, summarize
from apcnis.src.models import UpsSummary

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TIME_FORMAT: str = "%Y-%m-%d %H:%M:%S %z"
"""apcupsd timestamp format, e.g. ``2026-10-01 14:03:22 -0600``."""

KEY_WIDTH: int = 9
"""Width of the space-padded field key."""

VALUE_OFFSET: int = 11
"""Column at which the value region starts (key + ``": "``)."""

SENTINEL: str = "END APC"
"""Prefix of the line terminating a status response."""


class IncompleteError(NisError):
    """The response ended before the ``END APC`` sentinel was read."""


class LineAction(enum.Enum):
    """Decision taken for one read attempt or decoded line."""

    ACCEPT = "accept"
    SKIP = "skip"
    ABORT = "abort"
    END = "end"


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def parse_timestamp(tokens: list[str]) -> datetime:
    """Parse the three ``date time offset`` tokens of an apcupsd timestamp.

    Raises:
        ValueError: Fewer than three tokens, or they do not match
            :data:`TIME_FORMAT`.
    """
    if len(tokens) < 3:
        raise ValueError(f"timestamp needs 3 tokens, got {len(tokens)}")
    return datetime.strptime(" ".join(tokens[:3]), TIME_FORMAT)


def format_timestamp(ts: datetime, tz: tzinfo | None = None) -> str:
    """Render *ts* in :data:`TIME_FORMAT` in the display zone *tz*.

    Daemons may each run in their own zone; rendering all of them in one
    display zone keeps their reports comparable.  ``None`` means the host's
    local zone.
    """
    return ts.astimezone(tz).strftime(TIME_FORMAT)


# ---------------------------------------------------------------------------
# Read policy
# ---------------------------------------------------------------------------


def classify_read_error(exc: BaseException) -> LineAction:
    """Map a failure while reading a frame to the action to take.

    Undecodable frames and timeouts are transient and the caller may read
    again; an ended or broken stream cannot produce further frames.
    """
    # TimeoutError is an OSError subclass, so test it first.
    if isinstance(exc, (FrameError, TimeoutError)):
        return LineAction.SKIP
    return LineAction.ABORT


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _parse_finite(token: str) -> float:
    value = float(token)
    if not math.isfinite(value):
        raise ValueError(f"not a finite number: {token!r}")
    return value


class StatusParser:
    """Accumulate one status response, line by line.

    Args:
        display_tz: Zone used to render ``last_outage``; ``None`` for the
            host's local zone.
    """

    def __init__(self, display_tz: tzinfo | None = None) -> None:
        self.display_tz = display_tz
        self.complete: bool = False
        self._acc = StatusAccumulator()
        self._handlers: dict[str, Callable[[str, list[str]], None]] = {
            "NOMPOWER ": self._on_nompower,
            "STATUS   ": self._on_status,
            "TIMELEFT ": self._on_timeleft,
            "NUMXFERS ": self._on_numxfers,
            "BCHARGE  ": self._on_bcharge,
            "LOADPCT  ": self._on_loadpct,
            "LINEV    ": self._on_linev,
            "UPSNAME  ": self._on_upsname,
            "XONBATT  ": self._on_xonbatt,
            "XOFFBATT ": self._on_xoffbatt,
        }

    # -- Feeding --

    def feed_frame(self, frame: bytes) -> LineAction:
        """Decode one raw frame and feed its line to the parser."""
        try:
            line = decode_frame(frame)
        except FrameError as exc:
            logger.debug("Skipping undecodable frame: %s", exc)
            return LineAction.SKIP
        return self.feed_line(line)

    def feed_line(self, line: str) -> LineAction:
        """Apply one decoded line to the accumulator.

        Returns:
            ``END`` for the sentinel, ``SKIP`` for undersized lines and
            ``ACCEPT`` otherwise (including unknown keys and values that
            failed to parse).
        """
        line = line.rstrip("\r\n")
        if len(line) < VALUE_OFFSET:
            logger.debug("Skipping undersized line %r", line)
            return LineAction.SKIP
        if line.startswith(SENTINEL):
            self.complete = True
            return LineAction.END

        key = line[:KEY_WIDTH]
        handler = self._handlers.get(key)
        if handler is None:
            return LineAction.ACCEPT

        value = line[VALUE_OFFSET:]
        try:
            handler(value, value.split())
        except (ValueError, IndexError, OverflowError) as exc:
            logger.debug("Dropping field %s: %s", key.strip(), exc)
        return LineAction.ACCEPT

    def summary(self) -> UpsSummary:
        """Return the finished summary.

        Raises:
            IncompleteError: The ``END APC`` sentinel was never fed.
        """
        if not self.complete:
            raise IncompleteError("incomplete apcupsd read")
        return summarize(self._acc)

    # -- Field handlers --

    def _on_nompower(self, value: str, tokens: list[str]) -> None:
        if len(tokens) != 2 or tokens[1] != "Watts":
            return
        self._acc.nominal_power_w = float(int(tokens[0]))

    def _on_status(self, value: str, tokens: list[str]) -> None:
        self._acc.offline = tokens[0] != "ONLINE"

    def _on_timeleft(self, value: str, tokens: list[str]) -> None:
        self._acc.backup = parse_duration(value)

    def _on_numxfers(self, value: str, tokens: list[str]) -> None:
        self._acc.transfer_count = int(tokens[0])

    def _on_bcharge(self, value: str, tokens: list[str]) -> None:
        # Exact string match: "99.9" is not charged.
        self._acc.charged = tokens[0] == "100.0"

    def _on_loadpct(self, value: str, tokens: list[str]) -> None:
        if len(tokens) != 2 or tokens[1] != "Percent":
            return
        self._acc.load_fraction = _parse_finite(tokens[0]) / 100

    def _on_linev(self, value: str, tokens: list[str]) -> None:
        if len(tokens) != 2 or tokens[1] != "Volts":
            return
        self._acc.line_voltage = _parse_finite(tokens[0])

    def _on_upsname(self, value: str, tokens: list[str]) -> None:
        self._acc.name = tokens[0]

    def _on_xonbatt(self, value: str, tokens: list[str]) -> None:
        when = parse_timestamp(tokens)
        self._acc.last_on_battery = when
        self._acc.last_outage = format_timestamp(when, self.display_tz)

    def _on_xoffbatt(self, value: str, tokens: list[str]) -> None:
        when = parse_timestamp(tokens)
        if self._acc.last_on_battery is None:
            return
        delta = when - self._acc.last_on_battery
        # Out-of-order or duplicate events leave the duration unset.
        if delta.total_seconds() <= 0:
            return
        self._acc.last_outage_duration = delta
