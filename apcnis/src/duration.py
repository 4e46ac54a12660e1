"""
Duration parsing for apcupsd ``TIMELEFT``-style values.

apcupsd reports remaining runtime as ``"<float> <unit>"`` where the unit is
``Minutes`` or ``Seconds``.  The result is truncated to whole seconds.

CHANGELOG:
- 2026-10-18: Reject non-finite and out-of-range magnitudes
- 2026-10-09: Initial creation

TODO:
- None
"""

from __future__ import annotations

import math
from datetime import timedelta

_UNIT_SECONDS: dict[str, float] = {
    "minutes": 60.0,
    "seconds": 1.0,
}
"""Seconds per unit, keyed by lower-cased unit token."""


class UnrecognizedUnitError(ValueError):
    """The unit token is not one apcupsd emits for durations."""

    def __init__(self, unit: str) -> None:
        super().__init__(f"unrecognized time metric {unit!r}")
        self.unit = unit


def parse_duration(text: str) -> timedelta:
    """Convert ``"<number> <unit>"`` into a :class:`timedelta`.

    Args:
        text: Value region such as ``"15.0 Minutes"`` or ``"30 Seconds"``.

    Returns:
        The duration, truncated to whole seconds.

    Raises:
        UnrecognizedUnitError: The unit is neither minutes nor seconds.
        ValueError: The fragment is not two tokens, or the magnitude is
            not a finite float within the range of a timedelta.
    """
    tokens = text.split()
    if len(tokens) != 2:
        raise ValueError(f"want 2 tokens, got {len(tokens)}: {text!r}")
    magnitude, unit = tokens

    factor = _UNIT_SECONDS.get(unit.lower())
    if factor is None:
        raise UnrecognizedUnitError(unit)

    seconds = factor * float(magnitude)
    if not math.isfinite(seconds):
        raise ValueError(f"magnitude is not finite: {magnitude!r}")
    try:
        return timedelta(seconds=int(seconds))
    except OverflowError as exc:
        raise ValueError(f"duration out of range: {text!r}") from exc
