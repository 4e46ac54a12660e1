"""
Pure metric calculator that turns accumulated status fields into a UpsSummary.

The status parser collects raw fields into a :class:`StatusAccumulator`.
Three of them -- nominal power, load fraction and remaining runtime -- are
held aside and only combined here, once the whole response has been read:

- ``power_w = round(nominal_power_w * load_fraction)``
- ``backup_minutes = backup`` truncated to whole minutes
- ``charge_wh = round(power_w * backup_minutes / 60)``

Whole watts and whole watt-hours follow the UPS tech-sheet convention, e.g.
a 1500 VA unit quoted as "187 Wh battery @ peak 900 W".

This is a pure function: no side effects, no I/O, no clock.

CHANGELOG:
- 2026-10-18: Keep charge in integer arithmetic; zero power on float overflow
- 2026-10-13: Render outage duration as text
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from apcnis.src.models import UpsSummary

# ---------------------------------------------------------------------------
# Accumulator
# ---------------------------------------------------------------------------


@dataclass
class StatusAccumulator:
    """Mutable fields gathered while reading one status response.

    Attributes:
        nominal_power_w: ``NOMPOWER`` in watts, held aside for the power
            calculation.
        load_fraction: ``LOADPCT`` divided by 100, held aside.
        backup: ``TIMELEFT`` duration, held aside.
        name: ``UPSNAME``.
        charged: ``BCHARGE`` is exactly ``100.0``.
        offline: ``STATUS`` is not ``ONLINE``.
        line_voltage: ``LINEV`` in volts.
        transfer_count: ``NUMXFERS``.
        last_on_battery: Parsed ``XONBATT`` timestamp.
        last_outage: ``last_on_battery`` rendered in the display zone.
        last_outage_duration: ``XOFFBATT - XONBATT`` when positive.
    """

    nominal_power_w: float = 0.0
    load_fraction: float = 0.0
    backup: timedelta = timedelta(0)
    name: str = ""
    charged: bool = False
    offline: bool = False
    line_voltage: float = 0.0
    transfer_count: int = 0
    last_on_battery: datetime | None = None
    last_outage: str = ""
    last_outage_duration: timedelta | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return math.floor(value + 0.5)


def format_elapsed(delta: timedelta) -> str:
    """Render a duration compactly, e.g. ``2s``, ``4m10s`` or ``1h0m5s``."""
    total = int(delta.total_seconds())
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{minutes}m{seconds}s"
    return f"{seconds}s"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def summarize(acc: StatusAccumulator) -> UpsSummary:
    """Compute derived metrics and freeze *acc* into a :class:`UpsSummary`.

    Args:
        acc: Fields accumulated from a complete status response.

    Returns:
        The immutable summary.
    """
    raw_power = acc.nominal_power_w * acc.load_fraction
    # A product that overflows float reports no power.
    power_w = _round_half_up(raw_power) if math.isfinite(raw_power) else 0
    backup_minutes = int(acc.backup // timedelta(minutes=1))
    # Integer form of round_half_up(power_w * backup_minutes / 60).
    charge_wh = (power_w * backup_minutes + 30) // 60

    duration = acc.last_outage_duration
    return UpsSummary(
        name=acc.name,
        power_w=power_w,
        charge_wh=charge_wh,
        backup_minutes=backup_minutes,
        charged=acc.charged,
        offline=acc.offline,
        line_voltage=acc.line_voltage,
        transfer_count=acc.transfer_count,
        last_on_battery=acc.last_on_battery,
        last_outage=acc.last_outage,
        last_outage_duration=duration,
        last_outage_duration_text=format_elapsed(duration) if duration else "",
    )
