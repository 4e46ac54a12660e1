"""
Pydantic model for a summarised apcupsd status response.

Defines the UpsSummary model handed to callers once a status exchange has
been read to its ``END APC`` sentinel and the derived metrics computed.

CHANGELOG:
- 2026-10-13: Add last_outage_duration_text
- 2026-10-09: Initial creation

TODO:
- None
"""

from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict


class UpsSummary(BaseModel):
    """Immutable snapshot of one UPS as reported by its apcupsd daemon.

    Attributes:
        name: Device name (``UPSNAME``).
        power_w: Current draw in whole watts (nominal power x load).
        charge_wh: Energy available for the remaining runtime, whole
            watt-hours.
        backup_minutes: Remaining runtime on battery, whole minutes.
        charged: Battery reports exactly ``100.0`` percent charge.
        offline: UPS status is anything other than ``ONLINE``.
        line_voltage: Input line voltage in volts.
        transfer_count: Number of line/battery transfers since start-up.
        last_on_battery: Time of the most recent transfer to battery.
        last_outage: ``last_on_battery`` rendered in the display zone.
        last_outage_duration: Time spent on battery during the most recent
            outage, when a later return to line power was reported.
        last_outage_duration_text: Human rendering of
            ``last_outage_duration``.
    """

    model_config = ConfigDict(frozen=True)

    name: str = ""
    power_w: int = 0
    charge_wh: int = 0
    backup_minutes: int = 0
    charged: bool = False
    offline: bool = False
    line_voltage: float = 0.0
    transfer_count: int = 0
    last_on_battery: datetime | None = None
    last_outage: str = ""
    last_outage_duration: timedelta | None = None
    last_outage_duration_text: str = ""
