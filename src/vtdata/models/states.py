"""
Vehicle state snapshots and the column layout of the stats time series.

Snapshots are produced by the vehicle client. A snapshot with valid=False
(e.g. the car was asleep) carries no usable readings.
"""
from dataclasses import dataclass
from typing import Optional

from vtdata.timeseries.row import Row, RowDescriptor

# ── Stats columns ──────────────────────────────────────────────────────────────

VOLTAGE = "C_VLT"
CURRENT = "C_AMP"
EST_RANGE = "C_EST"
SOC = "C_SOC"
RATE_OF_CHARGE = "C_ROC"
BATTERY_AMPS = "C_BAM"
LATITUDE = "L_LAT"
LONGITUDE = "L_LNG"
HEADING = "L_HDG"
SPEED = "L_SPD"
ODOMETER = "L_ODO"
POWER = "L_PWR"

STATS_SCHEMA = RowDescriptor([
    VOLTAGE, CURRENT, EST_RANGE, SOC, RATE_OF_CHARGE, BATTERY_AMPS,
    LATITUDE, LONGITUDE, HEADING, SPEED, ODOMETER, POWER,
])

# Charging states reported by the vehicle
CHARGING = "Charging"


@dataclass
class ChargeState:
    timestamp: int = 0
    valid: bool = True
    charger_voltage: float = 0.0
    charger_actual_current: float = 0.0
    range: float = 0.0
    battery_percent: float = 0.0
    charge_rate: float = 0.0
    battery_current: float = 0.0
    charging_state: str = "Unknown"
    fast_charger_present: bool = False
    charger_phases: int = 0
    energy_added: float = 0.0

    def is_charging(self) -> bool:
        return self.charging_state == CHARGING or self.charger_voltage > 50


@dataclass
class StreamState:
    timestamp: int = 0
    valid: bool = True
    est_lat: float = 0.0
    est_lng: float = 0.0
    heading: float = 0.0
    speed: float = 0.0
    odometer: float = 0.0
    power: float = 0.0
    shift_state: Optional[str] = None

    def is_in_motion(self) -> bool:
        return self.speed > 0.1


def charge_row(state: ChargeState) -> Row:
    row = Row.for_schema(STATS_SCHEMA, state.timestamp)
    _set_charge_columns(row, state)
    return row


def stream_row(state: StreamState, speed: Optional[float] = None) -> Row:
    row = Row.for_schema(STATS_SCHEMA, state.timestamp)
    _set_stream_columns(row, state, state.speed if speed is None else speed)
    return row


def row_from_states(charge: ChargeState, stream: StreamState) -> Row:
    """A combined row stamped with the newer of the two snapshots."""
    row = Row.for_schema(STATS_SCHEMA, max(charge.timestamp, stream.timestamp))
    _set_charge_columns(row, charge)
    _set_stream_columns(row, stream, stream.speed)
    return row


def _set_charge_columns(row: Row, state: ChargeState) -> None:
    s = STATS_SCHEMA
    row.set(s, VOLTAGE, state.charger_voltage)
    row.set(s, CURRENT, state.charger_actual_current)
    row.set(s, EST_RANGE, state.range)
    row.set(s, SOC, state.battery_percent)
    row.set(s, RATE_OF_CHARGE, state.charge_rate)
    row.set(s, BATTERY_AMPS, state.battery_current)


def _set_stream_columns(row: Row, state: StreamState, speed: float) -> None:
    s = STATS_SCHEMA
    row.set(s, LATITUDE, state.est_lat)
    row.set(s, LONGITUDE, state.est_lng)
    row.set(s, HEADING, state.heading)
    row.set(s, SPEED, speed)
    row.set(s, ODOMETER, state.odometer)
    row.set(s, POWER, state.power)
