"""
Charge and rest cycles.

A cycle is a bounded episode with a start, an end and the place it happened.
Location is None when unknown. The JSON-lines format written to disk uses
0.0, 0.0 for an unknown location, so reading maps that pair back to None.
"""
import json
from copy import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

MS_PER_HOUR = 60 * 60 * 1000
# Remainder of a split cycle starts just past midnight
DAY_SPLIT_GAP_MS = 2000


@dataclass
class BaseCycle:
    start_time: int = 0
    end_time: int = 0
    lat: Optional[float] = None
    lng: Optional[float] = None

    def has_location(self) -> bool:
        return self.lat is not None and self.lng is not None

    @property
    def duration_ms(self) -> int:
        return self.end_time - self.start_time


@dataclass
class ChargeCycle(BaseCycle):
    super_charger: bool = False
    phases: int = 0
    start_range: float = 0.0
    end_range: float = 0.0
    start_soc: float = 0.0
    end_soc: float = 0.0
    odometer: float = 0.0
    peak_voltage: float = 0.0
    avg_voltage: float = 0.0
    peak_current: float = 0.0
    avg_current: float = 0.0
    energy_added: float = 0.0

    # Running totals; not serialized
    _total_voltage: float = field(default=0.0, repr=False, compare=False)
    _total_current: float = field(default=0.0, repr=False, compare=False)
    _n_readings: int = field(default=0, repr=False, compare=False)

    def new_ie(self, voltage: float, current: float) -> None:
        """Fold one voltage/current reading into the session peak and mean."""
        self._n_readings += 1
        self._total_voltage += voltage
        self._total_current += current
        if voltage > self.peak_voltage:
            self.peak_voltage = voltage
        if current > self.peak_current:
            self.peak_current = current
        self.avg_voltage = self._total_voltage / self._n_readings
        self.avg_current = self._total_current / self._n_readings


@dataclass
class RestCycle(BaseCycle):
    start_range: float = 0.0
    end_range: float = 0.0
    start_soc: float = 0.0
    end_soc: float = 0.0

    def loss(self) -> float:
        return self.start_range - self.end_range

    def avg_loss(self) -> float:
        """Range lost per hour."""
        hours = self.duration_ms / MS_PER_HOUR
        return self.loss() / hours if hours > 0 else 0.0

    def split_into_days(self) -> List["RestCycle"]:
        """
        Break a cycle that crosses midnight (local time) into one cycle per day.

        Range and SOC at each day boundary are interpolated by elapsed time, so
        every piece ends where the next one starts.
        """
        pieces: List[RestCycle] = []
        remainder = copy(self)
        while remainder.duration_ms > 0 and _day_of(remainder.start_time) != _day_of(remainder.end_time):
            eod = max(_end_of_day(remainder.start_time), remainder.start_time)
            ratio = (eod - remainder.start_time) / remainder.duration_ms
            boundary_range = remainder.start_range - (remainder.start_range - remainder.end_range) * ratio
            boundary_soc = remainder.start_soc - (remainder.start_soc - remainder.end_soc) * ratio

            first = copy(remainder)
            first.end_time = eod
            first.end_range = boundary_range
            first.end_soc = boundary_soc
            pieces.append(first)

            remainder = copy(remainder)
            remainder.start_time = min(eod + DAY_SPLIT_GAP_MS, remainder.end_time)
            remainder.start_range = boundary_range
            remainder.start_soc = boundary_soc
        pieces.append(remainder)
        return pieces


Cycle = Union[ChargeCycle, RestCycle]


def _day_of(ms: int):
    return datetime.fromtimestamp(ms / 1000).date()


def _end_of_day(ms: int) -> int:
    eod = datetime.fromtimestamp(ms / 1000).replace(hour=23, minute=59, second=59, microsecond=0)
    return int(eod.timestamp() * 1000)


# ─── JSON lines ────────────────────────────────────────────────────────────────

def _r1(value: float) -> float:
    return round(value, 1)


def _location_out(cycle: BaseCycle) -> Dict[str, float]:
    if not cycle.has_location():
        return {"lat": 0.0, "lng": 0.0}
    return {"lat": round(cycle.lat, 6), "lng": round(cycle.lng, 6)}


def _location_in(data: Dict[str, Any]) -> Dict[str, Optional[float]]:
    lat = float(data.get("lat", 0.0))
    lng = float(data.get("lng", 0.0))
    if lat == 0.0 and lng == 0.0:
        return {"lat": None, "lng": None}
    return {"lat": lat, "lng": lng}


def charge_cycle_to_dict(c: ChargeCycle) -> Dict[str, Any]:
    d = {
        "superCharger": c.super_charger,
        "phases": c.phases,
        "startTime": c.start_time,
        "endTime": c.end_time,
        "startRange": _r1(c.start_range),
        "endRange": _r1(c.end_range),
        "startSOC": _r1(c.start_soc),
        "endSOC": _r1(c.end_soc),
    }
    d.update(_location_out(c))
    d.update({
        "odometer": _r1(c.odometer),
        "peakVoltage": _r1(c.peak_voltage),
        "avgVoltage": _r1(c.avg_voltage),
        "peakCurrent": _r1(c.peak_current),
        "avgCurrent": _r1(c.avg_current),
        "energyAdded": _r1(c.energy_added),
    })
    return d


def charge_cycle_from_dict(d: Dict[str, Any]) -> ChargeCycle:
    return ChargeCycle(
        start_time=int(d["startTime"]),
        end_time=int(d["endTime"]),
        super_charger=bool(d.get("superCharger", False)),
        phases=int(d.get("phases", 0)),
        start_range=float(d.get("startRange", 0.0)),
        end_range=float(d.get("endRange", 0.0)),
        start_soc=float(d.get("startSOC", 0.0)),
        end_soc=float(d.get("endSOC", 0.0)),
        odometer=float(d.get("odometer", 0.0)),
        peak_voltage=float(d.get("peakVoltage", 0.0)),
        avg_voltage=float(d.get("avgVoltage", 0.0)),
        peak_current=float(d.get("peakCurrent", 0.0)),
        avg_current=float(d.get("avgCurrent", 0.0)),
        energy_added=float(d.get("energyAdded", 0.0)),
        **_location_in(d),
    )


def rest_cycle_to_dict(c: RestCycle) -> Dict[str, Any]:
    d = {
        "startTime": c.start_time,
        "endTime": c.end_time,
        "startRange": _r1(c.start_range),
        "endRange": _r1(c.end_range),
        "startSOC": _r1(c.start_soc),
        "endSOC": _r1(c.end_soc),
    }
    d.update(_location_out(c))
    return d


def rest_cycle_from_dict(d: Dict[str, Any]) -> RestCycle:
    return RestCycle(
        start_time=int(d["startTime"]),
        end_time=int(d["endTime"]),
        start_range=float(d.get("startRange", 0.0)),
        end_range=float(d.get("endRange", 0.0)),
        start_soc=float(d.get("startSOC", 0.0)),
        end_soc=float(d.get("endSOC", 0.0)),
        **_location_in(d),
    )


def charge_cycle_to_json(c: ChargeCycle) -> str:
    return json.dumps(charge_cycle_to_dict(c))


def charge_cycle_from_json(text: str) -> ChargeCycle:
    return charge_cycle_from_dict(json.loads(text))


def rest_cycle_to_json(c: RestCycle) -> str:
    return json.dumps(rest_cycle_to_dict(c))


def rest_cycle_from_json(text: str) -> RestCycle:
    return rest_cycle_from_dict(json.loads(text))
