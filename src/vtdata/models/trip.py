"""
Way-points and trips.

A trip is an ordered list of way-points for one continuous drive. Distance
comes from the odometer; energy is the trapezoid-rule integral of power over
time. Elevation is fetched on demand from an elevation provider.
"""
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence

KM_PER_MILE = 1.609344
FEET_PER_METER = 3.28084
MS_PER_HOUR = 60 * 60 * 1000

# Given way-points, return one elevation (meters) per point, or fewer / None
ElevationProvider = Callable[[Sequence["WayPoint"]], Optional[List[float]]]


@dataclass
class WayPoint:
    timestamp: int
    odometer: float = 0.0
    speed: float = 0.0
    heading: float = 0.0
    power: float = 0.0
    soc: float = 0.0
    lat: float = 0.0
    lng: float = 0.0
    elevation: Optional[float] = None   # set lazily

    def as_dict(self, use_miles: bool = True) -> dict:
        elevation = self.elevation if self.elevation is not None else 0.0
        if use_miles:
            speed, odometer = self.speed, self.odometer
            elevation = round(elevation * FEET_PER_METER)
        else:
            speed, odometer = self.speed * KM_PER_MILE, self.odometer * KM_PER_MILE
            elevation = round(elevation, 1)
        return {
            "timestamp": datetime.fromtimestamp(self.timestamp / 1000).strftime("%m/%d/%y %H:%M:%S"),
            "lat": self.lat,
            "lng": self.lng,
            "speed": speed,
            "heading": self.heading,
            "power": self.power,
            "odometer": odometer,
            "elevation": elevation,
        }


class Trip:
    def __init__(self, waypoints: Optional[List[WayPoint]] = None):
        self.waypoints: List[WayPoint] = list(waypoints or [])
        self._energy: Optional[float] = None

    def add_waypoint(self, wp: WayPoint) -> None:
        self.waypoints.append(wp)
        self._energy = None

    def is_empty(self) -> bool:
        return not self.waypoints

    def first_waypoint(self) -> WayPoint:
        return self.waypoints[0]

    def last_waypoint(self) -> WayPoint:
        return self.waypoints[-1]

    def distance(self) -> float:
        if not self.waypoints:
            return 0.0
        return self.last_waypoint().odometer - self.first_waypoint().odometer

    def estimate_energy(self) -> float:
        """kWh if power is in kW. Memoized until the trip changes."""
        if self._energy is not None:
            return self._energy
        total = 0.0
        for prev, cur in zip(self.waypoints, self.waypoints[1:]):
            dt = cur.timestamp - prev.timestamp
            dp = abs(cur.power - prev.power)
            total += min(cur.power, prev.power) * dt + (dp * dt) / 2.0
        self._energy = total / MS_PER_HOUR
        return self._energy

    def add_elevation_data(self, provider: ElevationProvider) -> None:
        if not self.waypoints or self.waypoints[0].elevation is not None:
            return
        elevations = provider(self.waypoints) or []
        for i, wp in enumerate(self.waypoints):
            wp.elevation = elevations[i] if i < len(elevations) else 0.0

    def as_json(self, use_miles: bool = True) -> str:
        return json.dumps([wp.as_dict(use_miles) for wp in self.waypoints], indent=2)


def trips_as_json(trips: Sequence[Trip], use_miles: bool = True) -> str:
    """One JSON array per trip, wrapped in an outer array, oldest trip first."""
    ordered = sorted(trips, key=lambda t: t.first_waypoint().timestamp)
    return json.dumps([[wp.as_dict(use_miles) for wp in t.waypoints] for t in ordered], indent=2)
