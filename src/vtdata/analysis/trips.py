"""
Trip segmentation.

Way-points arrive in time order. A gap longer than max_gap_ms ends the trip
in progress and starts a new one; otherwise a point joins the trip only if
the car actually moved (or turned) since the last point kept. Finished trips
shorter than MIN_TRIP_DISTANCE are dropped. Kept trips are filed under the
local calendar day of their first point.
"""
import logging
import threading
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from vtdata.analysis.geo import haversine_meters, turn_angle
from vtdata.models import states
from vtdata.models.trip import Trip, WayPoint
from vtdata.timeseries.row import Row

logger = logging.getLogger(__name__)

DEFAULT_MAX_GAP_MS = 15 * 60 * 1000
MIN_TRIP_DISTANCE = 0.1
MIN_MOVE_METERS = 5.0
MIN_TURN_MOVE_METERS = 3.0
MIN_TURN_DEGREES = 10.0


def day_key(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp / 1000).strftime("%Y-%m-%d")


def there_was_motion(wp1: WayPoint, wp2: WayPoint) -> bool:
    turn = turn_angle(wp1.heading, wp2.heading)
    meters = haversine_meters(wp1.lat, wp1.lng, wp2.lat, wp2.lng)
    return meters >= MIN_MOVE_METERS or (turn > MIN_TURN_DEGREES and meters > MIN_TURN_MOVE_METERS)


def waypoint_from_row(row: Row) -> Optional[WayPoint]:
    """None for rows that carry no position yet (lat/lng 0,0 or no odometer)."""
    s = states.STATS_SCHEMA
    lat = row.get(s, states.LATITUDE)
    lng = row.get(s, states.LONGITUDE)
    odo = row.get(s, states.ODOMETER)
    if (lat == 0.0 and lng == 0.0) or odo == 0.0:
        return None
    return WayPoint(
        timestamp=row.timestamp,
        odometer=odo,
        speed=row.get(s, states.SPEED),
        heading=row.get(s, states.HEADING),
        power=row.get(s, states.POWER),
        soc=row.get(s, states.SOC),
        lat=lat,
        lng=lng,
    )


def waypoint_from_stream(state: states.StreamState, soc: float = 0.0) -> Optional[WayPoint]:
    """Live counterpart of waypoint_from_row, with the same no-position rule."""
    if (state.est_lat == 0.0 and state.est_lng == 0.0) or state.odometer == 0.0:
        return None
    return WayPoint(
        timestamp=state.timestamp,
        odometer=state.odometer,
        speed=state.speed,
        heading=state.heading,
        power=state.power,
        soc=soc,
        lat=state.est_lat,
        lng=state.est_lng,
    )


class TripBuilder:
    def __init__(self, max_gap_ms: int = DEFAULT_MAX_GAP_MS):
        self.max_gap_ms = max_gap_ms
        self.trip_in_progress: Optional[Trip] = None
        self._by_day: Dict[str, List[Trip]] = defaultdict(list)
        self._lock = threading.Lock()

    def add_waypoint(self, wp: WayPoint) -> None:
        with self._lock:
            if self.trip_in_progress is None:
                self.trip_in_progress = Trip([wp])
                return

            last = self.trip_in_progress.last_waypoint()
            if wp.timestamp - last.timestamp > self.max_gap_ms:
                self._end_current_trip()
                self.trip_in_progress = Trip([wp])
                return

            if there_was_motion(wp, last):
                self.trip_in_progress.add_waypoint(wp)

    def load_rows(self, rows: Iterable[Row]) -> None:
        """Replay stored rows, then close whatever trip is left open."""
        n = 0
        for row in rows:
            wp = waypoint_from_row(row)
            if wp is not None:
                self.add_waypoint(wp)
                n += 1
        self.end_current_trip()
        logger.info("Built trips from %d way-points", n)

    def end_current_trip(self) -> None:
        with self._lock:
            self._end_current_trip()

    def trips_for_day(self, day: str) -> List[Trip]:
        with self._lock:
            return list(self._by_day.get(day, []))

    def get_trip(self, day: str, index: int) -> Optional[Trip]:
        trips = self.trips_for_day(day)
        return trips[index] if 0 <= index < len(trips) else None

    def days_with_trips(self, year: Optional[int] = None, month: Optional[int] = None) -> List[str]:
        prefix = ""
        if year is not None:
            prefix = f"{year:04d}-" + (f"{month:02d}-" if month is not None else "")
        with self._lock:
            return sorted(d for d, trips in self._by_day.items() if trips and d.startswith(prefix))

    def _end_current_trip(self) -> None:
        trip = self.trip_in_progress
        self.trip_in_progress = None
        if trip is None:
            return
        if trip.distance() > MIN_TRIP_DISTANCE:
            self._by_day[day_key(trip.first_waypoint().timestamp)].append(trip)
        else:
            logger.debug("Discarding trip of %.2f", trip.distance())
