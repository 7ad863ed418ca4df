"""Tests for trip segmentation and the trip model."""
import json
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from vtdata.analysis.trips import (
    TripBuilder,
    day_key,
    there_was_motion,
    waypoint_from_row,
    waypoint_from_stream,
)
from vtdata.models import states
from vtdata.models.states import StreamState
from vtdata.models.trip import KM_PER_MILE, Trip, WayPoint, trips_as_json
from vtdata.timeseries.row import Row

MINUTE = 60 * 1000
# About 11 m of latitude per 0.0001 degree
STEP = 0.0001


# ─── Helpers ───────────────────────────────────────────────────────────────────

def _wp(ts, lat=37.0, lng=-122.0, odo=100.0, heading=0.0, power=0.0) -> WayPoint:
    return WayPoint(timestamp=ts, lat=lat, lng=lng, odometer=odo, heading=heading, power=power)


def _ms(day, hour) -> int:
    return int(datetime(2024, 6, day, hour).timestamp() * 1000)


@pytest.fixture(name="builder")
def builder_fixture():
    return TripBuilder(max_gap_ms=15 * MINUTE)


class TestMotion:
    def test_moved_far_enough(self):
        assert there_was_motion(_wp(0), _wp(1, lat=37.0 + STEP))

    def test_stood_still(self):
        assert not there_was_motion(_wp(0), _wp(1))

    def test_turn_with_small_move(self):
        # ~4.4 m with a 45 degree turn
        a = _wp(0, heading=0)
        b = _wp(1, lat=37.0 + 0.00004, heading=45)
        assert there_was_motion(a, b)
        assert not there_was_motion(a, _wp(1, lat=37.0 + 0.00004, heading=5))


class TestTripBuilder:
    def test_gap_splits_trips(self, builder):
        t0 = _ms(12, 9)
        builder.add_waypoint(_wp(t0, odo=100.0))
        builder.add_waypoint(_wp(t0 + MINUTE, lat=37.0 + 10 * STEP, odo=100.5))
        third = _wp(t0 + 17 * MINUTE, lat=37.01, odo=101.0)
        builder.add_waypoint(third)

        finished = builder.trips_for_day(day_key(t0))
        assert len(finished) == 1
        assert len(finished[0].waypoints) == 2
        assert builder.trip_in_progress.waypoints == [third]

    def test_points_without_motion_are_dropped(self, builder):
        t0 = _ms(12, 9)
        builder.add_waypoint(_wp(t0))
        builder.add_waypoint(_wp(t0 + MINUTE))
        assert len(builder.trip_in_progress.waypoints) == 1

    def test_short_trip_is_discarded(self, builder):
        t0 = _ms(12, 9)
        builder.add_waypoint(_wp(t0, odo=100.0))
        builder.add_waypoint(_wp(t0 + MINUTE, lat=37.0 + STEP, odo=100.05))
        builder.end_current_trip()
        assert builder.trips_for_day(day_key(t0)) == []
        assert builder.trip_in_progress is None

    def test_trips_filed_by_first_day(self, builder):
        builder.add_waypoint(_wp(_ms(12, 9), odo=100.0))
        builder.add_waypoint(_wp(_ms(12, 9) + MINUTE, lat=37.01, odo=101.0))
        builder.end_current_trip()
        builder.add_waypoint(_wp(_ms(14, 9), odo=200.0))
        builder.add_waypoint(_wp(_ms(14, 9) + MINUTE, lat=37.01, odo=203.0))
        builder.end_current_trip()

        assert builder.days_with_trips() == ["2024-06-12", "2024-06-14"]
        assert builder.days_with_trips(2024, 6) == ["2024-06-12", "2024-06-14"]
        assert builder.days_with_trips(2024, 7) == []
        assert builder.get_trip("2024-06-14", 0).distance() == pytest.approx(3.0)
        assert builder.get_trip("2024-06-14", 1) is None

    def test_load_rows_skips_rows_without_position(self, builder):
        s = states.STATS_SCHEMA
        rows = []
        t0 = _ms(12, 9)
        for i, (lat, odo) in enumerate([(0.0, 100.0), (37.0, 0.0), (37.0, 100.0), (37.01, 102.0)]):
            r = Row.for_schema(s, t0 + i * MINUTE)
            r.set(s, states.LATITUDE, lat)
            r.set(s, states.LONGITUDE, -122.0 if lat else 0.0)
            r.set(s, states.ODOMETER, odo)
            rows.append(r)

        assert waypoint_from_row(rows[0]) is None
        assert waypoint_from_row(rows[1]) is None
        builder.load_rows(rows)

        trips = builder.trips_for_day(day_key(t0))
        assert len(trips) == 1
        assert [wp.odometer for wp in trips[0].waypoints] == [100.0, 102.0]
        assert builder.trip_in_progress is None

    def test_stream_states_without_position_are_rejected(self):
        assert waypoint_from_stream(StreamState(timestamp=1, odometer=100.0, speed=30.0)) is None
        assert waypoint_from_stream(StreamState(timestamp=1, est_lat=37.0, est_lng=-122.0)) is None
        wp = waypoint_from_stream(
            StreamState(timestamp=1, est_lat=37.0, est_lng=-122.0, odometer=100.0, speed=30.0),
            soc=55.0,
        )
        assert (wp.lat, wp.lng, wp.odometer, wp.speed, wp.soc) == (37.0, -122.0, 100.0, 30.0, 55.0)


class TestTrip:
    def test_distance(self):
        assert Trip().distance() == 0.0
        assert Trip([_wp(0, odo=10), _wp(1, odo=12.5)]).distance() == 2.5

    def test_energy_is_trapezoid_and_memoized(self):
        hour = 60 * MINUTE
        trip = Trip([_wp(0, power=10), _wp(hour, power=20)])
        assert trip.estimate_energy() == pytest.approx(15)
        trip.waypoints[1].power = 1000
        assert trip.estimate_energy() == pytest.approx(15)
        trip.add_waypoint(_wp(2 * hour, power=1000))
        assert trip.estimate_energy() == pytest.approx(505 + 1000)

    def test_elevation_fetched_once(self):
        provider = MagicMock(return_value=[10.0])
        trip = Trip([_wp(0), _wp(1)])
        trip.add_elevation_data(provider)
        trip.add_elevation_data(provider)
        provider.assert_called_once()
        assert [wp.elevation for wp in trip.waypoints] == [10.0, 0.0]

    def test_as_json_units(self):
        wp = _wp(_ms(12, 9), odo=100.0)
        wp.speed = 60.0
        wp.elevation = 100.0
        miles = json.loads(Trip([wp]).as_json(use_miles=True))[0]
        km = json.loads(Trip([wp]).as_json(use_miles=False))[0]
        assert miles["speed"] == 60.0
        assert miles["elevation"] == 328
        assert km["odometer"] == pytest.approx(100.0 * KM_PER_MILE)
        assert km["elevation"] == 100.0
        assert miles["timestamp"] == "06/12/24 09:00:00"

    def test_trips_as_json_oldest_first(self):
        late = Trip([_wp(2000)])
        early = Trip([_wp(1000)])
        out = json.loads(trips_as_json([late, early]))
        assert len(out) == 2
        assert out[0][0]["timestamp"] == WayPoint(1000).as_dict()["timestamp"]
