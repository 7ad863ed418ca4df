"""
Sampling policy: is a stream snapshot worth recording?

The rules favor turns, motion changes and long gaps, and suppress repeated
samples from a parked car. They are checked in order; the first match wins.
"""
from typing import Callable, Optional

from vtdata.analysis.geo import haversine_meters, turn_angle
from vtdata.models.states import StreamState

LONG_GAP_MS = 10 * 60 * 1000
MIN_TURN_DEGREES = 10.0
MOVING_SPEED = 0.1

# Called with the timestamp of the last recorded sample
CollectNow = Callable[[int], bool]


def never(_last_timestamp: int) -> bool:
    return False


def is_moving(state: StreamState) -> bool:
    return state.speed > MOVING_SPEED


def worth_recording(
    cur: StreamState,
    last: Optional[StreamState],
    min_time_s: float,
    min_dist_m: float,
    collect_now: CollectNow = never,
) -> bool:
    if last is None:
        return True

    # App became active, or some other external reason to grab this one
    if collect_now(last.timestamp):
        return True

    # Heading jitters while parked; only count turns when moving
    if turn_angle(cur.heading, last.heading) > MIN_TURN_DEGREES and is_moving(cur):
        return True

    elapsed = abs(cur.timestamp - last.timestamp)
    if elapsed > LONG_GAP_MS:
        return True

    if is_moving(last) != is_moving(cur):
        return True

    meters = haversine_meters(cur.est_lat, cur.est_lng, last.est_lat, last.est_lng)
    return is_moving(cur) and elapsed >= min_time_s * 1000 and meters >= min_dist_m
