"""
Rest cycle detection.

A rest is a run of idle rows (no speed, no charging voltage). The first idle
row opens a cycle, later idle rows move its end forward, and the first busy
row closes it. A closed cycle is published only when it lasted at least an
hour and the range did not go up; a gain means a charge was missed and the
cycle would skew loss figures.

An optional quiet window limits detection to a time of day. A row outside
the window closes any open cycle.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, time
from typing import Optional

from vtdata.models import states
from vtdata.models.cycles import RestCycle
from vtdata.monitors.tracked import Tracked
from vtdata.timeseries.row import Row

logger = logging.getLogger(__name__)

MIN_REST_MS = 60 * 60 * 1000
MAX_IDLE_VOLTAGE = 100


@dataclass(frozen=True)
class QuietWindow:
    start: time
    end: time

    @property
    def straddles_midnight(self) -> bool:
        return self.end < self.start

    def is_outside(self, timestamp: int) -> bool:
        t = datetime.fromtimestamp(timestamp / 1000).time()
        if self.straddles_midnight:
            return self.end < t < self.start
        return t > self.end or t < self.start


class RestMonitor:
    def __init__(self, last_rest_cycle: Tracked[Optional[RestCycle]],
                 window: Optional[QuietWindow] = None):
        self.last_rest_cycle = last_rest_cycle
        self.window = window
        self._lock = threading.Lock()
        self.cycle_in_progress: Optional[RestCycle] = None

    def handle_new_data(self, row: Row) -> None:
        completed = None
        with self._lock:
            if self.window is not None and self.window.is_outside(row.timestamp):
                if self.cycle_in_progress is not None:
                    completed = self._complete_cycle(row)
            else:
                s = states.STATS_SCHEMA
                idle = (row.get(s, states.SPEED) == 0
                        and row.get(s, states.VOLTAGE) < MAX_IDLE_VOLTAGE)
                if self.cycle_in_progress is None:
                    if idle:
                        self._start_cycle(row)
                elif idle:
                    self._update_cycle(row)
                else:
                    completed = self._complete_cycle(row)
        if completed is not None:
            self.last_rest_cycle.set(completed)

    def _start_cycle(self, row: Row) -> None:
        s = states.STATS_SCHEMA
        self.cycle_in_progress = RestCycle(
            start_time=row.timestamp,
            end_time=row.timestamp,
            start_range=row.get(s, states.EST_RANGE),
            end_range=row.get(s, states.EST_RANGE),
            start_soc=row.get(s, states.SOC),
            end_soc=row.get(s, states.SOC),
        )

    def _update_cycle(self, row: Row) -> None:
        s = states.STATS_SCHEMA
        cycle = self.cycle_in_progress
        cycle.end_time = row.timestamp
        cycle.end_range = row.get(s, states.EST_RANGE)
        cycle.end_soc = row.get(s, states.SOC)
        lat, lng = row.get(s, states.LATITUDE), row.get(s, states.LONGITUDE)
        if lat != 0.0 or lng != 0.0:
            cycle.lat, cycle.lng = lat, lng

    def _complete_cycle(self, row: Row) -> Optional[RestCycle]:
        """Close the open cycle; returns it only if it should be published."""
        self._update_cycle(row)
        cycle = self.cycle_in_progress
        self.cycle_in_progress = None
        if cycle.duration_ms < MIN_REST_MS:
            return None
        if cycle.end_range > cycle.start_range:
            logger.debug("Discarding rest cycle with a range gain: %s", cycle)
            return None
        logger.info("Rest cycle complete: lost %.1f over %.1f h",
                    cycle.loss(), cycle.duration_ms / MIN_REST_MS)
        return cycle
