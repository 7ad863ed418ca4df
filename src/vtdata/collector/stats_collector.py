"""
Turns incoming vehicle snapshots into stored rows.

Every valid charge snapshot is stored. Stream snapshots go through the
sampling policy first. Handlers are serialized by one lock per collector.
"""
import logging
import threading
from typing import Optional

from vtdata.analysis.sampling import CollectNow, never, worth_recording
from vtdata.models import states
from vtdata.models.states import ChargeState, StreamState
from vtdata.monitors.tracked import Tracked
from vtdata.timeseries.cached import CachedTimeSeries
from vtdata.timeseries.row import Row

logger = logging.getLogger(__name__)


class StatsCollector:
    def __init__(
        self,
        ts: CachedTimeSeries,
        last_stored_charge_state: Tracked[Optional[ChargeState]],
        last_stored_stream_state: Tracked[Optional[StreamState]],
        min_time_s: float = 5,
        min_dist_m: float = 5,
    ):
        self.ts = ts
        self.last_stored_charge_state = last_stored_charge_state
        self.last_stored_stream_state = last_stored_stream_state
        self.min_time_s = min_time_s
        self.min_dist_m = min_dist_m
        self.collect_now: CollectNow = never
        self._lock = threading.Lock()

    def handle_charge_state(self, state: ChargeState) -> Optional[Row]:
        if not state.valid:
            logger.debug("Dropping invalid charge state at %d", state.timestamp)
            return None
        with self._lock:
            stored = self.ts.store_row(states.charge_row(state))
            self.last_stored_charge_state.set(state)
        return stored

    def handle_stream_state(self, state: StreamState) -> Optional[Row]:
        if not state.valid:
            logger.debug("Dropping invalid stream state at %d", state.timestamp)
            return None
        with self._lock:
            last = self.last_stored_stream_state.get()
            if not worth_recording(state, last, self.min_time_s, self.min_dist_m, self.collect_now):
                return None
            stored = self.ts.store_row(states.stream_row(state, speed=round(state.speed, 1)))
            self.last_stored_stream_state.set(state)
        return stored
