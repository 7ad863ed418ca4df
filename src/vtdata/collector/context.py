"""
DataContext: everything the collector knows about one vehicle.

Built once per vehicle and passed to whatever needs it. Construction runs
the legacy upgrade when required, opens the time series (failure here is
fatal and propagates), opens the cycle stores, and rebuilds trips from the
rows loaded into memory.

The producer feeds snapshots in through note_charge_state() and
note_stream_state(). Consumers read the tracked slots or query rows,
cycles and trips.
"""
import logging
import random
import threading
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union

from vtdata.analysis.sampling import CollectNow
from vtdata.analysis.trips import TripBuilder, waypoint_from_stream
from vtdata.collector.stats_collector import StatsCollector
from vtdata.config import Settings
from vtdata.models.cycles import ChargeCycle, RestCycle
from vtdata.models.states import STATS_SCHEMA, ChargeState, StreamState, row_from_states
from vtdata.models.trip import Trip, trips_as_json
from vtdata.monitors.charge import ChargeMonitor
from vtdata.monitors.rest import QuietWindow, RestMonitor
from vtdata.monitors.tracked import Dispatcher, Tracked, default_dispatcher
from vtdata.stores.cycle_export import ChargeCycleExporter, RestCycleExporter, Submitter
from vtdata.stores.cycle_store import ChargeStore, RestStore
from vtdata.timeseries import migrations
from vtdata.timeseries.cached import CachedTimeSeries
from vtdata.timeseries.ranges import TimeRange
from vtdata.timeseries.row import Row

logger = logging.getLogger(__name__)


class DataContext:
    def __init__(
        self,
        settings: Settings,
        vehicle_id: Optional[str] = None,
        submitter: Optional[Submitter] = None,
        rng: Optional[random.Random] = None,
        dispatcher: Dispatcher = default_dispatcher,
    ):
        self.settings = settings
        self.vehicle_id = vehicle_id or settings.vehicle_id
        if not self.vehicle_id:
            raise ValueError("A vehicle id is required")
        self.container = Path(settings.data_dir)
        self.container.mkdir(parents=True, exist_ok=True)
        self._closed = False
        self._close_lock = threading.Lock()
        self._latest_stream: Optional[StreamState] = None

        # Observable slots
        self.last_charge_cycle: Tracked[Optional[ChargeCycle]] = Tracked(None, dispatcher)
        self.last_rest_cycle: Tracked[Optional[RestCycle]] = Tracked(None, dispatcher)
        self.last_stored_charge_state: Tracked[Optional[ChargeState]] = Tracked(None, dispatcher)
        self.last_stored_stream_state: Tracked[Optional[StreamState]] = Tracked(None, dispatcher)

        if migrations.conversion_required(self.container, self.vehicle_id):
            logger.info("Upgrading legacy stats for %s", self.vehicle_id)
            migrations.convert(self.container, self.vehicle_id, STATS_SCHEMA)

        self.ts = CachedTimeSeries(
            self.container, self.vehicle_id, STATS_SCHEMA, settings.load_period.to_range()
        )
        self.collector = StatsCollector(
            self.ts,
            self.last_stored_charge_state,
            self.last_stored_stream_state,
            min_time_s=settings.loc_min_time,
            min_dist_m=settings.loc_min_dist,
        )

        self.window = (
            QuietWindow(settings.rest_limit_from, settings.rest_limit_to)
            if settings.rest_limit_enabled else None
        )
        self.charge_store = ChargeStore(
            self.container, self.vehicle_id,
            ChargeCycleExporter(settings, settings.submit_anon_charge, submitter, rng),
        )
        self.rest_store = RestStore(
            self.container, self.vehicle_id,
            RestCycleExporter(settings, settings.submit_anon_rest, submitter, rng),
        )
        if self.rest_store.requires_initial_load():
            logger.info("Building rest history for %s", self.vehicle_id)
            self.rest_store.do_initial_load(self.ts.iter_rows(), self.window)
        self.charge_store.attach(self.last_charge_cycle)
        self.rest_store.attach(self.last_rest_cycle)

        self.charge_monitor = ChargeMonitor(self.last_charge_cycle, lambda: self._latest_stream)
        self.rest_monitor = RestMonitor(self.last_rest_cycle, self.window)

        self.trips = TripBuilder(settings.max_trip_gap_seconds * 1000)
        self.trips.load_rows(self.get_all_loaded_rows().values())
        self.last_stored_stream_state.add_tracker(self._on_stored_stream_state)

    # ── Producer entry points ─────────────────────────────────────────────────

    def note_charge_state(self, state: ChargeState) -> None:
        if not state.valid:
            return
        self.collector.handle_charge_state(state)
        self.charge_monitor.handle_charge_state(state)
        stream = self._latest_stream or StreamState()
        self.rest_monitor.handle_new_data(row_from_states(state, stream))

    def note_stream_state(self, state: StreamState) -> None:
        if not state.valid:
            return
        self._latest_stream = state
        self.collector.handle_stream_state(state)

    def set_collect_now(self, predicate: CollectNow) -> None:
        self.collector.collect_now = predicate

    def _on_stored_stream_state(self) -> None:
        ss = self.last_stored_stream_state.get()
        if ss is None:
            return
        cs = self.last_stored_charge_state.get()
        wp = waypoint_from_stream(ss, cs.battery_percent if cs is not None else 0.0)
        if wp is None:
            logger.debug("No position in stream state at %d", ss.timestamp)
            return
        self.trips.add_waypoint(wp)

    # ── Rows ──────────────────────────────────────────────────────────────────

    def get_all_loaded_rows(self) -> Dict[int, Row]:
        return self.ts.in_memory.get_index()

    def get_range_of_loaded_rows(self, start: int, end: int) -> Dict[int, Row]:
        return self.ts.in_memory.get_index(TimeRange.open(start, end))

    def get_index(self, period: Optional[TimeRange] = None) -> Dict[int, Row]:
        return self.ts.get_index(period)

    def iter_rows(self, period: Optional[TimeRange] = None) -> Iterator[Row]:
        return self.ts.iter_rows(period)

    def export(self, path: Union[str, Path], period: Optional[TimeRange] = None,
               columns: Optional[Iterable[str]] = None, include_derived: bool = True) -> bool:
        columns = list(columns) if columns else list(STATS_SCHEMA.column_names)
        return self.ts.export(path, period, columns, include_derived)

    # ── Cycles ────────────────────────────────────────────────────────────────

    def get_charge_cycles(self, period: Optional[TimeRange] = None) -> List[ChargeCycle]:
        return self.charge_store.get_cycles(period)

    def get_rest_cycles(self, period: Optional[TimeRange] = None) -> List[RestCycle]:
        return self.rest_store.get_cycles(period)

    def export_charges(self, path: Union[str, Path], period: Optional[TimeRange] = None) -> bool:
        return self.charge_store.export(path, period)

    def export_rests(self, path: Union[str, Path], period: Optional[TimeRange] = None) -> bool:
        return self.rest_store.export(path, period)

    # ── Trips ─────────────────────────────────────────────────────────────────

    def trips_for_day(self, day: str) -> List[Trip]:
        return self.trips.trips_for_day(day)

    def get_trip(self, day: str, index: int) -> Optional[Trip]:
        return self.trips.get_trip(day, index)

    def trips_json(self, trips: List[Trip]) -> str:
        return trips_as_json(trips, self.settings.use_miles)

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self.ts.close()
        self.charge_store.close()
        self.rest_store.close()
        logger.info("Closed data for %s", self.vehicle_id)

    def __enter__(self) -> "DataContext":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
