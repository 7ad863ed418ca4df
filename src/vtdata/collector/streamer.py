"""
StatsStreamer: the single producer of vehicle snapshots.

Each run asks the vehicle for a stream (or drive) snapshot and a charge
snapshot and hands them to the DataContext. Runs are scheduled by
vtdata.scheduler.jobs; this class only decides what one run does and how
often runs should happen.

While collection is passive and the car is idle, runs are skipped so the
car can fall asleep. An asleep car is woken with a bounded number of
attempts before data is requested.
"""
import logging
import threading
import time
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Protocol

from vtdata.collector.context import DataContext
from vtdata.config import Settings
from vtdata.models.states import ChargeState, StreamState
from vtdata.monitors.tracked import Tracked, inline_dispatcher

logger = logging.getLogger(__name__)

COLLECT_JOB_ID = "collect_stats"


class CarState(str, Enum):
    MOVING = "moving"
    CHARGING = "charging"
    IDLE = "idle"
    ASLEEP = "asleep"


class VehicleError(Exception):
    """A request to the vehicle failed."""


class Vehicle(Protocol):
    def query(self, state_type: str): ...
    def stream(self) -> StreamState: ...
    def wake_up(self) -> None: ...
    def is_awake(self) -> bool: ...


def _never() -> bool:
    return False


class StatsStreamer:
    def __init__(
        self,
        context: DataContext,
        vehicle: Vehicle,
        settings: Settings,
        passive_collection: Callable[[], bool] = _never,
    ):
        self.context = context
        self.vehicle = vehicle
        self.settings = settings
        self.passive_collection = passive_collection
        self.car_state: Tracked[CarState] = Tracked(CarState.IDLE, inline_dispatcher)
        self.scheduler = None
        self._interval = settings.poll_interval_seconds
        self._stop = threading.Event()
        self._last_charge: Optional[ChargeState] = None
        self._last_stream: Optional[StreamState] = None

    # ── Scheduling hooks ──────────────────────────────────────────────────────

    def current_interval(self) -> int:
        active = self.car_state.get() in (CarState.MOVING, CarState.CHARGING)
        if active and self.settings.stream_when_possible:
            return self.settings.stream_interval_seconds
        return self.settings.poll_interval_seconds

    def wake(self) -> None:
        """Run the collection job now instead of waiting for the interval."""
        if self.scheduler is not None and not self._stop.is_set():
            self.scheduler.modify_job(COLLECT_JOB_ID, next_run_time=datetime.now())

    def stop(self) -> None:
        """Stop collecting; waits for a run in progress to finish."""
        self._stop.set()
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=True)

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    # ── One collection run ────────────────────────────────────────────────────

    def run_once(self) -> None:
        if self._stop.is_set():
            return
        produce = True
        if self.passive_collection():
            state = self.car_state.get()
            if state is CarState.IDLE:
                idle_ms = time.time() * 1000 - self.car_state.last_set()
                if idle_ms < self.settings.allow_sleep_seconds * 1000:
                    produce = False
                    if not self.vehicle.is_awake():
                        self.car_state.set(CarState.ASLEEP)
                else:
                    # Restart the idle clock
                    self.car_state.set(CarState.IDLE)
            elif state is CarState.ASLEEP:
                if self.vehicle.is_awake():
                    self.car_state.set(CarState.IDLE)
                else:
                    produce = False
        if produce:
            self.produce()
        self._adjust_interval()

    def produce(self) -> None:
        if self.car_state.get() is CarState.ASLEEP and not self.wake_vehicle():
            logger.warning("Unable to wake the car after %d attempts", self.settings.wakeup_attempts)
            return

        if self.settings.stream_when_possible:
            stream = self._query("stream", self.vehicle.stream)
        else:
            stream = self._query("drive", lambda: self.vehicle.query("drive"))
        if stream is not None:
            self._last_stream = stream
            self.context.note_stream_state(stream)
            self._note_car_state(stream_changed=True)

        charge = self._query("charge", lambda: self.vehicle.query("charge"))
        if charge is not None:
            self._last_charge = charge
            self.context.note_charge_state(charge)
            self._note_car_state(stream_changed=False)

    def wake_vehicle(self) -> bool:
        for attempt in range(1, self.settings.wakeup_attempts + 1):
            try:
                self.vehicle.wake_up()
                if self.vehicle.is_awake():
                    self.car_state.set(CarState.IDLE)
                    return True
            except VehicleError as exc:
                logger.debug("Wake-up attempt %d failed: %s", attempt, exc)
            if self._stop.wait(self.settings.wakeup_delay_seconds):
                return False
        return False

    def _query(self, label: str, fetch: Callable):
        attempts = self.settings.query_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                state = fetch()
                if state is not None and state.valid:
                    return state
                logger.debug("No valid %s state on attempt %d", label, attempt)
            except VehicleError as exc:
                logger.warning("%s query failed (attempt %d/%d): %s", label, attempt, attempts, exc)
            if attempt < attempts and self._stop.wait(self.settings.retry_delay_seconds):
                return None
        return None

    def _note_car_state(self, stream_changed: bool) -> None:
        # Check the snapshot that just arrived first, then the older one
        charging = self._last_charge is not None and self._last_charge.is_charging()
        moving = self._last_stream is not None and self._last_stream.is_in_motion()
        if stream_changed:
            new = CarState.MOVING if moving else CarState.CHARGING if charging else CarState.IDLE
        else:
            new = CarState.CHARGING if charging else CarState.MOVING if moving else CarState.IDLE
        self.car_state.update(new)

    def _adjust_interval(self) -> None:
        seconds = self.current_interval()
        if seconds == self._interval or self.scheduler is None or self._stop.is_set():
            return
        self._interval = seconds
        self.scheduler.reschedule_job(COLLECT_JOB_ID, trigger="interval", seconds=seconds)
        logger.info("Collection interval now %ds (car %s)", seconds, self.car_state.get().value)
