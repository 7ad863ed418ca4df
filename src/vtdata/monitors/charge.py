"""
Charge cycle detection.

Two states: idle and charging. The first charging snapshot opens a cycle,
each further one folds voltage/current into the running totals, and the
first non-charging snapshot closes the cycle and publishes it to the
last_charge_cycle slot. Every completed cycle is published.
"""
import logging
import threading
from typing import Callable, Optional

from vtdata.models.cycles import ChargeCycle
from vtdata.models.states import ChargeState, StreamState
from vtdata.monitors.tracked import Tracked

logger = logging.getLogger(__name__)


class ChargeMonitor:
    def __init__(
        self,
        last_charge_cycle: Tracked[Optional[ChargeCycle]],
        stream_state: Callable[[], Optional[StreamState]],
    ):
        """
        Args:
            last_charge_cycle: Slot that receives each completed cycle.
            stream_state: Returns the latest known stream snapshot, used for
                the odometer and the location of the charge.
        """
        self.last_charge_cycle = last_charge_cycle
        self._stream_state = stream_state
        self._lock = threading.Lock()
        self.cycle_in_progress: Optional[ChargeCycle] = None

    def handle_charge_state(self, state: ChargeState) -> None:
        if not state.valid:
            return
        completed = None
        with self._lock:
            charging = state.is_charging()
            if self.cycle_in_progress is None:
                if charging:
                    self._start_cycle(state)
            elif charging:
                self._update_running_totals(state)
            else:
                completed = self._complete_cycle(state)
        if completed is not None:
            logger.info(
                "Charge cycle complete: %.1f -> %.1f range, %.1f kWh",
                completed.start_range, completed.end_range, completed.energy_added,
            )
            self.last_charge_cycle.set(completed)

    def _start_cycle(self, state: ChargeState) -> None:
        cycle = ChargeCycle(
            start_time=state.timestamp,
            super_charger=state.fast_charger_present,
            phases=state.charger_phases,
            start_range=state.range,
            start_soc=state.battery_percent,
        )
        ss = self._stream_state()
        if ss is not None:
            cycle.odometer = ss.odometer
            self._locate(cycle, ss)
        self.cycle_in_progress = cycle
        self._update_running_totals(state)

    def _update_running_totals(self, state: ChargeState) -> None:
        cycle = self.cycle_in_progress
        current = state.battery_current if cycle.super_charger else state.charger_actual_current
        cycle.new_ie(state.charger_voltage, current)

    def _complete_cycle(self, state: ChargeState) -> ChargeCycle:
        cycle = self.cycle_in_progress
        cycle.end_time = state.timestamp
        cycle.end_range = state.range
        cycle.end_soc = state.battery_percent
        cycle.energy_added = state.energy_added
        if not cycle.has_location():
            ss = self._stream_state()
            if ss is not None:
                self._locate(cycle, ss)
        self.cycle_in_progress = None
        return cycle

    @staticmethod
    def _locate(cycle: ChargeCycle, ss: StreamState) -> None:
        if ss.est_lat == 0.0 and ss.est_lng == 0.0:
            return
        cycle.lat, cycle.lng = ss.est_lat, ss.est_lng
