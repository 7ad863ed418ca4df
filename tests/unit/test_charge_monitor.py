"""Tests for charge cycle detection."""
import pytest

from vtdata.models.cycles import ChargeCycle
from vtdata.models.states import ChargeState, StreamState
from vtdata.monitors.charge import ChargeMonitor
from vtdata.monitors.tracked import Tracked, inline_dispatcher


# ─── Helpers ───────────────────────────────────────────────────────────────────

def _cs(ts, volts=0.0, amps=0.0, charging=False, **kw) -> ChargeState:
    return ChargeState(
        timestamp=ts,
        charger_voltage=volts,
        charger_actual_current=amps,
        charging_state="Charging" if charging else "Disconnected",
        **kw,
    )


class _Harness:
    def __init__(self, stream=None):
        self.slot = Tracked(None, inline_dispatcher)
        self.emitted = []
        self.slot.add_tracker(lambda: self.emitted.append(self.slot.get()))
        self.stream = stream
        self.monitor = ChargeMonitor(self.slot, lambda: self.stream)


@pytest.fixture(name="h")
def harness_fixture():
    return _Harness()


class TestNewIE:
    def test_running_average_and_peak(self):
        cycle = ChargeCycle()
        averages = []
        for v in (200, 210, 190):
            cycle.new_ie(v, 0)
            averages.append(cycle.avg_voltage)
        assert averages == [200, 205, 200]
        assert cycle.peak_voltage == 210


class TestChargeMonitor:
    def test_no_cycle_while_idle(self, h):
        h.monitor.handle_charge_state(_cs(1000))
        assert h.monitor.cycle_in_progress is None
        assert h.emitted == []

    def test_full_cycle_is_emitted(self, h):
        h.monitor.handle_charge_state(_cs(1000, 200, 30, True, range=100, battery_percent=40))
        h.monitor.handle_charge_state(_cs(2000, 210, 32, True))
        h.monitor.handle_charge_state(_cs(3000, 190, 28, True))
        h.monitor.handle_charge_state(_cs(4000, 0, 0, False, range=150, battery_percent=60, energy_added=12.5))

        assert len(h.emitted) == 1
        c = h.emitted[0]
        assert (c.start_time, c.end_time) == (1000, 4000)
        assert (c.start_range, c.end_range) == (100, 150)
        assert (c.start_soc, c.end_soc) == (40, 60)
        assert c.avg_voltage == pytest.approx(200)
        assert c.peak_voltage == 210
        assert c.peak_current == 32
        assert c.energy_added == 12.5
        assert h.monitor.cycle_in_progress is None

    def test_voltage_alone_counts_as_charging(self, h):
        h.monitor.handle_charge_state(_cs(1000, volts=120))
        assert h.monitor.cycle_in_progress is not None

    def test_supercharger_uses_battery_current(self, h):
        h.monitor.handle_charge_state(
            _cs(1000, 400, 0, True, fast_charger_present=True, battery_current=300, charger_phases=0))
        h.monitor.handle_charge_state(_cs(2000, 0, 0, False))
        c = h.emitted[0]
        assert c.super_charger
        assert c.peak_current == 300

    def test_short_cycle_still_emitted(self, h):
        h.monitor.handle_charge_state(_cs(1000, 240, 10, True))
        h.monitor.handle_charge_state(_cs(1001, 0, 0, False))
        assert len(h.emitted) == 1

    def test_invalid_state_ignored(self, h):
        h.monitor.handle_charge_state(_cs(1000, 240, 10, True))
        bad = _cs(2000)
        bad.valid = False
        h.monitor.handle_charge_state(bad)
        assert h.monitor.cycle_in_progress is not None

    def test_location_and_odometer_from_stream(self):
        h = _Harness(StreamState(timestamp=500, est_lat=37.1, est_lng=-122.1, odometer=1234.5))
        h.monitor.handle_charge_state(_cs(1000, 240, 10, True))
        h.stream = StreamState(timestamp=900, est_lat=40.0, est_lng=-100.0)
        h.monitor.handle_charge_state(_cs(2000, 0, 0, False))
        c = h.emitted[0]
        assert c.odometer == 1234.5
        # Set at start; never overwritten
        assert (c.lat, c.lng) == (37.1, -122.1)

    def test_location_backfilled_at_completion(self, h):
        h.monitor.handle_charge_state(_cs(1000, 240, 10, True))
        h.stream = StreamState(timestamp=1500, est_lat=37.1, est_lng=-122.1)
        h.monitor.handle_charge_state(_cs(2000, 0, 0, False))
        c = h.emitted[0]
        assert (c.lat, c.lng) == (37.1, -122.1)

    def test_location_unknown_stays_none(self, h):
        h.monitor.handle_charge_state(_cs(1000, 240, 10, True))
        h.monitor.handle_charge_state(_cs(2000, 0, 0, False))
        assert h.emitted[0].lat is None
