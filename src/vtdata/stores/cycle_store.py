"""
Append-only JSON-lines storage for completed cycles.

One file per vehicle and cycle type: <id>.charge.json, <id>.rest.json.
Each line is one cycle. Reads scan the whole file; a line that does not
parse is skipped with a warning.
"""
import json
import logging
import threading
from pathlib import Path
from typing import Callable, Generic, Iterable, List, Optional, TypeVar, Union

from vtdata.models.cycles import (
    BaseCycle,
    ChargeCycle,
    RestCycle,
    charge_cycle_from_json,
    charge_cycle_to_json,
    rest_cycle_from_json,
    rest_cycle_to_json,
)
from vtdata.monitors.rest import QuietWindow, RestMonitor
from vtdata.monitors.tracked import Tracked, inline_dispatcher
from vtdata.stores.cycle_export import CycleExporter
from vtdata.timeseries.ranges import TimeRange
from vtdata.timeseries.row import Row

logger = logging.getLogger(__name__)

C = TypeVar("C", bound=BaseCycle)


def cycle_path(container: Union[str, Path], base_name: str, cycle_type: str) -> Path:
    return Path(container) / f"{base_name}.{cycle_type}.json"


class CycleStore(Generic[C]):
    cycle_type = "cycle"

    def __init__(self, container: Union[str, Path], base_name: str, exporter: CycleExporter,
                 to_json: Callable[[C], str], from_json: Callable[[str], C]):
        self.path = cycle_path(container, base_name, self.cycle_type)
        self.exporter = exporter
        self._to_json = to_json
        self._from_json = from_json
        self._lock = threading.Lock()
        self._writer = open(self.path, "a", encoding="utf-8")
        self.flush_on_each_write = True

    def attach(self, slot: Tracked[Optional[C]]) -> None:
        """Persist (then offer for submission) every cycle published to `slot`."""
        def on_new_cycle() -> None:
            cycle = slot.get()
            if cycle is None:
                return
            self.write(cycle)
            try:
                self.exporter.submit_data(cycle)
            except Exception as exc:
                logger.error("%s submission failed: %s", self.cycle_type, exc)

        slot.add_tracker(on_new_cycle)

    def write(self, cycle: C) -> None:
        with self._lock:
            self._writer.write(self._to_json(cycle) + "\n")
            if self.flush_on_each_write:
                self._writer.flush()

    def get_cycles(self, period: Optional[TimeRange] = None) -> List[C]:
        with self._lock:
            if not self._writer.closed:
                self._writer.flush()
        cycles: List[C] = []
        if not self.path.exists():
            logger.warning("No %s file at %s", self.cycle_type, self.path)
            return cycles
        with open(self.path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    cycle = self._from_json(line)
                except (ValueError, KeyError, TypeError) as exc:
                    logger.warning("Skipping bad %s cycle at line %d: %s", self.cycle_type, lineno, exc)
                    continue
                if period is None or period.contains(cycle.start_time):
                    cycles.append(cycle)
        return cycles

    def export(self, path: Union[str, Path], period: Optional[TimeRange] = None) -> bool:
        return self.exporter.export(path, self.get_cycles(period))

    def close(self) -> None:
        with self._lock:
            if not self._writer.closed:
                self._writer.close()


class ChargeStore(CycleStore[ChargeCycle]):
    cycle_type = "charge"

    def __init__(self, container: Union[str, Path], base_name: str, exporter: CycleExporter):
        super().__init__(container, base_name, exporter, charge_cycle_to_json, charge_cycle_from_json)


class RestStore(CycleStore[RestCycle]):
    cycle_type = "rest"

    def __init__(self, container: Union[str, Path], base_name: str, exporter: CycleExporter):
        self._needs_initial_load = not cycle_path(container, base_name, self.cycle_type).exists()
        super().__init__(container, base_name, exporter, rest_cycle_to_json, rest_cycle_from_json)

    def requires_initial_load(self) -> bool:
        """True when the rest file did not exist before this store opened it."""
        return self._needs_initial_load

    def do_initial_load(self, rows: Iterable[Row], window: Optional[QuietWindow] = None) -> int:
        """
        Rebuild rest history from stored rows. Cycles found are written to
        this store but not submitted. Returns the number of cycles written.
        """
        found: Tracked[Optional[RestCycle]] = Tracked(None, dispatcher=inline_dispatcher)
        count = 0

        def record() -> None:
            nonlocal count
            self.write(found.get())
            count += 1

        found.add_tracker(record)
        monitor = RestMonitor(found, window)
        self.flush_on_each_write = False
        try:
            for row in rows:
                monitor.handle_new_data(row)
        finally:
            self.flush_on_each_write = True
            with self._lock:
                self._writer.flush()
        self._needs_initial_load = False
        logger.info("Initial load found %d rest cycles", count)
        return count
