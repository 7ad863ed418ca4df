"""
Spreadsheet export and anonymous submission of cycles.

Export writes one bold header row and one row per cycle. Submission sends a
copy of a completed cycle, with its location dithered (or removed) for
privacy, to an injected submitter callable.
"""
import json
import logging
import random
from copy import copy
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from openpyxl import Workbook

from vtdata.config import Settings
from vtdata.models.cycles import (
    BaseCycle,
    ChargeCycle,
    RestCycle,
    charge_cycle_to_dict,
    rest_cycle_to_dict,
)
from vtdata.timeseries.export import write_header

logger = logging.getLogger(__name__)

DATE_FORMAT = "m/d/yy h:mm:ss"

# (subject, body) -> None
Submitter = Callable[[str, str], None]

CHARGE_LABELS = [
    "Start Date/Time", "Ending Date/Time", "Supercharger?", "Phases", "Start Range",
    "End Range", "Start SOC", "End SOC", "(Latitude, ", " Longitude)", "Odometer",
    "Peak V", "Avg V", "Peak I", "Avg I", "Energy",
]

REST_LABELS = [
    "Start Date/Time", "Ending Date/Time", "Start Range", "End Range",
    "Start SOC", "End SOC", "(Latitude, ", " Longitude)", "Loss/Hr",
]


def _when(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000)


class CycleExporter:
    cycle_type = "Cycle"
    labels: List[str] = []

    def __init__(self, settings: Settings, submit_enabled: bool,
                 submitter: Optional[Submitter] = None,
                 rng: Optional[random.Random] = None):
        self.settings = settings
        self.submit_enabled = submit_enabled
        self.submitter = submitter
        self.rng = rng or random.Random()

    # ── Export ────────────────────────────────────────────────────────────────

    def export(self, path: Union[str, Path], cycles: Sequence[BaseCycle]) -> bool:
        try:
            wb = Workbook()
            ws = wb.active
            ws.title = "Sheet1"
            write_header(ws, self.labels)
            for r, cycle in enumerate(cycles, start=2):
                for j, value in enumerate(self.row_values(cycle, r), start=1):
                    cell = ws.cell(row=r, column=j, value=value)
                    if isinstance(value, datetime):
                        cell.number_format = DATE_FORMAT
            wb.save(str(path))
            return True
        except OSError as exc:
            logger.warning("%s export to %s failed: %s", self.cycle_type, path, exc)
            return False

    def row_values(self, cycle: BaseCycle, r: int) -> List[Any]:
        raise NotImplementedError

    # ── Anonymous submission ──────────────────────────────────────────────────

    def submit_data(self, cycle: BaseCycle) -> Optional[str]:
        """Dither a copy of `cycle` and send it. Returns the body sent."""
        if not self.submit_enabled:
            return None
        dithered = copy(cycle)
        self.dither_location(dithered)
        body = dict(self.to_dict(dithered))
        body.update(self.extra_fields())
        text = json.dumps(body)

        subject = f"{self.cycle_type} Data Submission"
        if self.submitter is not None:
            self.submitter(subject, text)
        logger.info("%s: %s", subject, text)
        return text

    def dither_location(self, cycle: BaseCycle) -> None:
        if not self.settings.include_loc_data:
            cycle.lat = cycle.lng = None
            return
        if not cycle.has_location():
            return
        scale = 10 ** self.settings.dither_loc_amt
        cycle.lat += self._offset(scale)
        cycle.lng += self._offset(scale)

    def _offset(self, scale: float) -> float:
        magnitude = self.rng.uniform(0.5, 1.0) / scale
        return magnitude if self.rng.random() > 0.5 else -magnitude

    def to_dict(self, cycle: BaseCycle) -> Dict[str, Any]:
        raise NotImplementedError

    def extra_fields(self) -> Dict[str, Any]:
        return {"uuid": self.settings.vehicle_uuid}


class ChargeCycleExporter(CycleExporter):
    cycle_type = "Charge"
    labels = CHARGE_LABELS

    def row_values(self, c: ChargeCycle, r: int) -> List[Any]:
        return [
            _when(c.start_time), _when(c.end_time), c.super_charger, c.phases,
            c.start_range, c.end_range, c.start_soc, c.end_soc,
            c.lat or 0.0, c.lng or 0.0, c.odometer,
            c.peak_voltage, c.avg_voltage, c.peak_current, c.avg_current, c.energy_added,
        ]

    def dither_location(self, cycle: ChargeCycle) -> None:
        # Supercharger locations are public
        if cycle.super_charger and self.settings.include_loc_data:
            return
        super().dither_location(cycle)

    def to_dict(self, cycle: ChargeCycle) -> Dict[str, Any]:
        return charge_cycle_to_dict(cycle)

    def extra_fields(self) -> Dict[str, Any]:
        return {"battery": self.settings.battery_type, "uuid": self.settings.vehicle_uuid}


class RestCycleExporter(CycleExporter):
    cycle_type = "Rest"
    labels = REST_LABELS

    def row_values(self, c: RestCycle, r: int) -> List[Any]:
        return [
            _when(c.start_time), _when(c.end_time), c.start_range, c.end_range,
            c.start_soc, c.end_soc, c.lat or 0.0, c.lng or 0.0,
            f"=(C{r}-D{r})/((B{r}-A{r})*24)",
        ]

    def to_dict(self, cycle: RestCycle) -> Dict[str, Any]:
        return rest_cycle_to_dict(cycle)
