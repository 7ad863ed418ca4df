"""
Spreadsheet export of time-series rows.

Layout: `Timestamp` (ms epoch), the selected columns in the order requested,
then a human-readable `Date`. Rows that set none of the selected columns are
left out. Carried-forward (derived) cells are shaded grey, or written as 0
when derived values are not wanted.
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Union

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from vtdata.timeseries.row import Row, RowDescriptor

logger = logging.getLogger(__name__)

DATE_FORMAT = "m/d/yy hh:mm:ss"
HEADER_FONT = Font(bold=True)
DERIVED_FILL = PatternFill(start_color="FFC0C0C0", end_color="FFC0C0C0", fill_type="solid")


def export_rows(path: Union[str, Path], schema: RowDescriptor, rows: Iterable[Row],
                columns: Optional[List[str]] = None, include_derived: bool = True) -> bool:
    """Write rows to an .xlsx file. Returns False (and logs) on failure."""
    columns = list(columns) if columns else list(schema.column_names)
    try:
        selected = 0
        for c in columns:
            selected |= schema.bit_for(c)

        wb = Workbook()
        ws = wb.active
        ws.title = "Sheet1"
        write_header(ws, ["Timestamp"] + columns + ["Date"])

        r = 2
        for row in rows:
            if not row.bit_vector & selected:
                continue
            ws.cell(row=r, column=1, value=row.timestamp).number_format = "0"
            for j, c in enumerate(columns, start=2):
                derived = not row.has(schema, c)
                value = row.get(schema, c) if (include_derived or not derived) else 0
                cell = ws.cell(row=r, column=j, value=value)
                if derived:
                    cell.fill = DERIVED_FILL
            date_cell = ws.cell(row=r, column=len(columns) + 2,
                                value=datetime.fromtimestamp(row.timestamp / 1000))
            date_cell.number_format = DATE_FORMAT
            r += 1

        wb.save(str(path))
        return True
    except (OSError, KeyError, ValueError) as exc:
        logger.warning("Failure exporting time series to %s: %s", path, exc)
        return False


def write_header(ws, labels: List[str]) -> None:
    """Bold, frozen header row with columns sized to their labels."""
    for j, label in enumerate(labels, start=1):
        cell = ws.cell(row=1, column=j, value=label)
        cell.font = HEADER_FONT
        ws.column_dimensions[get_column_letter(j)].width = len(label) + 3
    ws.freeze_panes = "A2"
