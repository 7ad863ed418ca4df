"""
File-backed, append-only time series.

A repository is a header file and a data file in a container directory:

  <base>.stats.hdr   line 1: repository version
                     line 2: tab-separated column names
  <base>.stats.data  '#' comment lines and data lines of the form
                     TIME <tab> BITVECTOR <tab> VALUE [<tab> VALUE]*

TIME is in units of 100 ms. A negative TIME is absolute (its magnitude is
the timestamp); a positive one is the delta from the previous line. The hex
BITVECTOR says which columns have a VALUE on this line, in column order. A
VALUE of '*' repeats the last value written for that column. Columns not on
a line carry forward from earlier lines when the file is read back.

Rows that land on the same 100 ms slot are merged before they are written.
"""
import logging
import math
import threading
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Union

from vtdata.timeseries.memory import InMemoryTimeSeries
from vtdata.timeseries.ranges import TimeRange
from vtdata.timeseries.row import Row, RowDescriptor

logger = logging.getLogger(__name__)

REPO_VERSION = 1
TIME_QUANTUM_MS = 100
FLUSH_EVERY = 10


class RepositoryError(OSError):
    """The repository exists but cannot be opened safely."""


class StoreClosedError(OSError):
    """A write was attempted after close()."""


def header_path(container: Union[str, Path], base_name: str) -> Path:
    return Path(container) / f"{base_name}.stats.hdr"


def data_path(container: Union[str, Path], base_name: str) -> Path:
    return Path(container) / f"{base_name}.stats.data"


def repo_exists_for(container: Union[str, Path], base_name: str) -> bool:
    return header_path(container, base_name).exists() and data_path(container, base_name).exists()


class PersistentTimeSeries:
    def __init__(self, container: Union[str, Path], base_name: str, schema: RowDescriptor):
        self.schema = schema
        self.container = Path(container)
        self.base_name = base_name
        self._lock = threading.RLock()
        self._header = header_path(container, base_name)
        self._data = data_path(container, base_name)

        _open_repo(self._header, self._data, schema.column_names)
        self._out = open(self._data, "a", encoding="utf-8")
        self._closed = False

        self._n_emitted = 0
        self._last_units: Optional[int] = None
        self._last_written: List[Optional[float]] = [None] * schema.n_columns
        self._pending: Optional[Row] = None
        self._pending_units = 0

        first = next(self.iter_rows(), None)
        self._first_time = first.timestamp if first is not None else None

    # ── Writing ───────────────────────────────────────────────────────────────

    def store_row(self, row: Row) -> Row:
        with self._lock:
            if self._closed:
                raise StoreClosedError(f"Time series {self.base_name} is closed")
            units = row.timestamp // TIME_QUANTUM_MS
            if self._pending is None:
                self._pending = row.copy()
                self._pending_units = units
            elif units <= self._pending_units:
                self._pending.merge_with(row)
            else:
                self._emit(self._pending, self._pending_units)
                self._pending = row.copy()
                self._pending_units = units
            if self._first_time is None:
                self._first_time = row.timestamp
            return row

    def flush(self) -> None:
        with self._lock:
            if not self._closed:
                self._out.flush()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            if self._pending is not None:
                self._emit(self._pending, self._pending_units)
                self._pending = None
            self._out.close()
            self._closed = True

    def _emit(self, row: Row, units: int) -> None:
        delta = -units if self._last_units is None else units - self._last_units
        tokens = [str(delta), format(row.bit_vector, "x")]
        for i, value in enumerate(row.values):
            if not row.includes(1 << i):
                continue
            if self._last_written[i] == value:
                tokens.append("*")
            else:
                tokens.append(repr(value))
                self._last_written[i] = value
        self._out.write("\t".join(tokens) + "\n")
        self._last_units = units
        if self._n_emitted % FLUSH_EVERY == 0:
            self._out.flush()
        self._n_emitted += 1

    # ── Reading ───────────────────────────────────────────────────────────────

    def first_time(self) -> Optional[int]:
        return self._first_time

    def iter_rows(self, period: Optional[TimeRange] = None) -> Iterator[Row]:
        """
        Replay the repository in file order.

        Each call opens the file afresh, so the iterator can be restarted by
        calling again. A row still waiting to be written is yielded last.
        """
        period = period or TimeRange.all()
        with self._lock:
            if not self._closed:
                self._out.flush()
            pending = self._pending.copy() if self._pending is not None else None
            pending_units = self._pending_units

        n = self.schema.n_columns
        carried = [0.0] * n
        last_seen: List[Optional[float]] = [None] * n
        prev_units = 0
        with open(self._data, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.rstrip("\n")
                if not line or line.startswith("#"):
                    continue
                tokens = line.split("\t")
                try:
                    raw = int(tokens[0])
                except ValueError:
                    logger.warning("Invalid time at line %d of %s: %r", lineno, self._data.name, tokens[0])
                    continue
                units = -raw if raw < 0 else raw + prev_units
                prev_units = units

                row = self._parse_values(tokens, units * TIME_QUANTUM_MS, carried, last_seen)
                if row is None:
                    logger.warning("Skipping malformed line %d of %s", lineno, self._data.name)
                    continue
                if period.has_upper_bound and row.timestamp > period.upper:
                    return
                if period.contains(row.timestamp):
                    yield row

        if pending is not None:
            row = Row(pending_units * TIME_QUANTUM_MS, pending.bit_vector, carried)
            row.merge_with(pending)
            if period.contains(row.timestamp):
                yield row

    def load_into(self, target: InMemoryTimeSeries, period: Optional[TimeRange] = None) -> int:
        count = 0
        for row in self.iter_rows(period):
            target.store_row(row)
            count += 1
        return count

    def _parse_values(self, tokens: List[str], timestamp: int,
                      carried: List[float], last_seen: List[Optional[float]]) -> Optional[Row]:
        if len(tokens) < 2:
            return None
        try:
            bit_vector = int(tokens[1], 16)
        except ValueError:
            return None

        values = list(carried)
        seen = list(last_seen)
        index = 2
        for i in range(self.schema.n_columns):
            if not bit_vector & (1 << i):
                continue
            if index >= len(tokens):
                return None
            token = tokens[index]
            index += 1
            if token == "*":
                value = seen[i]
                if value is None:
                    return None
            else:
                try:
                    value = float(token)
                except ValueError:
                    return None
                if math.isnan(value):
                    return None
            values[i] = value
            seen[i] = value

        carried[:] = values
        last_seen[:] = seen
        return Row(timestamp, bit_vector, values)


# ─── Repository files ──────────────────────────────────────────────────────────

def _open_repo(header: Path, data: Path, columns: List[str]) -> None:
    if not header.exists() and data.exists():
        raise RepositoryError(f"Data file without header file: {data}")
    _ensure_valid_header(header, columns)
    if not data.exists():
        with open(data, "w", encoding="utf-8") as f:
            f.write(f"# {datetime.now().ctime()}\n")


def _ensure_valid_header(header: Path, columns: List[str]) -> None:
    if not header.exists():
        _write_header(header, columns)
        return

    lines = header.read_text(encoding="utf-8").splitlines()
    if not lines:
        raise RepositoryError(f"Empty header file: {header}")
    try:
        version = int(lines[0].strip())
    except ValueError:
        raise RepositoryError(f"Invalid repository version: {lines[0]!r}")
    if version > REPO_VERSION:
        raise RepositoryError(
            f"Can't read newer repository version: {version} vs {REPO_VERSION}"
        )
    if len(lines) < 2:
        raise RepositoryError("Missing column name declarations")

    declared = lines[1].split("\t")
    if len(declared) > len(columns):
        raise RepositoryError("Mismatched column names: too few supplied names")
    if declared != columns[:len(declared)]:
        raise RepositoryError("Mismatched column names")
    if len(columns) > len(declared):
        logger.info("Adding new column(s) to %s: %s", header.name, columns[len(declared):])
        _write_header(header, columns)


def _write_header(header: Path, columns: List[str]) -> None:
    with open(header, "w", encoding="utf-8") as f:
        f.write(f"{REPO_VERSION}\n")
        f.write("\t".join(columns) + "\n")
