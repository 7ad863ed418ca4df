"""
Cached time series: a persistent log plus an in-memory window over it.

The window is loaded from disk at startup (rows inside `cache_range`) and
then receives every new row. Range queries are answered from memory when the
window covers them, otherwise from a temporary load of the persistent log.
"""
import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional, Union

from vtdata.timeseries.export import export_rows
from vtdata.timeseries.memory import InMemoryTimeSeries
from vtdata.timeseries.persistent import PersistentTimeSeries
from vtdata.timeseries.ranges import TimeRange
from vtdata.timeseries.row import Row, RowDescriptor

logger = logging.getLogger(__name__)


class CachedTimeSeries:
    def __init__(self, container: Union[str, Path], base_name: str,
                 schema: RowDescriptor, cache_range: Optional[TimeRange] = None):
        self.schema = schema
        self.cache_range = cache_range or TimeRange.all()
        self._lock = threading.Lock()
        self.persistent = PersistentTimeSeries(container, base_name, schema)
        self.in_memory = InMemoryTimeSeries(schema, force_ordering=True)
        n = self.persistent.load_into(self.in_memory, self.cache_range)
        logger.info("Loaded %d rows of %s into memory", n, base_name)

    def store_row(self, row: Row) -> Row:
        """
        Append a row to disk, and to memory when it falls inside the cache
        window. Returns the row as held in memory when cached.
        """
        with self._lock:
            if self.cache_range.contains(row.timestamp):
                row = self.in_memory.store_row(row)
            self.persistent.store_row(row)
            return row

    def get_index(self, period: Optional[TimeRange] = None) -> Dict[int, Row]:
        period = period or TimeRange.all()
        if self._use_in_memory(period):
            return self.in_memory.get_index(period)
        temp = InMemoryTimeSeries(self.schema, force_ordering=False)
        self.persistent.load_into(temp, period)
        return temp.get_index()

    def iter_rows(self, period: Optional[TimeRange] = None) -> Iterator[Row]:
        """Replay the full persistent log (or the part inside `period`)."""
        return self.persistent.iter_rows(period)

    def export(self, path: Union[str, Path], period: Optional[TimeRange],
               columns: Iterable[str], include_derived: bool = True) -> bool:
        rows = self.get_index(period).values()
        return export_rows(path, self.schema, rows, list(columns), include_derived)

    def first_time(self) -> Optional[int]:
        times = [t for t in (self.persistent.first_time(), self.in_memory.first_time()) if t is not None]
        return min(times) if times else None

    def flush(self) -> None:
        self.persistent.flush()

    def close(self) -> None:
        self.flush()
        self.persistent.close()

    def _use_in_memory(self, period: TimeRange) -> bool:
        first_in_memory = self.in_memory.first_time()
        first_persistent = self.persistent.first_time()
        if first_in_memory is None:
            return first_persistent is None
        if first_persistent is None or first_in_memory <= first_persistent:
            return True
        return period.has_lower_bound and first_in_memory <= period.lower
