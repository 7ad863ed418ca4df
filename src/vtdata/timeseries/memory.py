"""
In-memory indexed time series.

Rows are kept in timestamp order. Each stored row carries forward the values
of the previous row for any column it does not set, so every row in the
index is a complete snapshot. A zero-valued backstop row seeds the carry.
"""
import bisect
import logging
import threading
from typing import Dict, Iterator, List, Optional

from vtdata.timeseries.ranges import TimeRange
from vtdata.timeseries.row import Row, RowDescriptor

logger = logging.getLogger(__name__)


class OutOfOrderError(ValueError):
    """A row older than the newest stored row, with ordering not forced."""


class InMemoryTimeSeries:
    def __init__(self, schema: RowDescriptor, force_ordering: bool = True):
        self.schema = schema
        self.force_ordering = force_ordering
        self._lock = threading.RLock()
        self._times: List[int] = []
        self._rows: Dict[int, Row] = {}
        self._backstop = Row.for_schema(schema, 0)

    def store_row(self, row: Row) -> Row:
        """
        Store a row and return the row actually held by the index.

        A row whose timestamp equals the newest row's is merged into it. An
        older row is either coerced to the newest timestamp (and merged) or
        rejected with OutOfOrderError, depending on force_ordering.
        """
        with self._lock:
            last = self._rows[self._times[-1]] if self._times else self._backstop
            timestamp = self._adjust_time(row.timestamp, last.timestamp)
            if self._times and timestamp == last.timestamp:
                logger.debug("Merging rows at time %d", timestamp)
                # Rows already handed out by get_index are never modified
                merged = last.copy()
                merged.merge_with(row)
                self._rows[timestamp] = merged
                return merged

            stored = Row(timestamp, row.bit_vector, last.values)
            for i, value in enumerate(row.values):
                if row.includes(1 << i):
                    stored.values[i] = value
            self._times.append(timestamp)
            self._rows[timestamp] = stored
            return stored

    def get_index(self, period: Optional[TimeRange] = None) -> Dict[int, Row]:
        """Ordered snapshot (timestamp -> Row) of the rows inside `period`."""
        period = period or TimeRange.all()
        with self._lock:
            lo = 0
            hi = len(self._times)
            if period.lower is not None:
                if period.lower_closed:
                    lo = bisect.bisect_left(self._times, period.lower)
                else:
                    lo = bisect.bisect_right(self._times, period.lower)
            if period.upper is not None:
                if period.upper_closed:
                    hi = bisect.bisect_right(self._times, period.upper)
                else:
                    hi = bisect.bisect_left(self._times, period.upper)
            return {t: self._rows[t] for t in self._times[lo:hi]}

    def iter_rows(self, period: Optional[TimeRange] = None) -> Iterator[Row]:
        return iter(self.get_index(period).values())

    def first_time(self) -> Optional[int]:
        with self._lock:
            return self._times[0] if self._times else None

    def last_time(self) -> Optional[int]:
        with self._lock:
            return self._times[-1] if self._times else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._times)

    def flush(self) -> None:
        pass

    def close(self) -> None:
        pass

    def _adjust_time(self, new_time: int, old_time: int) -> int:
        if not self._times or new_time >= old_time:
            return new_time
        if self.force_ordering:
            logger.debug("Forcing timestamp: %d -> %d", new_time, old_time)
            return old_time
        raise OutOfOrderError(f"Timestamps out of sequence: {old_time}, {new_time}")
