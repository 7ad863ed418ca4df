"""Tests for the cached (persistent + in-memory) time series."""
from vtdata.timeseries.cached import CachedTimeSeries
from vtdata.timeseries.persistent import PersistentTimeSeries
from vtdata.timeseries.ranges import TimeRange
from vtdata.timeseries.row import Row, RowDescriptor

SCHEMA = RowDescriptor(["A", "B"])
BASE = "VIN"


# ─── Helpers ───────────────────────────────────────────────────────────────────

def _row(ts, **values) -> Row:
    r = Row.for_schema(SCHEMA, ts)
    for k, v in values.items():
        r.set(SCHEMA, k, v)
    return r


def _seed(container, times=(1000, 2000, 3000, 4000, 5000)):
    ts = CachedTimeSeries(container, BASE, SCHEMA)
    for t in times:
        ts.store_row(_row(t, A=float(t)))
    ts.close()


class TestStoreRow:
    def test_row_reaches_memory_and_disk(self, container):
        ts = CachedTimeSeries(container, BASE, SCHEMA)
        ts.store_row(_row(1000, A=1.0))
        ts.store_row(_row(2000, B=2.0))
        assert list(ts.in_memory.get_index()) == [1000, 2000]
        ts.close()

        on_disk = list(PersistentTimeSeries(container, BASE, SCHEMA).iter_rows())
        assert [r.values for r in on_disk] == [[1.0, 0.0], [1.0, 2.0]]

    def test_out_of_order_rows_keep_index_sorted(self, container):
        ts = CachedTimeSeries(container, BASE, SCHEMA)
        r = _row(2000, A=1.0)
        ts.store_row(r)
        ts.store_row(_row(1000, A=2.0))
        ts.store_row(_row(3000, A=3.0))
        ts.store_row(r)
        times = list(ts.get_index())
        assert times == sorted(set(times))
        ts.close()

    def test_reopen_loads_history(self, container):
        _seed(container)
        ts = CachedTimeSeries(container, BASE, SCHEMA)
        assert list(ts.get_index()) == [1000, 2000, 3000, 4000, 5000]
        assert ts.first_time() == 1000
        ts.close()


class TestCacheWindow:
    def test_only_window_is_loaded(self, container):
        _seed(container)
        ts = CachedTimeSeries(container, BASE, SCHEMA, TimeRange.greater_than(3000))
        assert list(ts.in_memory.get_index()) == [4000, 5000]
        ts.close()

    def test_query_inside_window_uses_memory(self, container):
        _seed(container)
        ts = CachedTimeSeries(container, BASE, SCHEMA, TimeRange.greater_than(3000))
        index = ts.get_index(TimeRange.at_least(4000))
        assert list(index) == [4000, 5000]
        assert index[4000] is ts.in_memory.get_index()[4000]
        ts.close()

    def test_query_before_window_reads_disk(self, container):
        _seed(container)
        ts = CachedTimeSeries(container, BASE, SCHEMA, TimeRange.greater_than(3000))
        assert list(ts.get_index(TimeRange.at_least(1000))) == [1000, 2000, 3000, 4000, 5000]
        assert list(ts.get_index()) == [1000, 2000, 3000, 4000, 5000]
        ts.close()

    def test_iter_rows_replays_everything(self, container):
        _seed(container)
        ts = CachedTimeSeries(container, BASE, SCHEMA, TimeRange.greater_than(3000))
        ts.store_row(_row(6000, A=6.0))
        assert [r.timestamp for r in ts.iter_rows()] == [1000, 2000, 3000, 4000, 5000, 6000]
        ts.close()
