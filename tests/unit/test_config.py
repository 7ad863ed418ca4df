"""Tests for settings and cache load periods."""
from datetime import datetime, timedelta

from vtdata.config import LoadPeriod, Settings

NOW = datetime(2024, 6, 12, 15, 30)     # a Wednesday


# ─── Helpers ───────────────────────────────────────────────────────────────────

def _ms(dt) -> int:
    return int(dt.timestamp() * 1000)


class TestLoadPeriod:
    def test_all_is_unbounded(self):
        r = LoadPeriod.ALL.to_range(NOW)
        assert not r.has_lower_bound and not r.has_upper_bound

    def test_none_excludes_history(self):
        r = LoadPeriod.NONE.to_range(NOW)
        assert not r.contains(_ms(NOW))
        assert r.contains(_ms(NOW) + 1)

    def test_last_seven_days(self):
        r = LoadPeriod.LAST_7.to_range(NOW)
        assert r.contains(_ms(NOW - timedelta(days=6)))
        assert not r.contains(_ms(NOW - timedelta(days=8)))

    def test_this_week_starts_monday(self):
        r = LoadPeriod.THIS_WEEK.to_range(NOW)
        assert r.contains(_ms(datetime(2024, 6, 10)))
        assert not r.contains(_ms(datetime(2024, 6, 9, 23, 59)))

    def test_this_month(self):
        r = LoadPeriod.THIS_MONTH.to_range(NOW)
        assert r.contains(_ms(datetime(2024, 6, 1)))
        assert not r.contains(_ms(datetime(2024, 5, 31, 23, 59)))


class TestSettings:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("VTDATA_VEHICLE_ID", "VIN123")
        monkeypatch.setenv("VTDATA_LOAD_PERIOD", "last14")
        s = Settings(_env_file=None)
        assert s.vehicle_id == "VIN123"
        assert s.load_period is LoadPeriod.LAST_14

    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.loc_min_time == 5
        assert s.loc_min_dist == 5
        assert s.dither_loc_amt == 1.5
        assert not s.rest_limit_enabled
