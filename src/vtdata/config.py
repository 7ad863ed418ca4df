"""
Runtime settings for the collector.

Values come from the environment (prefix VTDATA_) or a local .env file.
Components take a Settings instance at construction time; get_settings()
is only used by the entry points.
"""
from datetime import datetime, time, timedelta
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings

from vtdata.timeseries.ranges import TimeRange


class LoadPeriod(str, Enum):
    """How much history to keep in the in-memory cache."""
    LAST_7 = "last7"
    LAST_14 = "last14"
    LAST_30 = "last30"
    THIS_WEEK = "this_week"
    THIS_MONTH = "this_month"
    ALL = "all"
    NONE = "none"

    def to_range(self, now: Optional[datetime] = None) -> TimeRange:
        now = now or datetime.now()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        if self is LoadPeriod.ALL:
            return TimeRange.all()
        if self is LoadPeriod.NONE:
            return TimeRange.greater_than(_ms(now))
        if self is LoadPeriod.THIS_WEEK:
            return TimeRange.at_least(_ms(today - timedelta(days=today.weekday())))
        if self is LoadPeriod.THIS_MONTH:
            return TimeRange.at_least(_ms(today.replace(day=1)))
        days = {LoadPeriod.LAST_7: 7, LoadPeriod.LAST_14: 14, LoadPeriod.LAST_30: 30}[self]
        return TimeRange.greater_than(_ms(now - timedelta(days=days)))


def _ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


class Settings(BaseSettings):
    data_dir: Path = Path("./data")
    vehicle_id: str = ""
    load_period: LoadPeriod = LoadPeriod.ALL

    # Sampling minimums while moving
    loc_min_time: int = 5       # seconds
    loc_min_dist: int = 5       # meters

    stream_when_possible: bool = True

    # Anonymous cycle submission
    submit_anon_charge: bool = False
    submit_anon_rest: bool = False
    include_loc_data: bool = False
    dither_loc_amt: float = 1.5
    battery_type: str = ""
    vehicle_uuid: str = ""

    # Rest-cycle quiet window; may wrap midnight (to < from)
    rest_limit_enabled: bool = False
    rest_limit_from: time = time(0, 0)
    rest_limit_to: time = time(23, 59)

    # Producer timing
    poll_interval_seconds: int = 240
    stream_interval_seconds: int = 30
    allow_sleep_seconds: int = 1800
    wakeup_attempts: int = 15
    wakeup_delay_seconds: float = 5.0
    query_retries: int = 2
    retry_delay_seconds: float = 5.0

    max_trip_gap_seconds: int = 900
    use_miles: bool = True

    # "module:callable" returning the vehicle client used by `python -m vtdata`
    vehicle_factory: str = ""

    class Config:
        env_prefix = "VTDATA_"
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
