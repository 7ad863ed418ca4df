"""Shared test fixtures."""
from datetime import time

import pytest

from vtdata.config import LoadPeriod, Settings
from vtdata.monitors.tracked import inline_dispatcher

VIN = "5YJSA1CN5DFP00001"


@pytest.fixture(name="container")
def container_fixture(tmp_path):
    """Empty per-test data directory."""
    d = tmp_path / "data"
    d.mkdir()
    return d


@pytest.fixture(name="settings")
def settings_fixture(container) -> Settings:
    """Settings pointing at the test container, with no submission and no quiet window."""
    return Settings(
        _env_file=None,
        data_dir=container,
        vehicle_id=VIN,
        load_period=LoadPeriod.ALL,
        loc_min_time=5,
        loc_min_dist=5,
        submit_anon_charge=False,
        submit_anon_rest=False,
        include_loc_data=False,
        rest_limit_enabled=False,
        rest_limit_from=time(0, 0),
        rest_limit_to=time(23, 59),
        vehicle_uuid="uuid-1",
        battery_type="BT85",
    )


@pytest.fixture(name="dispatcher")
def dispatcher_fixture():
    """Runs deferred trackers inline so tests are deterministic."""
    return inline_dispatcher
