"""Tests for APScheduler job configuration and the collection job body."""
from unittest.mock import MagicMock

from apscheduler.schedulers.background import BackgroundScheduler

from vtdata.collector.streamer import COLLECT_JOB_ID
from vtdata.scheduler.jobs import _collect_stats, build_scheduler


# ─── Helpers ───────────────────────────────────────────────────────────────────

def _streamer(poll=240):
    streamer = MagicMock()
    streamer.settings.poll_interval_seconds = poll
    streamer.stopping = False
    return streamer


class TestBuildScheduler:
    def test_returns_scheduler(self):
        assert isinstance(build_scheduler(_streamer()), BackgroundScheduler)

    def test_collect_job_registered(self):
        scheduler = build_scheduler(_streamer())
        assert COLLECT_JOB_ID in [job.id for job in scheduler.get_jobs()]

    def test_collect_job_is_interval(self):
        scheduler = build_scheduler(_streamer(poll=120))
        job = scheduler.get_job(COLLECT_JOB_ID)
        assert job.trigger.__class__.__name__ == "IntervalTrigger"
        assert job.trigger.interval.total_seconds() == 120

    def test_single_instance(self):
        job = build_scheduler(_streamer()).get_job(COLLECT_JOB_ID)
        assert job.max_instances == 1
        assert job.coalesce

    def test_streamer_gets_scheduler(self):
        streamer = _streamer()
        scheduler = build_scheduler(streamer)
        assert streamer.scheduler is scheduler

    def test_scheduler_not_running_on_creation(self):
        """build_scheduler should not auto-start."""
        assert not build_scheduler(_streamer()).running


class TestCollectStatsJob:
    def test_runs_streamer(self):
        streamer = _streamer()
        _collect_stats(streamer)
        streamer.run_once.assert_called_once()

    def test_skipped_while_stopping(self):
        streamer = _streamer()
        streamer.stopping = True
        _collect_stats(streamer)
        streamer.run_once.assert_not_called()

    def test_errors_are_logged_not_raised(self, caplog):
        streamer = _streamer()
        streamer.run_once.side_effect = RuntimeError("car offline")
        _collect_stats(streamer)
        assert "car offline" in caplog.text
