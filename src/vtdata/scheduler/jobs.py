"""
APScheduler job for background stats collection.

One interval job drives the StatsStreamer. max_instances=1 keeps it the
only producer: a run that overlaps the previous one is skipped, not queued.
The streamer shortens the interval itself while the car is moving or
charging.
"""
import logging
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler

from vtdata.collector.streamer import COLLECT_JOB_ID

logger = logging.getLogger(__name__)


def build_scheduler(streamer) -> BackgroundScheduler:
    """
    Create and configure the scheduler.

    Args:
        streamer: StatsStreamer whose run_once() is the job body. Its
            scheduler attribute is pointed at the new scheduler so it can
            wake or reschedule the job.

    Returns:
        Configured BackgroundScheduler (not yet started).
    """
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        _collect_stats,
        trigger="interval",
        seconds=streamer.settings.poll_interval_seconds,
        id=COLLECT_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        next_run_time=datetime.now(),
        kwargs={"streamer": streamer},
    )
    streamer.scheduler = scheduler
    return scheduler


def _collect_stats(streamer) -> None:
    """Job body: one collection run. Failures are logged and the next run proceeds."""
    if streamer.stopping:
        return
    try:
        streamer.run_once()
    except Exception as exc:
        logger.error("Stats collection failed: %s", exc)
