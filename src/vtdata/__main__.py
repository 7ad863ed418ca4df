"""
Main entrypoint: runs the stats collector for one vehicle.

The vehicle client is supplied by the host application through
VTDATA_VEHICLE_FACTORY ("package.module:callable"); the callable receives
the Settings and returns an object with query(), stream(), wake_up() and
is_awake().

Usage:
    python -m vtdata               # collect until Ctrl+C
    python -m vtdata upgrade       # one-time legacy stats upgrade, then exit
    python -m vtdata export ...    # see vtdata.scripts.export
"""
import importlib
import logging
import sys
import threading

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _run_upgrade() -> int:
    from vtdata.config import get_settings
    from vtdata.models.states import STATS_SCHEMA
    from vtdata.timeseries import migrations

    settings = get_settings()
    if not migrations.conversion_required(settings.data_dir, settings.vehicle_id):
        logger.info("Nothing to upgrade for %s", settings.vehicle_id)
        return 0
    n = migrations.convert(settings.data_dir, settings.vehicle_id, STATS_SCHEMA)
    logger.info("Upgraded %d rows for %s", n, settings.vehicle_id)
    return 0


def _load_vehicle(settings):
    module_name, _, attr = settings.vehicle_factory.partition(":")
    if not module_name or not attr:
        logger.error("VTDATA_VEHICLE_FACTORY must look like 'package.module:callable'")
        sys.exit(1)
    factory = getattr(importlib.import_module(module_name), attr)
    return factory(settings)


def _run_collector() -> int:
    from vtdata.collector.context import DataContext
    from vtdata.collector.streamer import StatsStreamer
    from vtdata.config import get_settings
    from vtdata.scheduler.jobs import build_scheduler

    settings = get_settings()
    vehicle = _load_vehicle(settings)
    context = DataContext(settings)

    streamer = StatsStreamer(context, vehicle, settings)
    scheduler = build_scheduler(streamer)
    scheduler.start()
    logger.info(
        "Collecting stats for %s every %ds. Press Ctrl+C to stop.",
        context.vehicle_id, settings.poll_interval_seconds,
    )

    try:
        threading.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        streamer.stop()
        context.close()
        logger.info("Goodbye.")
    return 0


if __name__ == "__main__":
    # Dispatch on first argument: `python -m vtdata upgrade|export` or just `python -m vtdata`
    if len(sys.argv) > 1 and sys.argv[1] == "upgrade":
        sys.exit(_run_upgrade())
    elif len(sys.argv) > 1 and sys.argv[1] == "export":
        from vtdata.scripts.export import main
        sys.exit(main(sys.argv[2:]))
    else:
        sys.exit(_run_collector())
