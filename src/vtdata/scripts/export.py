"""
Export stored stats or cycles to a spreadsheet.

Usage:
    python -m vtdata.scripts.export --kind stats --out stats.xlsx
    python -m vtdata.scripts.export --kind stats --columns C_VLT,C_AMP --start 2024-01-01 --out volts.xlsx
    python -m vtdata.scripts.export --kind rest --start 2024-01-01 --end 2024-02-01 --out rest.xlsx

--start / --end are ISO dates or datetimes (local time) and both ends are
inclusive; a date-only --end covers that whole day. Omit them to export
everything.
"""
import argparse
import logging
import sys
from datetime import date, datetime, time
from typing import List, Optional

from vtdata.config import get_settings
from vtdata.timeseries.ranges import TimeRange

logger = logging.getLogger(__name__)


def _ms(value: str) -> int:
    return int(datetime.fromisoformat(value).timestamp() * 1000)


def _end_ms(value: str) -> int:
    try:
        day = date.fromisoformat(value)
    except ValueError:
        return _ms(value)
    return int(datetime.combine(day, time.max).timestamp() * 1000)


def build_period(start: Optional[str], end: Optional[str]) -> TimeRange:
    lower = _ms(start) if start else None
    upper = _end_ms(end) if end else None
    return TimeRange(lower=lower, upper=upper)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Export vehicle data to .xlsx")
    parser.add_argument("--kind", choices=["stats", "charge", "rest"], default="stats")
    parser.add_argument("--out", required=True, help="Destination .xlsx file")
    parser.add_argument("--start", default=None, help="Start date/time (ISO)")
    parser.add_argument("--end", default=None, help="End date/time (ISO)")
    parser.add_argument("--columns", default=None, help="Comma-separated stats columns")
    parser.add_argument("--no-derived", action="store_true",
                        help="Write 0 instead of carried-forward values")
    parser.add_argument("--vehicle", default=None, help="Vehicle id (defaults to settings)")
    args = parser.parse_args(argv)

    from vtdata.collector.context import DataContext

    period = build_period(args.start, args.end)
    with DataContext(get_settings(), vehicle_id=args.vehicle) as ctx:
        if args.kind == "stats":
            columns = args.columns.split(",") if args.columns else None
            ok = ctx.export(args.out, period, columns, include_derived=not args.no_derived)
        elif args.kind == "charge":
            ok = ctx.export_charges(args.out, period)
        else:
            ok = ctx.export_rests(args.out, period)

    if ok:
        logger.info("Exported %s data to %s", args.kind, args.out)
        return 0
    logger.error("Export of %s data to %s failed", args.kind, args.out)
    return 1


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    sys.exit(main())
