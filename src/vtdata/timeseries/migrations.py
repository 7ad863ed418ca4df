"""
One-time upgrade from the legacy stats logs to the unified time series.

Legacy data lives in two whitespace-separated files of `time type value`
records:

  <id>.locs.log    location samples
  <id>.stats.log   charge samples

Both are loaded into timestamp-keyed tables, some keys are renamed to their
current column names, the tables are merged (the later file wins where both
set a column at the same time) and the result is replayed in time order into
a new persistent repository.

Safe to call repeatedly: once the new repository exists nothing is done.
"""
import logging
from pathlib import Path
from typing import Dict, Iterator, Tuple, Union

from vtdata.timeseries.persistent import PersistentTimeSeries, repo_exists_for
from vtdata.timeseries.row import Row, RowDescriptor

logger = logging.getLogger(__name__)

KEY_RENAMES = {
    "S_PWR": "L_PWR",
    "S_SPD": "L_SPD",
}
LEGACY_SUFFIXES = (".locs.log", ".stats.log")
PROGRESS_EVERY = 10000

Table = Dict[int, Dict[str, float]]


def conversion_required(container: Union[str, Path], base_name: str) -> bool:
    if repo_exists_for(container, base_name):
        logger.debug("Time series already exists for %s", base_name)
        return False
    if (Path(container) / f"{base_name}.stats.log").exists():
        logger.info("No time series for %s, but a legacy repository exists", base_name)
        return True
    return False


def convert(container: Union[str, Path], base_name: str, schema: RowDescriptor) -> int:
    """Run the upgrade if needed. Returns the number of rows written."""
    if not conversion_required(container, base_name):
        return 0

    merged: Table = {}
    for suffix in LEGACY_SUFFIXES:
        path = Path(container) / f"{base_name}{suffix}"
        table = load_legacy_file(path)
        logger.info("Loaded %d timestamps from %s", len(table), path.name)
        _merge_into(merged, table)

    ts = PersistentTimeSeries(container, base_name, schema)
    stored = 0
    unknown = set()
    try:
        logger.info("Number of rows to store: %d", len(merged))
        for timestamp in sorted(merged):
            row = Row.for_schema(schema, timestamp)
            for key, value in merged[timestamp].items():
                if key not in schema:
                    if key not in unknown:
                        logger.warning("Dropping unknown legacy column %s", key)
                        unknown.add(key)
                    continue
                row.set(schema, key, value)
            ts.store_row(row)
            stored += 1
            if stored % PROGRESS_EVERY == 0:
                logger.info("Number of rows stored: %d", stored)
    finally:
        ts.close()
    logger.info("Total of %d rows stored", stored)
    return stored


def load_legacy_file(path: Path) -> Table:
    table: Table = {}
    if not path.exists():
        logger.info("Legacy file %s not found; starting with partial data", path.name)
        return table
    for timestamp, key, value in _records(path):
        key = KEY_RENAMES.get(key, key)
        table.setdefault(timestamp, {})[key] = value
    return table


def _records(path: Path) -> Iterator[Tuple[int, str, float]]:
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            tokens = line.split()
            if not tokens:
                continue
            if len(tokens) != 3:
                logger.warning("Skipping malformed record at %s:%d", path.name, lineno)
                continue
            try:
                yield int(tokens[0]), tokens[1], float(tokens[2])
            except ValueError:
                logger.warning("Skipping malformed record at %s:%d", path.name, lineno)


def _merge_into(merged: Table, table: Table) -> None:
    for timestamp, readings in table.items():
        merged.setdefault(timestamp, {}).update(readings)
