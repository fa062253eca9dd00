"""CSV reading and writing for visits and result maps.

OS-level failures (missing file, permissions) propagate unchanged; only
malformed content is reported as ``VisitsFormatError``.
"""

from __future__ import annotations

import csv
import logging
from datetime import datetime, time
from pathlib import Path
from typing import TYPE_CHECKING

from partitioned_counts.errors import VisitsFormatError
from partitioned_counts.events.events import Visit

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

VISITS_HEADER = ("VisitorID", "VisitTime", "MinutesSpent", "EurosSpent", "Day")
# Go's time.Kitchen layout, e.g. "3:04PM"
_KITCHEN_FORMAT = "%I:%M%p"


def parse_kitchen_time(value: str) -> time:
    """Parse a wall-clock time such as ``"3:04PM"`` or ``"11:30AM"``."""
    return datetime.strptime(value.strip(), _KITCHEN_FORMAT).time()


def _field(path: Path, line: int, name: str, raw: str, parse):
    try:
        return parse(raw)
    except ValueError as exc:
        msg = f"{path}:{line}: couldn't read {name} = {raw!r}: {exc}"
        raise VisitsFormatError(msg) from exc


def read_visits_from_csv(path: str | Path) -> list[Visit]:
    """
    Read a visits CSV with a header row and exactly five columns.

    Args
    -----
        path (str | Path): CSV file to read.

    Returns
    -------
        list[Visit]: Visits in file order.

    Raises
    ------
        VisitsFormatError: If a row has the wrong shape or an unparsable field.
        OSError: If the file cannot be opened or read.
    """
    path = Path(path)
    visits: list[Visit] = []
    with path.open(newline="") as f:
        reader = csv.reader(f)
        header_seen = False
        for record in reader:
            if not record:
                continue
            line = reader.line_num
            if len(record) != len(VISITS_HEADER):
                msg = f"{path}:{line}: expected {len(VISITS_HEADER)} columns, got {len(record)}"
                raise VisitsFormatError(msg)
            if not header_seen:
                header_seen = True
                continue
            visits.append(
                Visit(
                    visitor_id=_field(path, line, "VisitorID", record[0], int),
                    visit_time=_field(path, line, "VisitTime", record[1], parse_kitchen_time),
                    minutes_spent=_field(path, line, "MinutesSpent", record[2], int),
                    euros_spent=_field(path, line, "EurosSpent", record[3], int),
                    day=_field(path, line, "Day", record[4], int),
                )
            )

    logger.info("Read %d visits from %s", len(visits), path)
    return visits


def write_visits_to_csv(visits: list[Visit], path: str | Path) -> None:
    """Write visits in the same layout ``read_visits_from_csv`` expects."""
    path = Path(path)
    with path.open("w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(VISITS_HEADER)
        for v in visits:
            # %I is zero-padded; the kitchen layout is not
            clock = v.visit_time.strftime(_KITCHEN_FORMAT).lstrip("0")
            writer.writerow([v.visitor_id, clock, v.minutes_spent, v.euros_spent, v.day])


def write_results_to_csv(results: Mapping[int, int], path: str | Path) -> None:
    """
    Write a result map as ``key,value`` rows sorted by key, without a header.

    Args
    -----
        results (Mapping[int, int]): Partition key to count.
        path (str | Path): Destination file; overwritten if it exists.

    Raises
    ------
        OSError: If the file cannot be written.
    """
    path = Path(path)
    with path.open("w", newline="") as f:
        writer = csv.writer(f)
        for key in sorted(results):
            writer.writerow([key, results[key]])
    logger.info("Wrote %d partitions to %s", len(results), path)
