"""Event records, key derivation, and CSV collaborators."""

from .csv_io import (
    parse_kitchen_time,
    read_visits_from_csv,
    write_results_to_csv,
    write_visits_to_csv,
)
from .events import Event, Visit, events_from_visits, hour_domain, hour_of_day

__all__ = [
    "Event",
    "Visit",
    "events_from_visits",
    "hour_domain",
    "hour_of_day",
    "parse_kitchen_time",
    "read_visits_from_csv",
    "write_results_to_csv",
    "write_visits_to_csv",
]
