"""Event records and partition-key derivation for the visits-per-hour scenario."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from typing import TYPE_CHECKING, Callable, Hashable

from partitioned_counts.config import CLOSING_HOUR, OPENING_HOUR
from partitioned_counts.errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


@dataclass(frozen=True)
class Visit:
    """One visit of a visitor to the restaurant, as read from the CSV."""

    visitor_id: int
    visit_time: time
    minutes_spent: int
    euros_spent: int
    day: int


@dataclass(frozen=True)
class Event:
    """A single contribution: who contributed, to which partition, and when."""

    entity_id: Hashable
    partition_key: Hashable
    timestamp: time | None = None


KeyFn = Callable[[Visit], Hashable]


def hour_of_day(visit: Visit) -> int:
    """Partition key of a visit: the hour in which the visitor entered."""
    return visit.visit_time.hour


def hour_domain(opening_hour: int = OPENING_HOUR, closing_hour: int = CLOSING_HOUR) -> frozenset[int]:
    """
    Build the hour-of-day partition domain, both ends inclusive.

    Args
    -----
        opening_hour (int): First hour visitors can enter.
        closing_hour (int): Last hour visitors can enter.

    Returns
    -------
        frozenset[int]: The hours ``opening_hour..closing_hour``.

    Raises
    ------
        ConfigError: If the range is empty or falls outside [0, 23].
    """
    if not (0 <= opening_hour <= closing_hour <= 23):
        msg = f"invalid opening hours: {opening_hour}..{closing_hour}"
        raise ConfigError(msg)
    return frozenset(range(opening_hour, closing_hour + 1))


def events_from_visits(
    visits: Iterable[Visit],
    key_fn: KeyFn = hour_of_day,
    *,
    day: int | None = None,
) -> Iterator[Event]:
    """
    Turn visits into events, lazily and in input order.

    Args
    -----
        visits (Iterable[Visit]): Source records.
        key_fn (KeyFn): Derives the partition key of a visit.
        day (int | None): If given, only visits from this day are kept.

    Yields
    ------
        Event: One event per kept visit.
    """
    for visit in visits:
        if day is not None and visit.day != day:
            continue
        yield Event(
            entity_id=visit.visitor_id,
            partition_key=key_fn(visit),
            timestamp=visit.visit_time,
        )
