"""Error taxonomy for partitioned counting.

Configuration and state errors fail fast. Ingest errors are recoverable: the
engine records them and keeps going when it ingests a whole stream.
"""

from __future__ import annotations

from enum import Enum
from typing import Hashable


class PartitionedCountsError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(PartitionedCountsError, ValueError):
    """Invalid construction parameters (epsilon, bounds, domain, noise kind)."""


class IngestErrorReason(Enum):
    OUT_OF_DOMAIN = "out_of_domain"


class IngestError(PartitionedCountsError):
    """An event could not be routed to a partition.

    Attributes
    ----------
        reason: IngestErrorReason
            Why the event was rejected.
        key: Hashable
            The partition key derived from the event.
    """

    def __init__(self, reason: IngestErrorReason, key: Hashable) -> None:
        self.reason = reason
        self.key = key
        super().__init__(f"{reason.value}: partition key {key!r} is not in the declared domain")


class StateErrorReason(Enum):
    ALREADY_FINALIZED = "already_finalized"
    ABORTED = "aborted"


class StateError(PartitionedCountsError, RuntimeError):
    """Usage-protocol violation, e.g. drawing noise twice for one partition."""

    def __init__(self, reason: StateErrorReason, detail: str = "") -> None:
        self.reason = reason
        msg = reason.value if not detail else f"{reason.value}: {detail}"
        super().__init__(msg)


class VisitsFormatError(PartitionedCountsError, ValueError):
    """Malformed content in a visits CSV file."""
