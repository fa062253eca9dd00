"""Differentially-private partitioned counting."""

from .config import Config
from .differential_privacy import NoiseKind, SeededRandomSource, SystemRandomSource
from .engine import AggregationEngine, RunSummary
from .errors import (
    ConfigError,
    IngestError,
    IngestErrorReason,
    PartitionedCountsError,
    StateError,
    StateErrorReason,
    VisitsFormatError,
)
from .events import Event, Visit

__all__ = [
    "AggregationEngine",
    "Config",
    "ConfigError",
    "Event",
    "IngestError",
    "IngestErrorReason",
    "NoiseKind",
    "PartitionedCountsError",
    "RunSummary",
    "SeededRandomSource",
    "StateError",
    "StateErrorReason",
    "SystemRandomSource",
    "Visit",
    "VisitsFormatError",
]
