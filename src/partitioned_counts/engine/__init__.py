"""Partitioned counting engine.

Includes:
- AggregationEngine: routes bounded events into per-partition accumulators.
- RunSummary: ingestion totals and the out-of-domain errors of a run.
"""

from .engine import AggregationEngine, ResultMap, RunSummary

__all__ = [
    "AggregationEngine",
    "ResultMap",
    "RunSummary",
]
