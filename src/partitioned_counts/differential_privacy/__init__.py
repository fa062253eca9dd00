"""Differential privacy building blocks for partitioned counting.

This module aggregates the Laplace noise mechanism and its randomness
sources, the per-partition accumulators, and the contribution bounder that
keeps the mechanism's sensitivity assumption true.
"""

from .accumulator import (
    AccumulatorState,
    PrivateCount,
    RawCount,
)
from .bounder import ContributionBounder, validate_cap
from .noise import (
    LaplaceMechanism,
    NoiseKind,
    RandomSource,
    SeededRandomSource,
    SystemRandomSource,
    laplace_scale,
    make_mechanism,
    round_half_away_from_zero,
)

__all__ = [
    # Noise mechanism
    "NoiseKind",
    "RandomSource",
    "SystemRandomSource",
    "SeededRandomSource",
    "LaplaceMechanism",
    "laplace_scale",
    "make_mechanism",
    "round_half_away_from_zero",

    # Accumulators
    "AccumulatorState",
    "RawCount",
    "PrivateCount",

    # Contribution bounding
    "ContributionBounder",
    "validate_cap",
]
