"""Utility functions for simulation and evaluation of partitioned counts."""

from __future__ import annotations

from datetime import time
from typing import TYPE_CHECKING, Hashable

import numpy as np
from numpy.random import default_rng

from partitioned_counts.config import CLOSING_HOUR, OPENING_HOUR
from partitioned_counts.events import Visit

if TYPE_CHECKING:
    from collections.abc import Mapping

    from numpy.typing import NDArray

# Lunch and dinner peaks of the simulated restaurant
_PEAK_HOURS = (12.5, 19.0)
_PEAK_STD = 1.0


def _sim_arrival_minutes(
    rng: np.random.Generator,
    num_visitors: int,
    opening_hour: int,
    closing_hour: int,
) -> NDArray[np.int_]:
    """Draw arrival times (minutes since midnight) from a two-peak mixture.

    Arrivals are clamped into the opening hours so every visit lands in the
    domain.
    """
    peaks = rng.choice(np.asarray(_PEAK_HOURS), size=num_visitors)
    hours = rng.normal(peaks, _PEAK_STD)
    minutes = np.rint(hours * 60).astype(int)
    return np.clip(minutes, opening_hour * 60, closing_hour * 60 + 59)


def generate_simulated_visits(
    num_visitors: int,
    opening_hour: int = OPENING_HOUR,
    closing_hour: int = CLOSING_HOUR,
    *,
    day: int = 1,
    seed: int | None = None,
) -> list[Visit]:
    """
    Generate one simulated day of restaurant visits.

    Each visitor enters exactly once, with an arrival hour drawn around the
    lunch and dinner peaks.

    Args
    -----
        num_visitors (int): Number of distinct visitors.
        opening_hour, closing_hour (int, int): Inclusive range of entry hours.
        day (int): Day number stamped on every visit.
        seed (int | None): Seed for reproducible simulations.

    Returns
    -------
        List of visits with visitor ids ``1..num_visitors``.
    """
    if num_visitors < 0:
        msg = f"num_visitors must be >= 0, got {num_visitors}"
        raise ValueError(msg)

    rng = default_rng(seed)
    arrivals = _sim_arrival_minutes(rng, num_visitors, opening_hour, closing_hour)
    minutes_spent = rng.integers(10, 120, size=num_visitors)
    euros_spent = rng.integers(5, 80, size=num_visitors)

    return [
        Visit(
            visitor_id=i + 1,
            visit_time=time(int(arrival) // 60, int(arrival) % 60),
            minutes_spent=int(minutes_spent[i]),
            euros_spent=int(euros_spent[i]),
            day=day,
        )
        for i, arrival in enumerate(arrivals)
    ]


def counts_to_density(counts: Mapping[Hashable, int], keys: list[Hashable]) -> NDArray[np.float64]:
    """Normalize counts over ``keys`` to sum to 1; all-zero (or non-positive) totals stay raw."""
    vec = np.array([counts[k] for k in keys], dtype=float)
    total = vec.sum()
    return vec / total if total > 0 else vec


def _aligned(
    true_counts: Mapping[Hashable, int],
    est_counts: Mapping[Hashable, int],
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    if set(true_counts) != set(est_counts):
        msg = "Result maps must share the same partition domain."
        raise ValueError(msg)
    keys = list(true_counts)
    return counts_to_density(true_counts, keys), counts_to_density(est_counts, keys)


def calculate_mse(true_counts: Mapping[Hashable, int], est_counts: Mapping[Hashable, int]) -> float:
    """Compute mean-squared error between the densities of two result maps.

    Args
    -----
        true_counts (Mapping): The raw, non-private counts.
        est_counts (Mapping): The private counts over the same domain.

    Returns
    -------
        float: The mean-squared error between the two densities.
    """
    true_density, est_density = _aligned(true_counts, est_counts)
    return float(np.mean((true_density - est_density) ** 2))


def calculate_l1_dist(true_counts: Mapping[Hashable, int], est_counts: Mapping[Hashable, int]) -> float:
    """Compute L1 distance between the densities of two result maps."""
    true_density, est_density = _aligned(true_counts, est_counts)
    return float(np.sum(np.abs(true_density - est_density)))
