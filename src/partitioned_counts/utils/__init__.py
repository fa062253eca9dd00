"""Utility functions for simulation and evaluation.

This module provides support for:
- Simulating a day of restaurant visits.
- Evaluating private counts against raw counts using MSE and L1 distance.
"""

from .utils import (
    calculate_l1_dist,
    calculate_mse,
    counts_to_density,
    generate_simulated_visits,
)

__all__ = [
    "calculate_l1_dist",
    "calculate_mse",
    "counts_to_density",
    "generate_simulated_visits",
]
