"""Noise generation for differential privacy: Laplace mechanism and randomness sources."""

from __future__ import annotations

import math
import random
import threading
from enum import Enum
from functools import lru_cache
from typing import Protocol

from numpy.random import default_rng

from partitioned_counts.errors import ConfigError


class NoiseKind(Enum):
    """Supported noise distributions."""

    LAPLACE = "laplace"

    @classmethod
    def parse(cls, value: NoiseKind | str) -> NoiseKind:
        """Accept an enum member or its (case-insensitive) name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            msg = f"Unknown noise kind: {value!r}"
            raise ConfigError(msg) from None


class RandomSource(Protocol):
    """Strategy that draws continuous noise samples.

    Implementations must return a fresh, independent sample on every call
    and must be safe to call from several threads.
    """

    def laplace(self, scale: float) -> float:
        """Draw one sample from Laplace(0, scale)."""
        ...


class SystemRandomSource:
    """Laplace samples backed by the operating system CSPRNG.

    ``random.SystemRandom`` keeps no state of its own, so a single instance
    can be shared between threads.
    """

    def __init__(self) -> None:
        self._rng = random.SystemRandom()

    def laplace(self, scale: float) -> float:
        # The difference of two iid Exp(1/scale) variables is Laplace(0, scale).
        rate = 1.0 / scale
        return self._rng.expovariate(rate) - self._rng.expovariate(rate)


class SeededRandomSource:
    """Deterministic Laplace samples from a seeded numpy ``Generator``.

    Meant for tests and simulations. Never use a known seed to publish
    results: anyone holding the seed can subtract the noise.
    """

    def __init__(self, seed: int | None = None) -> None:
        self._rng = default_rng(seed)
        # numpy generators are not thread-safe
        self._lock = threading.Lock()

    def laplace(self, scale: float) -> float:
        with self._lock:
            return float(self._rng.laplace(0.0, scale))


@lru_cache(maxsize=256)
def laplace_scale(epsilon: float, sensitivity: float) -> float:
    """Compute the Laplace scale b = sensitivity / epsilon.

    Args
    ------
        epsilon (float): Privacy budget, must be > 0 and finite.
        sensitivity (float): L1-sensitivity of the query, must be > 0.

    Returns
    -------
        float: Scale parameter of the calibrated Laplace distribution.

    Raises
    ------
        ConfigError: If epsilon or sensitivity is out of range.
    """
    if not (math.isfinite(epsilon) and epsilon > 0):
        msg = f"epsilon must be > 0 and finite, got {epsilon}"
        raise ConfigError(msg)
    if not (math.isfinite(sensitivity) and sensitivity > 0):
        msg = f"sensitivity must be > 0 and finite, got {sensitivity}"
        raise ConfigError(msg)
    return sensitivity / epsilon


def round_half_away_from_zero(value: float) -> int:
    """Round to the nearest integer, ties away from zero (2.5 -> 3, -2.5 -> -3)."""
    magnitude = abs(value)
    whole = math.floor(magnitude)
    # compare the fraction instead of adding 0.5, which rounds up 0.49999999999999994
    rounded = whole + (magnitude - whole >= 0.5)
    return int(math.copysign(rounded, value))


class LaplaceMechanism:
    """Laplace mechanism calibrated to ``(epsilon, sensitivity)``."""

    kind = NoiseKind.LAPLACE

    def __init__(
        self,
        epsilon: float,
        sensitivity: float,
        source: RandomSource | None = None,
    ) -> None:
        self.epsilon = epsilon
        self.sensitivity = sensitivity
        self.scale = laplace_scale(epsilon, sensitivity)
        self.source = source if source is not None else SystemRandomSource()

    def __repr__(self) -> str:
        return f"LaplaceMechanism(epsilon={self.epsilon}, sensitivity={self.sensitivity})"

    def sample(self) -> float:
        """Draw one fresh noise sample."""
        return self.source.laplace(self.scale)

    def add_noise(self, value: int) -> int:
        """Return ``value`` plus one fresh sample, rounded half away from zero.

        The result is not clamped and may be negative.
        """
        return round_half_away_from_zero(value + self.sample())


def make_mechanism(
    kind: NoiseKind | str,
    epsilon: float,
    sensitivity: float,
    source: RandomSource | None = None,
) -> LaplaceMechanism:
    """Build the mechanism for ``kind``.

    Raises
    ------
        ConfigError: If the kind is unknown or the parameters are invalid.
    """
    dispatch = {
        NoiseKind.LAPLACE: LaplaceMechanism,
    }
    return dispatch[NoiseKind.parse(kind)](epsilon, sensitivity, source)
