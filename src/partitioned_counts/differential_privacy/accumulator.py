"""Per-partition count accumulators: exact and differentially private."""

from __future__ import annotations

import threading
from enum import Enum

from partitioned_counts.differential_privacy.noise import (
    LaplaceMechanism,
    NoiseKind,
    RandomSource,
    make_mechanism,
)
from partitioned_counts.errors import StateError, StateErrorReason


class AccumulatorState(Enum):
    ACCUMULATING = "accumulating"
    FINALIZED = "finalized"


class RawCount:
    """Exact counter with no finalize step; readable at any time."""

    __slots__ = ("_count", "_lock")

    def __init__(self) -> None:
        self._count = 0
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"RawCount(value={self._count})"

    def increment(self) -> None:
        with self._lock:
            self._count += 1

    @property
    def value(self) -> int:
        return self._count


class PrivateCount:
    """Counter that releases one noisy result exactly once.

    The lifecycle is ``ACCUMULATING -> FINALIZED``. ``result()`` performs the
    transition and draws the single noise sample for this partition; any
    later ``increment()`` or ``result()`` raises ``StateError``.
    """

    __slots__ = ("_count", "_state", "_lock", "mechanism")

    def __init__(
        self,
        epsilon: float,
        sensitivity: float,
        noise_kind: NoiseKind | str = NoiseKind.LAPLACE,
        source: RandomSource | None = None,
    ) -> None:
        """
        Initialize an empty accumulator.

        Args
        -----
        epsilon (float): Privacy budget spent when the result is released.
        sensitivity (float): L1-sensitivity guaranteed by contribution bounding.
        noise_kind (NoiseKind | str): Noise distribution to calibrate.
        source (RandomSource, optional): Randomness strategy. Defaults to the
            system CSPRNG.
        """
        self.mechanism: LaplaceMechanism = make_mechanism(noise_kind, epsilon, sensitivity, source)
        self._count = 0
        self._state = AccumulatorState.ACCUMULATING
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"PrivateCount(state={self._state.value}, mechanism={self.mechanism!r})"

    @property
    def state(self) -> AccumulatorState:
        return self._state

    @property
    def finalized(self) -> bool:
        return self._state is AccumulatorState.FINALIZED

    def increment(self) -> None:
        """Add one to the raw count.

        Raises
        ------
            StateError: If the accumulator was already finalized.
        """
        with self._lock:
            if self._state is AccumulatorState.FINALIZED:
                raise StateError(StateErrorReason.ALREADY_FINALIZED, "increment after result()")
            self._count += 1

    def result(self) -> int:
        """Finalize and return the raw count plus rounded Laplace noise.

        Returns
        -------
            int: Noisy count; may be negative.

        Raises
        ------
            StateError: If ``result()`` was already called on this instance.
        """
        with self._lock:
            if self._state is AccumulatorState.FINALIZED:
                raise StateError(StateErrorReason.ALREADY_FINALIZED, "noise already drawn")
            self._state = AccumulatorState.FINALIZED
            return self.mechanism.add_noise(self._count)
