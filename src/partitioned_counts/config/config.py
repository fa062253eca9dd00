"""Configuration module for partitioned counting."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from partitioned_counts.differential_privacy.bounder import validate_cap
from partitioned_counts.differential_privacy.noise import NoiseKind
from partitioned_counts.errors import ConfigError

# Epsilon used by the visits-per-hour scenario.
DEFAULT_EPSILON = math.log(3)
OPENING_HOUR = 9
CLOSING_HOUR = 20


@dataclass(frozen=True)
class PrivacyConfig:
    """Privacy-budget and contribution-bounding parameters.

    Attributes
    ----------
        epsilon: float
            Privacy budget spent on each partition of the single query.
        max_partitions_per_entity: int
            Number of distinct partitions one entity may contribute to.
        max_contributions_per_partition: int
            Number of events one entity may contribute within a partition.
        noise_kind: str
            Name of the noise distribution; only "laplace" is supported.

    Raises
    ------
        ConfigError: If epsilon is not positive and finite, if a bound is
            below 1, or if the noise kind is unknown.
    """

    epsilon: float = DEFAULT_EPSILON
    max_partitions_per_entity: int = 1
    max_contributions_per_partition: int = 1
    noise_kind: str = NoiseKind.LAPLACE.value

    def __post_init__(self) -> None:
        """Validate values after initialization."""
        if not (math.isfinite(self.epsilon) and self.epsilon > 0):
            msg = f"epsilon must be > 0 and finite, got {self.epsilon}"
            raise ConfigError(msg)
        validate_cap("max_partitions_per_entity", self.max_partitions_per_entity)
        validate_cap("max_contributions_per_partition", self.max_contributions_per_partition)
        NoiseKind.parse(self.noise_kind)

    @property
    def sensitivity(self) -> int:
        """L1 sensitivity of a partitioned count under these bounds."""
        return self.max_partitions_per_entity * self.max_contributions_per_partition


@dataclass(frozen=True)
class DomainConfig:
    """Hour-of-day partition domain, both ends inclusive.

    Raises
    ------
        ConfigError: If the hours are outside [0, 23] or out of order.
    """

    opening_hour: int = OPENING_HOUR
    closing_hour: int = CLOSING_HOUR

    def __post_init__(self) -> None:
        """Validate values after initialization."""
        if not (0 <= self.opening_hour <= 23 and 0 <= self.closing_hour <= 23):
            msg = f"hours must be in [0, 23], got ({self.opening_hour}, {self.closing_hour})"
            raise ConfigError(msg)
        if self.opening_hour > self.closing_hour:
            msg = f"opening_hour {self.opening_hour} is after closing_hour {self.closing_hour}"
            raise ConfigError(msg)


@dataclass(frozen=True)
class IOConfig:
    """Input and output locations for the CSV scenario.

    Attributes
    ----------
        input_path: str
            Visits CSV to read.
        non_private_output: str
            Where the raw counts are written.
        private_output: str
            Where the differentially-private counts are written.
        day: int | None
            Keep only visits from this day; ``None`` keeps every row.
    """

    input_path: str = "day_data.csv"
    non_private_output: str = "non_private.csv"
    private_output: str = "private.csv"
    day: int | None = None


@dataclass(frozen=True)
class Config:
    """
    Top-level configuration for partitioned counting.

    Groups
    ----------
        privacy: PrivacyConfig
            Epsilon, contribution bounds and noise kind.
        domain: DomainConfig
            Opening and closing hour of the partition domain.
        io: IOConfig
            CSV locations for the visits-per-hour scenario.
        verbose: bool
            Flag to enable verbose (INFO) logging.

    Raises
    ------
        ConfigError: If any of the sub-configs contain invalid values.
    """

    privacy: PrivacyConfig = field(default_factory=PrivacyConfig)
    domain: DomainConfig = field(default_factory=DomainConfig)
    io: IOConfig = field(default_factory=IOConfig)
    verbose: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Recursively convert to plain dict (for logging, serialization)."""
        return asdict(self)

    def to_yaml(self) -> str:
        """Dump entire config as a YAML string."""
        return yaml.safe_dump(self.to_dict(), sort_keys=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Config:
        """Build Config by unpacking each sub-dict into its sub-config."""
        data = data or {}
        if not isinstance(data, dict):
            msg = f"config must be a mapping of sections, got {type(data).__name__}"
            raise ConfigError(msg)
        try:
            return cls(
                privacy=PrivacyConfig(**data.get("privacy", {})),
                domain=DomainConfig(**data.get("domain", {})),
                io=IOConfig(**data.get("io", {})),
                verbose=data.get("verbose", False),
            )
        except TypeError as exc:
            # unknown keys in a section
            raise ConfigError(str(exc)) from exc

    @classmethod
    def from_yaml(cls, path: str | Path) -> Config:
        """Load a YAML file and return a Config."""
        path = Path(path)
        with path.open() as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data)
