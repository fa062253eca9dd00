"""Aggregation engine: bounded, partitioned counting with one noise draw per partition.

The engine owns a closed partition domain. Every event is keyed, checked
against the domain, passed through the contribution bounder and, if
accepted, counted by both the exact and the private accumulator of its
partition. A single scan therefore feeds both result maps.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from operator import attrgetter
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Hashable

from partitioned_counts.config import Config
from partitioned_counts.differential_privacy import (
    ContributionBounder,
    NoiseKind,
    PrivateCount,
    RandomSource,
    RawCount,
    SystemRandomSource,
    laplace_scale,
)
from partitioned_counts.errors import (
    ConfigError,
    IngestError,
    IngestErrorReason,
    StateError,
    StateErrorReason,
)
from partitioned_counts.events import hour_domain

if TYPE_CHECKING:
    from collections.abc import Iterable

    from partitioned_counts.events import Event

logger = logging.getLogger(__name__)

ResultMap = MappingProxyType
EventKeyFn = Callable[[Any], Hashable]


@dataclass(frozen=True)
class RunSummary:
    """What happened to the events of one run.

    Attributes
    ----------
        ingested: int
            Events offered to the engine.
        accepted: int
            Events counted in both result maps.
        dropped_contributions: int
            Events rejected by the contribution bounder.
        out_of_domain: int
            Events whose partition key is not in the domain.
        errors: tuple[IngestError, ...]
            One error per out-of-domain event, in ingestion order.
    """

    ingested: int
    accepted: int
    dropped_contributions: int
    out_of_domain: int
    errors: tuple[IngestError, ...] = ()

    def raise_for_errors(self) -> None:
        """Raise every recorded ingest error at once, each kept distinct.

        Raises
        ------
            ExceptionGroup: If at least one event was rejected by the domain check.
        """
        if self.errors:
            msg = f"{len(self.errors)} event(s) rejected during ingestion"
            raise ExceptionGroup(msg, list(self.errors))


def _ordered(domain: Iterable[Hashable]) -> list[Hashable]:
    keys = set(domain)
    try:
        return sorted(keys)
    except TypeError:
        # mixed, unorderable key types
        return list(keys)


class AggregationEngine:
    """Differentially-private partitioned count over a fixed domain."""

    def __init__(
        self,
        domain: Iterable[Hashable],
        epsilon: float,
        max_partitions_per_entity: int,
        noise_kind: NoiseKind | str = NoiseKind.LAPLACE,
        *,
        max_contributions_per_partition: int = 1,
        key_fn: EventKeyFn | None = None,
        random_source: RandomSource | None = None,
    ) -> None:
        """
        Build one raw and one private accumulator per domain key.

        Args
        ------
            domain (Iterable[Hashable]): Closed set of valid partition keys.
            epsilon (float): Privacy budget of each partition's release.
            max_partitions_per_entity (int): Contribution bound across partitions.
            noise_kind (NoiseKind | str): Noise distribution, only Laplace.
            max_contributions_per_partition (int): Contribution bound within a partition.
            key_fn (EventKeyFn, optional): Derives the partition key of an event.
                Defaults to reading ``event.partition_key``.
            random_source (RandomSource, optional): Randomness strategy shared by
                all private accumulators. Defaults to the system CSPRNG.

        Raises
        ------
            ConfigError: If the domain is empty, epsilon is not > 0 and finite,
                a bound is < 1, or the noise kind is unknown.
        """
        keys = _ordered(domain)
        if not keys:
            msg = "partition domain must not be empty"
            raise ConfigError(msg)

        self.noise_kind = NoiseKind.parse(noise_kind)
        self._bounder = ContributionBounder(max_partitions_per_entity, max_contributions_per_partition)
        self.epsilon = epsilon
        self.sensitivity = self._bounder.sensitivity
        self.scale = laplace_scale(epsilon, self.sensitivity)

        source = random_source if random_source is not None else SystemRandomSource()
        self._raw: dict[Hashable, RawCount] = {k: RawCount() for k in keys}
        self._private: dict[Hashable, PrivateCount] = {
            k: PrivateCount(epsilon, self.sensitivity, self.noise_kind, source) for k in keys
        }
        self.domain: frozenset[Hashable] = frozenset(keys)
        self._key_fn: EventKeyFn = key_fn if key_fn is not None else attrgetter("partition_key")

        self._lock = threading.Lock()
        self._private_result: ResultMap | None = None
        self._aborted = False
        self._ingested = 0
        self._accepted = 0
        self._errors: list[IngestError] = []

        logger.debug(
            "Engine ready: %d partitions, epsilon=%.4f, sensitivity=%d, noise=%s",
            len(keys), epsilon, self.sensitivity, self.noise_kind.value,
        )

    @classmethod
    def from_config(
        cls,
        config: Config,
        domain: Iterable[Hashable] | None = None,
        *,
        key_fn: EventKeyFn | None = None,
        random_source: RandomSource | None = None,
    ) -> AggregationEngine:
        """Build an engine from ``config``; the domain defaults to its opening hours."""
        if domain is None:
            domain = hour_domain(config.domain.opening_hour, config.domain.closing_hour)
        privacy = config.privacy
        return cls(
            domain,
            privacy.epsilon,
            privacy.max_partitions_per_entity,
            privacy.noise_kind,
            max_contributions_per_partition=privacy.max_contributions_per_partition,
            key_fn=key_fn,
            random_source=random_source,
        )

    def __repr__(self) -> str:
        return (
            f"AggregationEngine(partitions={len(self.domain)}, epsilon={self.epsilon}, "
            f"sensitivity={self.sensitivity}, finalized={self.finalized})"
        )

    @property
    def finalized(self) -> bool:
        return self._private_result is not None

    def _check_not_aborted(self) -> None:
        if self._aborted:
            raise StateError(StateErrorReason.ABORTED, "run was aborted")

    def _in_domain(self, key: Any) -> bool:
        try:
            return key in self._raw
        except TypeError:
            # unhashable keys cannot belong to the domain
            return False

    def ingest(self, event: Event) -> bool:
        """
        Count one event.

        Args
        ------
            event (Event): Record carrying ``entity_id`` and a partition key.

        Returns
        -------
            bool: True if counted, False if dropped by the contribution bounder.

        Raises
        ------
            IngestError: If the event's key is outside the domain (or is not
                hashable). The event is recorded as out-of-domain and not counted.
            StateError: If the private counts were already released or the run
                was aborted.
        """
        key = self._key_fn(event)
        with self._lock:
            self._check_not_aborted()
            if self._private_result is not None:
                raise StateError(StateErrorReason.ALREADY_FINALIZED, "ingest after private_counts()")

            self._ingested += 1
            if not self._in_domain(key):
                err = IngestError(IngestErrorReason.OUT_OF_DOMAIN, key)
                self._errors.append(err)
                logger.debug("Rejected event of entity %r: %s", event.entity_id, err)
                raise err

            if not self._bounder.admit(event.entity_id, key):
                return False

            self._raw[key].increment()
            self._private[key].increment()
            self._accepted += 1
            return True

    def ingest_all(self, events: Iterable[Event]) -> RunSummary:
        """
        Ingest a finite stream in one pass, skipping and reporting bad events.

        Out-of-domain events are recorded in the summary and ingestion
        continues. Any other exception, including one raised by the iterable
        itself, propagates; nothing is published in that case.

        Returns
        -------
            RunSummary: Totals for the whole run so far.
        """
        for event in events:
            try:
                self.ingest(event)
            except IngestError:
                continue
        summary = self.summary()
        logger.info(
            "Ingested %d events: %d accepted, %d dropped by contribution bound, %d out of domain",
            summary.ingested, summary.accepted, summary.dropped_contributions, summary.out_of_domain,
        )
        return summary

    def raw_counts(self) -> ResultMap:
        """Exact counts for every domain key, consistent with events ingested so far."""
        with self._lock:
            self._check_not_aborted()
            return MappingProxyType({k: c.value for k, c in self._raw.items()})

    def private_counts(self) -> ResultMap:
        """
        Release the differentially-private counts.

        The first call finalizes every private accumulator, drawing one noise
        sample per partition, and caches the map. Later calls return the same
        cached map; no further privacy budget is spent.

        Raises
        ------
            StateError: If the run was aborted.
        """
        with self._lock:
            self._check_not_aborted()
            if self._private_result is None:
                self._private_result = MappingProxyType(
                    {k: acc.result() for k, acc in self._private.items()}
                )
                logger.info(
                    "Released private counts for %d partitions (epsilon=%.4f, laplace scale=%.4f)",
                    len(self._private_result), self.epsilon, self.scale,
                )
            return self._private_result

    def dropped_contributions(self) -> int:
        """Number of events rejected by the contribution bounder."""
        return self._bounder.dropped

    def out_of_domain(self) -> int:
        """Number of events rejected because their key is outside the domain."""
        return len(self._errors)

    def summary(self) -> RunSummary:
        with self._lock:
            return RunSummary(
                ingested=self._ingested,
                accepted=self._accepted,
                dropped_contributions=self._bounder.dropped,
                out_of_domain=len(self._errors),
                errors=tuple(self._errors),
            )

    def abort(self) -> None:
        """Discard every counter without releasing anything.

        After aborting, reads and ingestion raise ``StateError``.
        """
        with self._lock:
            if self._aborted:
                return
            self._aborted = True
            self._raw.clear()
            self._private.clear()
            logger.info("Run aborted; %d ingested events discarded", self._ingested)
