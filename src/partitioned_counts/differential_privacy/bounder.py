"""Contribution bounding: caps how much one entity can move the counts."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Hashable

from partitioned_counts.errors import ConfigError

logger = logging.getLogger(__name__)


def validate_cap(name: str, value: int) -> int:
    """Check a contribution cap is an integer >= 1.

    Raises
    ------
        ConfigError: If ``value`` is not an ``int`` (bools included) or is below 1.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"{name} must be an integer, got {value!r}"
        raise ConfigError(msg)
    if value < 1:
        msg = f"{name} must be >= 1, got {value}"
        raise ConfigError(msg)
    return value


class ContributionBounder:
    """First-seen-wins cap on per-entity contributions.

    An entity may touch at most ``max_partitions_per_entity`` distinct
    partitions and add at most ``max_contributions_per_partition`` events to
    each. Everything past those caps, in ingestion order, is dropped and
    counted. The L1 sensitivity of the bounded count is the product of the
    two caps.
    """

    def __init__(
        self,
        max_partitions_per_entity: int,
        max_contributions_per_partition: int = 1,
    ) -> None:
        self.max_partitions_per_entity = validate_cap("max_partitions_per_entity", max_partitions_per_entity)
        self.max_contributions_per_partition = validate_cap(
            "max_contributions_per_partition", max_contributions_per_partition
        )
        # entity -> partition -> accepted contributions
        self._contributions: defaultdict[Hashable, dict[Hashable, int]] = defaultdict(dict)
        self._dropped = 0
        self._lock = threading.Lock()

    @property
    def sensitivity(self) -> int:
        return self.max_partitions_per_entity * self.max_contributions_per_partition

    @property
    def dropped(self) -> int:
        """Number of events rejected so far."""
        return self._dropped

    def partitions_of(self, entity_id: Hashable) -> frozenset[Hashable]:
        """Partitions the entity has contributed to so far."""
        with self._lock:
            return frozenset(self._contributions.get(entity_id, ()))

    def admit(self, entity_id: Hashable, key: Hashable) -> bool:
        """Decide whether one event from ``entity_id`` to ``key`` counts.

        Args
        -----
            entity_id (Hashable): Contributing entity.
            key (Hashable): Partition the event falls into.

        Returns
        -------
            bool: True if accepted (and recorded), False if dropped.
        """
        with self._lock:
            per_partition = self._contributions[entity_id]
            seen = per_partition.get(key)
            if seen is None:
                accepted = len(per_partition) < self.max_partitions_per_entity
            else:
                accepted = seen < self.max_contributions_per_partition

            if accepted:
                per_partition[key] = (seen or 0) + 1
                return True

            self._dropped += 1

        logger.debug("Dropped contribution of entity %r to partition %r", entity_id, key)
        return False
