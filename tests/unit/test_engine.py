"""Unit tests for the aggregation engine."""

import math
import threading
from datetime import time

import numpy as np
import pytest

from partitioned_counts import (
    AggregationEngine,
    Config,
    ConfigError,
    Event,
    IngestError,
    IngestErrorReason,
    SeededRandomSource,
    StateError,
    StateErrorReason,
)

HOURS = range(9, 21)


class FixedSource:
    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    def laplace(self, scale):
        self.calls += 1
        return self.values.pop(0)


@pytest.fixture
def zero_noise() -> FixedSource:
    """Noise source that returns 0 for each of the twelve opening hours."""
    return FixedSource(*([0.0] * len(HOURS)))


@pytest.fixture
def engine(zero_noise) -> AggregationEngine:
    """Engine over hours 9..20 with epsilon ln 3 and one hour per visitor."""
    return AggregationEngine(HOURS, math.log(3), 1, random_source=zero_noise)


def test_example_scenario_raw_counts() -> None:
    """Five visitors over four hours."""
    engine = AggregationEngine({9, 10, 15, 20}, 1.0, 1, random_source=SeededRandomSource(0))
    engine.ingest_all([
        Event("E1", 9), Event("E2", 9), Event("E3", 10), Event("E4", 15), Event("E5", 20),
    ])
    assert dict(engine.raw_counts()) == {9: 2, 10: 1, 15: 1, 20: 1}


def test_result_keys_equal_domain_without_events(engine) -> None:
    """Both maps cover the whole domain even when nothing was ingested."""
    raw = engine.raw_counts()
    private = engine.private_counts()
    assert set(raw) == set(HOURS)
    assert set(private) == set(HOURS)
    assert all(v == 0 for v in raw.values())


def test_result_keys_equal_domain_with_sparse_events(engine) -> None:
    """Empty partitions are still reported."""
    engine.ingest(Event(1, 12))
    assert set(engine.raw_counts()) == set(HOURS)
    assert set(engine.private_counts()) == set(HOURS)
    assert engine.raw_counts()[12] == 1
    assert engine.raw_counts()[13] == 0


def test_private_counts_with_zero_noise_match_raw(engine) -> None:
    """Private counts are raw counts plus noise, nothing else."""
    engine.ingest_all([Event(i, 9 + i % 3) for i in range(30)])
    assert dict(engine.private_counts()) == dict(engine.raw_counts())


def test_private_counts_are_cached(engine, zero_noise) -> None:
    """A second call returns the same map and draws no new noise."""
    first = engine.private_counts()
    second = engine.private_counts()
    assert first is second
    assert zero_noise.calls == len(HOURS)


def test_private_counts_twice_bit_identical_with_real_noise() -> None:
    """Repeated reads never redraw noise."""
    engine = AggregationEngine(HOURS, 0.1, 1)
    first = dict(engine.private_counts())
    assert dict(engine.private_counts()) == first


def test_result_maps_are_read_only(engine) -> None:
    """Published maps cannot be edited in place."""
    with pytest.raises(TypeError):
        engine.raw_counts()[9] = 100
    with pytest.raises(TypeError):
        engine.private_counts()[9] = 100


def test_zero_events_private_counts_average_to_zero() -> None:
    """Noise-only private counts have expectation 0 across many runs."""
    source = SeededRandomSource(2024)
    samples = []
    for _ in range(400):
        engine = AggregationEngine(HOURS, math.log(3), 1, random_source=source)
        samples.extend(engine.private_counts().values())
    assert len(samples) == 400 * len(HOURS)
    assert abs(np.mean(samples)) < 0.1


def test_contribution_bound_drops_second_partition(engine) -> None:
    """E1's second hour is dropped; E2's contribution to the same hour counts."""
    assert engine.ingest(Event("E1", 9))
    assert not engine.ingest(Event("E1", 10))
    assert engine.ingest(Event("E2", 10))

    raw = engine.raw_counts()
    assert raw[9] == 1
    assert raw[10] == 1
    assert engine.dropped_contributions() == 1
    assert engine.private_counts()[10] == 1


def test_out_of_domain_event_is_rejected(engine) -> None:
    """A key outside the domain raises and is excluded from both maps."""
    with pytest.raises(IngestError) as exc_info:
        engine.ingest(Event("E1", 3))
    assert exc_info.value.reason is IngestErrorReason.OUT_OF_DOMAIN
    assert exc_info.value.key == 3

    assert 3 not in engine.raw_counts()
    assert 3 not in engine.private_counts()
    assert sum(engine.raw_counts().values()) == 0
    assert engine.out_of_domain() == 1


def test_out_of_domain_does_not_consume_contribution_bound(engine) -> None:
    """A rejected event leaves the entity free to contribute elsewhere."""
    with pytest.raises(IngestError):
        engine.ingest(Event("E1", 3))
    assert engine.ingest(Event("E1", 9))
    assert engine.dropped_contributions() == 0


def test_ingest_all_skips_and_reports(engine) -> None:
    """Bad events are recorded and ingestion carries on."""
    summary = engine.ingest_all([
        Event(1, 9), Event(2, 3), Event(3, 10), Event(1, 11), Event(4, 25), Event(5, 20),
    ])
    assert summary.ingested == 6
    assert summary.accepted == 3
    assert summary.dropped_contributions == 1
    assert summary.out_of_domain == 2
    assert [e.key for e in summary.errors] == [3, 25]
    assert sum(engine.raw_counts().values()) == 3


def test_summary_raise_for_errors(engine) -> None:
    """Recorded errors surface together, each one kept distinct."""
    engine.ingest_all([Event(1, 9)]).raise_for_errors()

    summary = engine.ingest_all([Event(2, 3), Event(3, 4)])
    with pytest.raises(ExceptionGroup) as exc_info:
        summary.raise_for_errors()
    errors = exc_info.value.exceptions
    assert len(errors) == 2
    assert all(isinstance(e, IngestError) for e in errors)
    assert {e.key for e in errors} == {3, 4}


@pytest.mark.parametrize("kwargs", [
    {"domain": []},
    {"epsilon": 0.0},
    {"epsilon": -1.0},
    {"epsilon": float("nan")},
    {"epsilon": float("inf")},
    {"max_partitions_per_entity": 0},
    {"noise_kind": "gaussian"},
    {"max_contributions_per_partition": 0},
    {"max_partitions_per_entity": 2.5},
    {"max_partitions_per_entity": True},
    {"max_contributions_per_partition": 1.5},
])
def test_invalid_construction(kwargs) -> None:
    """Invalid parameters fail fast with ConfigError."""
    params = {"domain": HOURS, "epsilon": 1.0, "max_partitions_per_entity": 1}
    params.update(kwargs)
    with pytest.raises(ConfigError):
        AggregationEngine(**params)


def test_config_error_is_value_error() -> None:
    """Callers catching ValueError still see configuration problems."""
    with pytest.raises(ValueError):
        AggregationEngine([], 1.0, 1)


def test_ingest_after_release_fails(engine) -> None:
    """Finalization is a barrier: no increment after private counts are released."""
    engine.ingest(Event(1, 9))
    engine.private_counts()
    with pytest.raises(StateError) as exc_info:
        engine.ingest(Event(2, 9))
    assert exc_info.value.reason is StateErrorReason.ALREADY_FINALIZED
    # raw counts stay readable
    assert engine.raw_counts()[9] == 1
    assert engine.finalized


def test_abort_discards_everything(engine, zero_noise) -> None:
    """An aborted run never publishes and draws no noise."""
    engine.ingest(Event(1, 9))
    engine.abort()
    for call in (engine.raw_counts, engine.private_counts, lambda: engine.ingest(Event(2, 9))):
        with pytest.raises(StateError) as exc_info:
            call()
        assert exc_info.value.reason is StateErrorReason.ABORTED
    assert zero_noise.calls == 0


def test_sensitivity_and_scale() -> None:
    """Sensitivity is the contribution bound; scale is sensitivity / epsilon."""
    engine = AggregationEngine(HOURS, 0.5, 2, max_contributions_per_partition=3)
    assert engine.sensitivity == 6
    assert engine.scale == pytest.approx(12.0)


def test_custom_key_fn() -> None:
    """The partition key can be derived from the event instead of stored on it."""
    engine = AggregationEngine(
        HOURS, 1.0, 1,
        key_fn=lambda e: e.timestamp.hour,
        random_source=SeededRandomSource(0),
    )
    engine.ingest(Event("E1", None, time(9, 45)))
    engine.ingest(Event("E2", None, time(9, 5)))
    with pytest.raises(IngestError):
        engine.ingest(Event("E3", None, time(22, 0)))
    assert engine.raw_counts()[9] == 2


def test_from_config_uses_opening_hours() -> None:
    """The default domain comes from the config's opening and closing hours."""
    engine = AggregationEngine.from_config(Config(), random_source=SeededRandomSource(0))
    assert engine.domain == frozenset(HOURS)
    assert engine.epsilon == pytest.approx(math.log(3))
    assert engine.sensitivity == 1


def test_larger_epsilon_reduces_noise_variance() -> None:
    """Variance of noise-only private counts shrinks as epsilon grows."""
    source = SeededRandomSource(99)

    def noise_variance(epsilon):
        samples = []
        for _ in range(200):
            engine = AggregationEngine(HOURS, epsilon, 1, random_source=source)
            samples.extend(engine.private_counts().values())
        return np.var(samples)

    low_eps_engine = AggregationEngine(HOURS, 0.5, 1, random_source=source)
    high_eps_engine = AggregationEngine(HOURS, 4.0, 1, random_source=source)
    assert high_eps_engine.scale < low_eps_engine.scale
    assert noise_variance(4.0) < noise_variance(0.5)


def test_concurrent_ingestion() -> None:
    """Sharded ingestion loses no increments and keeps the contribution bound."""
    engine = AggregationEngine(HOURS, 1.0, 1, random_source=SeededRandomSource(0))

    def shard(worker):
        for i in range(500):
            # entity ids are unique per worker; every entity tries two hours
            entity = (worker, i)
            engine.ingest(Event(entity, 9 + i % 12))
            engine.ingest(Event(entity, 9 + (i + 1) % 12))

    threads = [threading.Thread(target=shard, args=(w,)) for w in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(engine.raw_counts().values()) == 4 * 500
    assert engine.dropped_contributions() == 4 * 500
    summary = engine.summary()
    assert summary.ingested == 4 * 500 * 2
    assert summary.accepted == 4 * 500


def test_fractional_cap_cannot_widen_contribution_bound() -> None:
    """A non-integer cap is refused rather than admitting more partitions than the noise covers."""
    with pytest.raises(ConfigError):
        AggregationEngine(HOURS, 1.0, 2.5)


def test_unhashable_key_is_out_of_domain(engine) -> None:
    """A key that cannot be looked up is rejected like any other foreign key."""
    with pytest.raises(IngestError) as exc_info:
        engine.ingest(Event("E1", [9]))
    assert exc_info.value.reason is IngestErrorReason.OUT_OF_DOMAIN
    assert engine.out_of_domain() == 1
    assert sum(engine.raw_counts().values()) == 0

    summary = engine.ingest_all([Event("E2", {"hour": 9}), Event("E3", 9)])
    assert summary.out_of_domain == 2
    assert summary.accepted == 1
