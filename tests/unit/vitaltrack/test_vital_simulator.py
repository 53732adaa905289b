"""Tests for the synthetic vital source and simulation loop."""

import random

import pytest
from hypothesis import given
from hypothesis import strategies as st

from adapters.memory import InMemoryEngine
from tests.conftest import FACILITY_ID, RESIDENT_ID, FakeClock
from vitaltrack.domain.models import AlertCategory
from vitaltrack.services.vital_simulator import (
    VITAL_RANGES,
    SyntheticVitalSource,
    next_value,
    run_simulation,
)


class TestRandomWalk:
    @given(seed=st.integers(min_value=0, max_value=2**32), steps=st.integers(1, 200))
    def test_walk_stays_within_band_plus_overshoot(self, seed: int, steps: int) -> None:
        rng = random.Random(seed)
        heart_rate = VITAL_RANGES["heart_rate"]
        value = None
        for _ in range(steps):
            value = next_value(rng, heart_rate, value)
            assert heart_rate.low - 5 <= value <= heart_rate.high + 5

    def test_spo2_never_exceeds_ceiling(self) -> None:
        rng = random.Random(3)
        value = 99.0
        for _ in range(500):
            value = next_value(rng, VITAL_RANGES["spo2"], value)
            assert value <= 100


class TestSyntheticVitalSource:
    def test_batch_has_one_valid_sample_per_resident(self, clock: FakeClock) -> None:
        source = SyntheticVitalSource(["a", "b", "c"], rng=random.Random(1))

        batch = source.next_batch(clock())

        assert [s.resident_id for s in batch] == ["a", "b", "c"]
        for vital in batch:
            assert vital.timestamp == clock()
            assert vital.heart_rate is not None
            assert vital.accelerometer is not None
            assert vital.accelerometer.timestamp == clock.ms
            assert vital.location is not None

    def test_ordinary_movement_is_not_an_impact(self, clock: FakeClock) -> None:
        source = SyntheticVitalSource(["a"], fall_probability=0.0, rng=random.Random(5))

        for _ in range(100):
            reading = source.next_sample("a", clock()).accelerometer
            assert reading is not None
            assert 0.5 < reading.magnitude < 2.5

    def test_triggered_fall_produces_impact_then_stillness(self, clock: FakeClock) -> None:
        source = SyntheticVitalSource(["a"], fall_probability=0.0, rng=random.Random(5))
        source.trigger_fall("a")

        magnitudes = []
        for _ in range(5):
            reading = source.next_sample("a", clock()).accelerometer
            assert reading is not None
            magnitudes.append(reading.magnitude)
            clock.advance(seconds=5)

        assert magnitudes[0] > 2.5
        assert all(m < 0.5 for m in magnitudes[1:4])
        assert magnitudes[4] > 0.5

    def test_stillness_is_stretched_to_cover_slow_ticks(self) -> None:
        source = SyntheticVitalSource(["a"], fall_stillness_ms=15_000)

        source.cover_fall_confirmation(inactivity_duration_ms=10_000, interval_seconds=30)
        assert source.fall_stillness_ms == 70_000

        source.cover_fall_confirmation(inactivity_duration_ms=10_000, interval_seconds=1)
        assert source.fall_stillness_ms == 70_000

    def test_accelerometer_can_be_disabled(self, clock: FakeClock) -> None:
        source = SyntheticVitalSource(["a"], include_accelerometer=False)

        assert source.next_sample("a", clock()).accelerometer is None

    def test_unknown_resident_cannot_fall(self) -> None:
        with pytest.raises(KeyError):
            SyntheticVitalSource().trigger_fall("nobody")

    def test_invalid_probability(self) -> None:
        with pytest.raises(ValueError):
            SyntheticVitalSource(fall_probability=1.5)

    def test_remove_resident(self, clock: FakeClock) -> None:
        source = SyntheticVitalSource(["a", "b"])
        source.remove_resident("a")

        assert [s.resident_id for s in source.next_batch(clock())] == ["b"]


class TestRunSimulation:
    async def test_runs_requested_cycles(self, engine: InMemoryEngine, clock: FakeClock) -> None:
        source = SyntheticVitalSource([RESIDENT_ID], fall_probability=0.0, rng=random.Random(2))

        stats = await run_simulation(
            engine.coordinator, source, interval_seconds=0, cycles=3, clock=clock
        )

        assert stats.cycles == 3
        assert stats.samples == 3
        assert stats.failures == 0
        assert len(engine.vitals.history(RESIDENT_ID)) == 3

    async def test_simulated_fall_reaches_the_alert_store(
        self, engine: InMemoryEngine, clock: FakeClock
    ) -> None:
        source = SyntheticVitalSource([RESIDENT_ID], fall_probability=0.0, rng=random.Random(2))
        source.trigger_fall(RESIDENT_ID)

        falls = 0
        for _ in range(4):
            stats = await run_simulation(
                engine.coordinator, source, interval_seconds=0, cycles=1, clock=clock
            )
            falls += stats.falls_detected
            clock.advance(seconds=5)

        open_alerts = await engine.alerts.list_open(FACILITY_ID)
        assert falls == 1
        assert AlertCategory.FALL_DETECTED in {a.category for a in open_alerts}

    async def test_unknown_residents_count_as_failures(
        self, engine: InMemoryEngine, clock: FakeClock
    ) -> None:
        source = SyntheticVitalSource(["ghost"], rng=random.Random(2))

        stats = await run_simulation(
            engine.coordinator, source, interval_seconds=0, cycles=1, clock=clock
        )

        assert stats.failures == 1

    async def test_fall_is_confirmed_at_the_default_interval(
        self, engine: InMemoryEngine, clock: FakeClock
    ) -> None:
        source = SyntheticVitalSource([RESIDENT_ID], fall_probability=0.0, rng=random.Random(2))
        source.trigger_fall(RESIDENT_ID)

        falls = 0
        for _ in range(10):
            stats = await run_simulation(engine.coordinator, source, cycles=1, clock=clock)
            falls += stats.falls_detected
            clock.advance(seconds=30)

        assert falls == 1
