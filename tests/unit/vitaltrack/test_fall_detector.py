"""
Tests for the fall-detection state machine and its state store.

Readings are fed with explicit millisecond timestamps so every timer
boundary is exercised deterministically.
"""

import pytest
from structlog.testing import capture_logs

from vitaltrack.config import FallDetectionConfig
from vitaltrack.domain.models import AccelerometerReading
from vitaltrack.services.fall_detector import FallDetector, FallPhase, FallStateStore

RESIDENT = "resident-1"


def frame(magnitude: float, timestamp: int) -> AccelerometerReading:
    """A reading whose magnitude is carried entirely on the z axis."""
    return AccelerometerReading(x=0.0, y=0.0, z=magnitude, timestamp=timestamp)


class FakeTimer:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def detector() -> FallDetector:
    return FallDetector(FallDetectionConfig())


def phase(detector: FallDetector) -> FallPhase | None:
    state = detector.store.get(RESIDENT)
    return state.phase if state is not None else None


class TestFallSequence:
    def test_impact_then_stillness_confirms_one_fall_at_ten_seconds(
        self, detector: FallDetector
    ) -> None:
        events = [detector.process(RESIDENT, frame(3.0, 0), 0)]
        for t in range(0, 10_001, 1000):
            events.append(detector.process(RESIDENT, frame(0.2, t), t, location="Garden"))

        falls = [e for e in events if e is not None]
        assert len(falls) == 1
        fall = falls[0]
        assert fall.detected_at == 10_000
        assert fall.impact_time == 0
        assert fall.impact_magnitude == pytest.approx(3.0)
        assert fall.inactivity_duration_ms == 10_000
        assert fall.location == "Garden"
        assert phase(detector) is FallPhase.IDLE

    def test_no_fall_before_duration_elapses(self, detector: FallDetector) -> None:
        detector.process(RESIDENT, frame(3.0, 0), 0)
        detector.process(RESIDENT, frame(0.2, 100), 100)

        assert detector.process(RESIDENT, frame(0.2, 10_099), 10_099) is None
        assert detector.process(RESIDENT, frame(0.2, 10_100), 10_100) is not None

    def test_location_defaults_to_unknown(self, detector: FallDetector) -> None:
        detector.process(RESIDENT, frame(3.0, 0), 0)
        detector.process(RESIDENT, frame(0.2, 0), 0)

        fall = detector.process(RESIDENT, frame(0.2, 10_000), 10_000)

        assert fall is not None
        assert fall.location == "Unknown"

    def test_impact_reading_only_arms_detection(self, detector: FallDetector) -> None:
        assert detector.process(RESIDENT, frame(3.0, 0), 0) is None
        assert phase(detector) is FallPhase.IMPACT_PENDING

        state = detector.store.get(RESIDENT)
        assert state is not None
        assert state.impact_time == 0
        assert state.inactivity_start_time is None

    def test_threshold_is_strict(self, detector: FallDetector) -> None:
        detector.process(RESIDENT, frame(2.5, 0), 0)

        assert phase(detector) is FallPhase.IDLE

    def test_second_impact_while_pending_keeps_first(self, detector: FallDetector) -> None:
        detector.process(RESIDENT, frame(3.0, 0), 0)
        detector.process(RESIDENT, frame(4.0, 6000), 6000)

        state = detector.store.get(RESIDENT)
        assert state is not None
        assert state.impact_time == 0
        assert state.impact_magnitude == pytest.approx(3.0)


class TestDismissal:
    def test_movement_soon_after_impact_is_false_positive(self, detector: FallDetector) -> None:
        detector.process(RESIDENT, frame(3.0, 0), 0)

        assert detector.process(RESIDENT, frame(1.0, 2000), 2000) is None
        assert phase(detector) is FallPhase.IDLE

        # Stillness afterwards must not confirm a fall without a new impact
        for t in range(3000, 20_000, 1000):
            assert detector.process(RESIDENT, frame(0.2, t), t) is None

    def test_movement_after_window_only_clears_inactivity(self, detector: FallDetector) -> None:
        detector.process(RESIDENT, frame(3.0, 0), 0)
        detector.process(RESIDENT, frame(0.2, 1000), 1000)
        detector.process(RESIDENT, frame(1.0, 6000), 6000)

        state = detector.store.get(RESIDENT)
        assert state is not None
        assert state.phase is FallPhase.IMPACT_PENDING
        assert state.inactivity_start_time is None

        # Stillness restarts the inactivity timer from scratch
        detector.process(RESIDENT, frame(0.2, 7000), 7000)
        assert detector.process(RESIDENT, frame(0.2, 16_999), 16_999) is None
        assert detector.process(RESIDENT, frame(0.2, 17_000), 17_000) is not None

    def test_pending_impact_times_out(self, detector: FallDetector) -> None:
        detector.process(RESIDENT, frame(3.0, 0), 0)
        detector.process(RESIDENT, frame(1.0, 30_000), 30_000)

        assert detector.process(RESIDENT, frame(1.0, 60_001), 60_001) is None
        assert phase(detector) is FallPhase.IDLE


class TestInputHandling:
    def test_incomplete_reading_is_ignored(self, detector: FallDetector) -> None:
        reading = AccelerometerReading(x=3.0, y=None, z=1.0, timestamp=0)

        assert detector.process(RESIDENT, reading, 0) is None
        assert RESIDENT not in detector.store

    def test_zero_axis_is_a_real_value(self, detector: FallDetector) -> None:
        detector.process(RESIDENT, AccelerometerReading(x=3.0, y=0.0, z=0.0), 0)

        assert phase(detector) is FallPhase.IMPACT_PENDING

    def test_residents_are_independent(self, detector: FallDetector) -> None:
        detector.process("a", frame(3.0, 0), 0)
        detector.process("b", frame(1.0, 0), 0)

        assert detector.store.get("a").phase is FallPhase.IMPACT_PENDING  # type: ignore[union-attr]
        assert detector.store.get("b").phase is FallPhase.IDLE  # type: ignore[union-attr]

    def test_rolling_buffer_keeps_thirty_seconds(self, detector: FallDetector) -> None:
        for t in range(0, 40_000, 5000):
            detector.process(RESIDENT, frame(1.0, t), t)

        state = detector.store.get(RESIDENT)
        assert state is not None
        assert [ts for _, ts in state.recent_buffer] == list(range(10_000, 40_000, 5000))

    def test_pending_state_without_impact_time_is_reset(self, detector: FallDetector) -> None:
        state = detector.store.get_or_create(RESIDENT)
        state.impact_detected = True

        assert detector.process(RESIDENT, frame(0.1, 20_000), 20_000) is None
        assert phase(detector) is FallPhase.IDLE

    def test_custom_thresholds(self) -> None:
        detector = FallDetector(
            FallDetectionConfig(impact_threshold_g=2.0, inactivity_duration_ms=5000)
        )
        detector.process(RESIDENT, frame(2.2, 0), 0)
        detector.process(RESIDENT, frame(0.1, 0), 0)

        assert detector.process(RESIDENT, frame(0.1, 5000), 5000) is not None


class TestFallStateStore:
    def test_idle_state_expires(self) -> None:
        timer = FakeTimer()
        store = FallStateStore(idle_ttl_seconds=60, timer=timer)
        store.get_or_create(RESIDENT)

        timer.now = 61
        assert store.expire() == 1
        assert RESIDENT not in store

    def test_access_refreshes_ttl(self) -> None:
        timer = FakeTimer()
        store = FallStateStore(idle_ttl_seconds=60, timer=timer)
        store.get_or_create(RESIDENT)

        timer.now = 50
        store.get_or_create(RESIDENT)
        timer.now = 100

        assert store.expire() == 0
        assert RESIDENT in store

    def test_forget_evicts_state(self, detector: FallDetector) -> None:
        detector.process(RESIDENT, frame(3.0, 0), 0)

        assert detector.forget(RESIDENT) is True
        assert RESIDENT not in detector.store
        assert detector.forget(RESIDENT) is False

    def test_full_store_drops_least_recent_resident_and_logs(self) -> None:
        store = FallStateStore(maxsize=2)
        store.get_or_create("a").begin_impact(3.0, 0)
        store.get_or_create("b")

        with capture_logs() as logs:
            store.get_or_create("c")

        assert "a" not in store
        assert len(store) == 2
        evictions = [e for e in logs if e["event"] == "fall_state_capacity_evicted"]
        assert len(evictions) == 1
        assert evictions[0]["resident_id"] == "a"
        assert evictions[0]["impact_pending"] is True

    def test_detector_store_capacity_comes_from_config(self) -> None:
        detector = FallDetector(FallDetectionConfig(state_max_entries=1))
        detector.process("a", frame(1.0, 0), 0)
        detector.process("b", frame(1.0, 0), 0)

        assert "a" not in detector.store
        assert "b" in detector.store
