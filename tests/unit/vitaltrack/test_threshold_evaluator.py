"""
Tests for per-metric threshold evaluation.

Covers:
- Warning vs critical banding for heart rate and SpO2
- Warning-only metrics (respiration, stress)
- Skipping of absent metrics
- Property: in-range values never produce a violation
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from vitaltrack.domain.models import AlertCategory, AlertSeverity, ThresholdProfile, VitalSample
from vitaltrack.services.threshold_evaluator import (
    check_heart_rate,
    check_respiration_rate,
    check_spo2,
    check_stress_level,
    evaluate,
)

DEFAULT_PROFILE = ThresholdProfile()


class TestHeartRate:
    def test_far_above_max_is_critical(self) -> None:
        violations = evaluate(VitalSample(resident_id="r", heart_rate=145), DEFAULT_PROFILE)

        assert len(violations) == 1
        assert violations[0].category is AlertCategory.HEART_RATE
        assert violations[0].severity is AlertSeverity.CRITICAL
        assert violations[0].message == (
            "Heart rate 145 BPM is severely out of range (Normal: 50-120 BPM)"
        )

    def test_moderately_above_max_is_warning(self) -> None:
        violations = evaluate(VitalSample(resident_id="r", heart_rate=130), DEFAULT_PROFILE)

        assert len(violations) == 1
        assert violations[0].severity is AlertSeverity.WARNING
        assert violations[0].message == "Heart rate 130 BPM is out of range (Normal: 50-120 BPM)"

    @pytest.mark.parametrize(
        ("heart_rate", "severity"),
        [
            (140, AlertSeverity.WARNING),
            (141, AlertSeverity.CRITICAL),
            (40, AlertSeverity.WARNING),
            (39, AlertSeverity.CRITICAL),
        ],
    )
    def test_critical_band_edges(self, heart_rate: int, severity: AlertSeverity) -> None:
        violation = check_heart_rate(heart_rate, DEFAULT_PROFILE)

        assert violation is not None
        assert violation.severity is severity

    def test_bounds_are_inclusive(self) -> None:
        assert check_heart_rate(50, DEFAULT_PROFILE) is None
        assert check_heart_rate(120, DEFAULT_PROFILE) is None

    def test_threshold_band_is_reported(self) -> None:
        violation = check_heart_rate(130, DEFAULT_PROFILE)

        assert violation is not None
        assert violation.value == 130
        assert violation.threshold == {"min": 50, "max": 120}

    def test_custom_profile_moves_critical_band(self) -> None:
        profile = ThresholdProfile(heart_rate_min=60, heart_rate_max=100)

        warning = check_heart_rate(115, profile)
        critical = check_heart_rate(125, profile)

        assert warning is not None and warning.severity is AlertSeverity.WARNING
        assert critical is not None and critical.severity is AlertSeverity.CRITICAL


class TestSpo2:
    def test_below_absolute_floor_is_critical(self) -> None:
        violation = check_spo2(84, DEFAULT_PROFILE)

        assert violation is not None
        assert violation.severity is AlertSeverity.CRITICAL
        assert violation.message == "Blood oxygen 84% is dangerously low (Normal: >=90%)"

    def test_below_min_is_warning(self) -> None:
        violation = check_spo2(88, DEFAULT_PROFILE)

        assert violation is not None
        assert violation.severity is AlertSeverity.WARNING

    def test_floor_does_not_scale_with_profile(self) -> None:
        profile = ThresholdProfile(spo2_min=95)

        at_floor = check_spo2(85, profile)
        below_floor = check_spo2(84, profile)

        assert at_floor is not None and at_floor.severity is AlertSeverity.WARNING
        assert below_floor is not None and below_floor.severity is AlertSeverity.CRITICAL

    def test_at_min_is_normal(self) -> None:
        assert check_spo2(90, DEFAULT_PROFILE) is None


class TestWarningOnlyMetrics:
    @pytest.mark.parametrize("rate", [5, 11, 26, 45])
    def test_respiration_outside_band_is_warning(self, rate: int) -> None:
        violation = check_respiration_rate(rate, DEFAULT_PROFILE)

        assert violation is not None
        assert violation.category is AlertCategory.RESPIRATION_RATE
        assert violation.severity is AlertSeverity.WARNING

    def test_stress_above_max_is_warning(self) -> None:
        violation = check_stress_level(95, DEFAULT_PROFILE)

        assert violation is not None
        assert violation.severity is AlertSeverity.WARNING
        assert violation.message == "Stress level 95 is elevated (Threshold: <=80)"

    def test_stress_at_max_is_normal(self) -> None:
        assert check_stress_level(80, DEFAULT_PROFILE) is None


class TestEvaluate:
    def test_each_metric_is_checked_independently(self) -> None:
        sample = VitalSample(
            resident_id="r", heart_rate=150, spo2=80, respiration_rate=30, stress_level=90
        )

        violations = evaluate(sample, DEFAULT_PROFILE)

        assert [v.category for v in violations] == [
            AlertCategory.HEART_RATE,
            AlertCategory.SPO2,
            AlertCategory.RESPIRATION_RATE,
            AlertCategory.STRESS_LEVEL,
        ]

    def test_absent_metrics_are_skipped(self) -> None:
        assert evaluate(VitalSample(resident_id="r"), DEFAULT_PROFILE) == []

    def test_resident_name_prefixes_message(self) -> None:
        violations = evaluate(VitalSample(resident_id="r", spo2=88), DEFAULT_PROFILE, "Ada")

        assert violations[0].message.startswith("Ada - Blood oxygen 88%")


class TestInRangeProperty:
    """Property-based: values inside the normal band never raise a violation."""

    @given(
        heart_rate=st.integers(min_value=50, max_value=120),
        spo2=st.integers(min_value=90, max_value=100),
        respiration_rate=st.integers(min_value=12, max_value=25),
        stress_level=st.integers(min_value=0, max_value=80),
    )
    def test_normal_sample_has_no_violations(
        self, heart_rate: int, spo2: int, respiration_rate: int, stress_level: int
    ) -> None:
        sample = VitalSample(
            resident_id="r",
            heart_rate=heart_rate,
            spo2=spo2,
            respiration_rate=respiration_rate,
            stress_level=stress_level,
        )

        assert evaluate(sample, DEFAULT_PROFILE) == []

    @given(
        low=st.integers(min_value=30, max_value=150),
        span=st.integers(min_value=1, max_value=50),
        data=st.data(),
    )
    def test_heart_rate_in_any_profile_band(self, low: int, span: int, data: st.DataObject) -> None:
        high = min(low + span, 200)
        profile = ThresholdProfile(heart_rate_min=low, heart_rate_max=high)
        heart_rate = data.draw(st.integers(min_value=low, max_value=high))

        assert check_heart_rate(heart_rate, profile) is None

    @given(heart_rate=st.integers(min_value=121, max_value=300))
    def test_above_band_severity_matches_offset(self, heart_rate: int) -> None:
        violation = check_heart_rate(heart_rate, DEFAULT_PROFILE)

        assert violation is not None
        expected = AlertSeverity.CRITICAL if heart_rate > 140 else AlertSeverity.WARNING
        assert violation.severity is expected
