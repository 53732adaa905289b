"""
Per-metric threshold evaluation.

Pure functions only: no I/O, no logging, no clock. Each metric is checked
independently, so one sample can produce several violations. The critical
offsets (``min - 10`` / ``max + 20`` for heart rate, absolute 85% for SpO2)
are fixed and do not scale with the profile.
"""

from vitaltrack.domain.models import (
    AlertCategory,
    AlertSeverity,
    ThresholdProfile,
    VitalSample,
    Violation,
)

HEART_RATE_CRITICAL_LOW_OFFSET = 10
HEART_RATE_CRITICAL_HIGH_OFFSET = 20
SPO2_CRITICAL_FLOOR = 85


def _label(message: str, resident_name: str | None) -> str:
    return f"{resident_name} - {message}" if resident_name else message


def check_heart_rate(
    heart_rate: float, profile: ThresholdProfile, resident_name: str | None = None
) -> Violation | None:
    if profile.heart_rate_normal(heart_rate):
        return None

    band = f"(Normal: {profile.heart_rate_min}-{profile.heart_rate_max} BPM)"
    critical = (
        heart_rate < profile.heart_rate_min - HEART_RATE_CRITICAL_LOW_OFFSET
        or heart_rate > profile.heart_rate_max + HEART_RATE_CRITICAL_HIGH_OFFSET
    )
    if critical:
        message = f"Heart rate {heart_rate:g} BPM is severely out of range {band}"
    else:
        message = f"Heart rate {heart_rate:g} BPM is out of range {band}"

    return Violation(
        category=AlertCategory.HEART_RATE,
        severity=AlertSeverity.CRITICAL if critical else AlertSeverity.WARNING,
        message=_label(message, resident_name),
        value=heart_rate,
        threshold={"min": profile.heart_rate_min, "max": profile.heart_rate_max},
    )


def check_spo2(
    spo2: float, profile: ThresholdProfile, resident_name: str | None = None
) -> Violation | None:
    if profile.spo2_normal(spo2):
        return None

    band = f"(Normal: >={profile.spo2_min}%)"
    critical = spo2 < SPO2_CRITICAL_FLOOR
    if critical:
        message = f"Blood oxygen {spo2:g}% is dangerously low {band}"
    else:
        message = f"Blood oxygen {spo2:g}% is below threshold {band}"

    return Violation(
        category=AlertCategory.SPO2,
        severity=AlertSeverity.CRITICAL if critical else AlertSeverity.WARNING,
        message=_label(message, resident_name),
        value=spo2,
        threshold={"min": profile.spo2_min},
    )


def check_respiration_rate(
    respiration_rate: float, profile: ThresholdProfile, resident_name: str | None = None
) -> Violation | None:
    if profile.respiration_normal(respiration_rate):
        return None

    message = (
        f"Respiration rate {respiration_rate:g} breaths/min is abnormal "
        f"(Normal: {profile.respiration_min}-{profile.respiration_max} breaths/min)"
    )
    return Violation(
        category=AlertCategory.RESPIRATION_RATE,
        severity=AlertSeverity.WARNING,
        message=_label(message, resident_name),
        value=respiration_rate,
        threshold={"min": profile.respiration_min, "max": profile.respiration_max},
    )


def check_stress_level(
    stress_level: float, profile: ThresholdProfile, resident_name: str | None = None
) -> Violation | None:
    if profile.stress_normal(stress_level):
        return None

    message = f"Stress level {stress_level:g} is elevated (Threshold: <={profile.stress_max})"
    return Violation(
        category=AlertCategory.STRESS_LEVEL,
        severity=AlertSeverity.WARNING,
        message=_label(message, resident_name),
        value=stress_level,
        threshold={"max": profile.stress_max},
    )


def evaluate(
    sample: VitalSample, profile: ThresholdProfile, resident_name: str | None = None
) -> list[Violation]:
    """Check every metric present on the sample against the resident's profile."""
    checks = (
        (sample.heart_rate, check_heart_rate),
        (sample.spo2, check_spo2),
        (sample.respiration_rate, check_respiration_rate),
        (sample.stress_level, check_stress_level),
    )

    violations: list[Violation] = []
    for value, check in checks:
        if value is None:
            continue
        violation = check(value, profile, resident_name)
        if violation is not None:
            violations.append(violation)
    return violations
