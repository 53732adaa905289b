"""
Domain models for resident vital-sign monitoring.

These models represent the core business concepts and are framework-agnostic.
Wire-facing models accept and emit camelCase field names so payloads match
what devices send and what dashboard clients expect.
"""

import math
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from vitaltrack.domain.errors import InvalidStateTransition


class AlertCategory(str, Enum):
    """What an alert is about."""

    HEART_RATE = "heart_rate"
    SPO2 = "spo2"
    RESPIRATION_RATE = "respiration_rate"
    STRESS_LEVEL = "stress_level"
    FALL_DETECTED = "fall_detected"
    DEVICE_DISCONNECTED = "device_disconnected"
    LOW_BATTERY = "low_battery"


class AlertSeverity(str, Enum):
    """How urgently staff must respond."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class AlertStatus(str, Enum):
    """Alert lifecycle states. RESOLVED is terminal."""

    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    ESCALATED = "escalated"


# Statuses that suppress a repeat alert of the same category
OPEN_STATUSES = frozenset({AlertStatus.ACTIVE, AlertStatus.ACKNOWLEDGED})


class WireModel(BaseModel):
    """Base for models that cross the ingestion or broadcast boundary."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ThresholdProfile(WireModel):
    """Per-resident normal ranges for each monitored metric."""

    heart_rate_min: int = Field(default=50, ge=30, le=200)
    heart_rate_max: int = Field(default=120, ge=30, le=200)
    spo2_min: int = Field(default=90, ge=70, le=100)
    respiration_min: int = Field(default=12, ge=5, le=50)
    respiration_max: int = Field(default=25, ge=5, le=50)
    stress_max: int = Field(default=80, ge=0, le=100)

    @model_validator(mode="after")
    def ranges_are_ordered(self) -> "ThresholdProfile":
        if self.heart_rate_min >= self.heart_rate_max:
            raise ValueError("Heart rate min must be less than heart rate max")
        if self.respiration_min >= self.respiration_max:
            raise ValueError("Respiration rate min must be less than respiration rate max")
        return self

    @classmethod
    def from_defaults(cls, defaults: BaseModel) -> "ThresholdProfile":
        """Build a profile from deployment defaults (see ``ThresholdDefaults``)."""
        return cls.model_validate(defaults.model_dump())

    def heart_rate_normal(self, heart_rate: float) -> bool:
        return self.heart_rate_min <= heart_rate <= self.heart_rate_max

    def spo2_normal(self, spo2: float) -> bool:
        return spo2 >= self.spo2_min

    def respiration_normal(self, respiration_rate: float) -> bool:
        return self.respiration_min <= respiration_rate <= self.respiration_max

    def stress_normal(self, stress_level: float) -> bool:
        return stress_level <= self.stress_max


class AccelerometerReading(WireModel):
    """One accelerometer frame in g. Axes may be missing on malformed payloads."""

    model_config = ConfigDict(frozen=True)

    x: float | None = None
    y: float | None = None
    z: float | None = None
    timestamp: int | None = Field(default=None, description="Device time, epoch milliseconds")

    @property
    def is_complete(self) -> bool:
        return self.x is not None and self.y is not None and self.z is not None

    @property
    def magnitude(self) -> float:
        if not self.is_complete:
            raise ValueError("Accelerometer reading is missing an axis")
        return math.sqrt(self.x**2 + self.y**2 + self.z**2)  # type: ignore[operator]


class VitalSample(WireModel):
    """A single device tick for one resident. Immutable once ingested."""

    model_config = ConfigDict(frozen=True)

    resident_id: str = Field(min_length=1)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    heart_rate: int | None = Field(default=None, ge=20, le=300)
    spo2: int | None = Field(default=None, ge=0, le=100)
    respiration_rate: int | None = Field(default=None, ge=0, le=100)
    stress_level: int | None = Field(default=None, ge=0, le=100)
    accelerometer: AccelerometerReading | None = None
    location: str | None = Field(default=None, max_length=255)

    def to_payload(self) -> dict[str, Any]:
        """Sample fields as sent to subscribers."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Violation(BaseModel):
    """A single metric's out-of-range finding, not yet deduplicated or persisted."""

    model_config = ConfigDict(frozen=True)

    category: AlertCategory
    severity: AlertSeverity
    message: str
    value: float
    threshold: dict[str, float]


class FallEvent(BaseModel):
    """Confirmed fall: an impact followed by prolonged inactivity."""

    model_config = ConfigDict(frozen=True)

    resident_id: str
    impact_magnitude: float
    impact_time: int = Field(description="Epoch milliseconds of the impact")
    inactivity_duration_ms: int
    detected_at: int = Field(description="Epoch milliseconds the fall was confirmed")
    location: str = "Unknown"


class AlertCandidate(BaseModel):
    """An alert the coordinator wants raised, pending deduplication."""

    model_config = ConfigDict(frozen=True)

    resident_id: str
    facility_id: str
    category: AlertCategory
    severity: AlertSeverity
    message: str
    vital_data: dict[str, Any] = Field(default_factory=dict)


class Alert(WireModel):
    """A persisted alert. Mutated only through the lifecycle methods below."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    resident_id: str
    facility_id: str
    category: AlertCategory
    severity: AlertSeverity
    message: str
    vital_data: dict[str, Any] = Field(default_factory=dict)
    status: AlertStatus = AlertStatus.ACTIVE
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    resolution_notes: str | None = None
    escalated_at: datetime | None = None

    @classmethod
    def from_candidate(cls, candidate: AlertCandidate, created_at: datetime) -> "Alert":
        return cls(
            resident_id=candidate.resident_id,
            facility_id=candidate.facility_id,
            category=candidate.category,
            severity=candidate.severity,
            message=candidate.message,
            vital_data=dict(candidate.vital_data),
            created_at=created_at,
            updated_at=created_at,
        )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def is_critical(self) -> bool:
        return self.severity is AlertSeverity.CRITICAL

    @property
    def response_time(self) -> timedelta | None:
        """Time from creation to acknowledgement."""
        if self.acknowledged_at is None:
            return None
        return self.acknowledged_at - self.created_at

    @property
    def resolution_time(self) -> timedelta | None:
        """Time from creation to resolution."""
        if self.resolved_at is None:
            return None
        return self.resolved_at - self.created_at

    def acknowledge(self, user_id: str, at: datetime) -> None:
        if self.status is not AlertStatus.ACTIVE:
            raise InvalidStateTransition(self.id, self.status.value, "acknowledge")
        self.status = AlertStatus.ACKNOWLEDGED
        self.acknowledged_by = user_id
        self.acknowledged_at = at
        self.updated_at = at

    def resolve(self, user_id: str, at: datetime, notes: str | None = None) -> None:
        if self.status is AlertStatus.RESOLVED:
            raise InvalidStateTransition(self.id, self.status.value, "resolve")
        self.status = AlertStatus.RESOLVED
        self.resolved_by = user_id
        self.resolved_at = at
        if notes:
            self.resolution_notes = notes
        self.updated_at = at

    def escalate(self, at: datetime) -> None:
        if self.status in (AlertStatus.RESOLVED, AlertStatus.ESCALATED):
            raise InvalidStateTransition(self.id, self.status.value, "escalate")
        self.status = AlertStatus.ESCALATED
        self.escalated_at = at
        self.updated_at = at

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Resident(BaseModel):
    """The slice of a resident record the alerting engine needs."""

    id: str
    facility_id: str
    full_name: str
    is_active: bool = True
    thresholds: ThresholdProfile | None = None
