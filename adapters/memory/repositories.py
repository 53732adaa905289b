"""
In-memory implementations of the storage protocols.

Used by the local simulation, the demo script and the test suite. Records are
deep-copied on the way in and out so callers cannot mutate stored state
behind the repository's back, the same guarantee a database round-trip gives.
"""

import asyncio
from collections import defaultdict, deque
from datetime import datetime

import structlog

from vitaltrack.config import ThresholdDefaults
from vitaltrack.domain.errors import ConcurrentModification
from vitaltrack.domain.models import Alert, AlertStatus, Resident, ThresholdProfile, VitalSample

logger = structlog.get_logger(__name__)


class InMemoryResidentRepository:
    def __init__(self, defaults: ThresholdDefaults | None = None) -> None:
        self.defaults = defaults or ThresholdDefaults()
        self._residents: dict[str, Resident] = {}

    def add(
        self,
        resident_id: str,
        facility_id: str,
        full_name: str,
        thresholds: ThresholdProfile | None = None,
        with_default_thresholds: bool = True,
    ) -> Resident:
        """Register a resident; new residents get the deployment default profile."""
        if thresholds is None and with_default_thresholds:
            thresholds = ThresholdProfile.from_defaults(self.defaults)
        resident = Resident(
            id=resident_id,
            facility_id=facility_id,
            full_name=full_name,
            thresholds=thresholds,
        )
        self._residents[resident_id] = resident
        return resident.model_copy(deep=True)

    async def get(self, resident_id: str) -> Resident | None:
        resident = self._residents.get(resident_id)
        return resident.model_copy(deep=True) if resident is not None else None

    def update_thresholds(self, resident_id: str, thresholds: ThresholdProfile) -> Resident:
        resident = self._residents[resident_id]
        resident.thresholds = thresholds
        logger.info("thresholds_updated", resident_id=resident_id)
        return resident.model_copy(deep=True)

    def deactivate(self, resident_id: str) -> None:
        self._residents[resident_id].is_active = False

    def list_for_facility(self, facility_id: str) -> list[Resident]:
        return [
            r.model_copy(deep=True)
            for r in self._residents.values()
            if r.facility_id == facility_id
        ]


class InMemoryVitalRepository:
    """Keeps the most recent samples per resident."""

    def __init__(self, history_size: int = 1000) -> None:
        self._history: defaultdict[str, deque[VitalSample]] = defaultdict(
            lambda: deque(maxlen=history_size)
        )

    async def record(self, sample: VitalSample) -> None:
        # Samples are frozen; no copy needed
        self._history[sample.resident_id].append(sample)

    def latest(self, resident_id: str) -> VitalSample | None:
        history = self._history.get(resident_id)
        return history[-1] if history else None

    def history(self, resident_id: str) -> list[VitalSample]:
        return list(self._history.get(resident_id, ()))

    def __len__(self) -> int:
        return sum(len(h) for h in self._history.values())


class InMemoryAlertRepository:
    """
    Alert store whose duplicate check and insert happen under one lock,
    matching the transactional insert a relational store would use.
    """

    def __init__(self) -> None:
        self._alerts: dict[str, Alert] = {}
        self._lock = asyncio.Lock()

    async def create_unless_recent(self, alert: Alert, since: datetime) -> tuple[Alert, bool]:
        async with self._lock:
            for existing in self._alerts.values():
                if (
                    existing.resident_id == alert.resident_id
                    and existing.category == alert.category
                    and existing.is_open
                    and existing.created_at >= since
                ):
                    return existing.model_copy(deep=True), False

            self._alerts[alert.id] = alert.model_copy(deep=True)
            return alert.model_copy(deep=True), True

    async def get(self, alert_id: str) -> Alert | None:
        alert = self._alerts.get(alert_id)
        return alert.model_copy(deep=True) if alert is not None else None

    async def save(self, alert: Alert, expected_status: AlertStatus | None = None) -> Alert:
        async with self._lock:
            stored = self._alerts.get(alert.id)
            if (
                expected_status is not None
                and stored is not None
                and stored.status is not expected_status
            ):
                raise ConcurrentModification(
                    alert.id, expected_status.value, stored.status.value
                )
            self._alerts[alert.id] = alert.model_copy(deep=True)
        return alert.model_copy(deep=True)

    async def list_open(self, facility_id: str) -> list[Alert]:
        open_alerts = [
            a.model_copy(deep=True)
            for a in self._alerts.values()
            if a.facility_id == facility_id and a.status is not AlertStatus.RESOLVED
        ]
        return sorted(open_alerts, key=lambda a: a.created_at, reverse=True)

    async def list_for_resident(self, resident_id: str) -> list[Alert]:
        alerts = [
            a.model_copy(deep=True) for a in self._alerts.values() if a.resident_id == resident_id
        ]
        return sorted(alerts, key=lambda a: a.created_at, reverse=True)

    def __len__(self) -> int:
        return len(self._alerts)
