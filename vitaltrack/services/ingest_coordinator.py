"""
Per-sample orchestration of the alerting pipeline.

For every incoming sample:
1. Load the resident and threshold profile
2. Record the sample (when a vital store is configured)
3. Broadcast the raw vitals
4. Evaluate thresholds and raise deduplicated alerts
5. Run fall detection and raise a fall alert on confirmation

Stages are isolated: a failed broadcast or notification is logged and
recorded on the outcome, never raised. Samples for one resident are
processed strictly one at a time; different residents run in parallel.
"""

import asyncio
import weakref
from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import structlog
from pydantic.alias_generators import to_camel

from vitaltrack.config import AppConfig, get_config
from vitaltrack.domain.errors import (
    DeliveryError,
    PersistenceError,
    ResidentUnavailable,
    VitalTrackError,
)
from vitaltrack.domain.models import (
    Alert,
    AlertCandidate,
    AlertCategory,
    AlertSeverity,
    FallEvent,
    Resident,
    VitalSample,
    Violation,
)
from vitaltrack.result import Result
from vitaltrack.services.alert_deduplicator import AlertDeduplicator
from vitaltrack.services.broadcaster import Broadcaster
from vitaltrack.services.fall_detector import FallDetector
from vitaltrack.services.notifications import NotificationService
from vitaltrack.services.repositories import AlertRepository, ResidentRepository, VitalRepository
from vitaltrack.services.threshold_evaluator import evaluate

logger = structlog.get_logger(__name__)


@dataclass
class IngestOutcome:
    """Everything that happened while processing one sample."""

    resident_id: str
    facility_id: str
    vital_recorded: bool = False
    vital_broadcast: bool = False
    thresholds_evaluated: bool = False
    fall_detection_ran: bool = False
    violations: list[Violation] = field(default_factory=list)
    fall_event: FallEvent | None = None
    alerts_created: list[Alert] = field(default_factory=list)
    alerts_suppressed: list[Alert] = field(default_factory=list)
    notifications_sent: int = 0
    errors: list[VitalTrackError] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """True when some stage failed but the sample was still processed."""
        return bool(self.errors)


class VitalIngestCoordinator:
    """
    Entry point for device samples.

    Guarantees:
    - Per-resident serialization (keyed locks): fall state and alert
      deduplication never see two samples for one resident at once
    - Cross-resident parallelism in batch mode (structured concurrency)
    - Stage failures come back in the Result or the outcome, never raised
    """

    def __init__(
        self,
        residents: ResidentRepository,
        alerts: AlertRepository,
        broadcaster: Broadcaster,
        notifier: NotificationService,
        *,
        vitals: VitalRepository | None = None,
        config: AppConfig | None = None,
        fall_detector: FallDetector | None = None,
        deduplicator: AlertDeduplicator | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.config = config or get_config()
        self.residents = residents
        self.alerts = alerts
        self.vitals = vitals
        self.broadcaster = broadcaster
        self.notifier = notifier
        self.clock = clock
        self.fall_detector = fall_detector or FallDetector(self.config.fall_detection)
        self.deduplicator = deduplicator or AlertDeduplicator(
            alerts,
            window=timedelta(seconds=self.config.alerting.dedup_window_seconds),
            clock=clock,
        )
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self.logger = logger.bind(component="ingest_coordinator")

    def _lock_for(self, resident_id: str) -> asyncio.Lock:
        lock = self._locks.get(resident_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[resident_id] = lock
        return lock

    async def on_sample(self, sample: VitalSample) -> Result[IngestOutcome, VitalTrackError]:
        """Run the full pipeline for one sample, serialized per resident."""
        async with self._lock_for(sample.resident_id):
            try:
                return await self._process(sample)
            except Exception as e:
                self.logger.exception(
                    "sample_processing_failed", resident_id=sample.resident_id, error=str(e)
                )
                return Result.err(VitalTrackError(f"Sample processing failed: {e}"))

    async def process_batch(
        self, samples: Iterable[VitalSample]
    ) -> list[Result[IngestOutcome, VitalTrackError]]:
        """
        Process a batch (e.g. a facility-wide simulation tick).

        Residents run concurrently; each resident's samples keep their batch
        order. Results are returned in input order.
        """
        batch = list(samples)
        indexes_by_resident: defaultdict[str, list[int]] = defaultdict(list)
        for index, sample in enumerate(batch):
            indexes_by_resident[sample.resident_id].append(index)

        results: list[Result[IngestOutcome, VitalTrackError] | None] = [None] * len(batch)

        async def run_resident(indexes: list[int]) -> None:
            for index in indexes:
                results[index] = await self.on_sample(batch[index])

        async with asyncio.TaskGroup() as task_group:
            for indexes in indexes_by_resident.values():
                task_group.create_task(run_resident(indexes))

        failures = sum(1 for r in results if r is not None and r.is_err())
        self.logger.info(
            "batch_processed",
            samples=len(batch),
            residents=len(indexes_by_resident),
            failures=failures,
        )
        return [r for r in results if r is not None]

    def deactivate_resident(self, resident_id: str) -> None:
        """Release in-memory state held for a resident who left monitoring."""
        self.fall_detector.forget(resident_id)

    def expire_idle_state(self) -> int:
        """Drop fall state for residents with no recent accelerometer data."""
        expired = self.fall_detector.store.expire()
        if expired:
            self.logger.info("fall_state_expired", count=expired)
        return expired

    async def _process(self, sample: VitalSample) -> Result[IngestOutcome, VitalTrackError]:
        log = self.logger.bind(resident_id=sample.resident_id)

        try:
            resident = await self.residents.get(sample.resident_id)
        except Exception as e:
            log.error("resident_lookup_failed", error=str(e))
            return Result.err(PersistenceError(f"Resident lookup failed: {e}"))

        if resident is None or not resident.is_active:
            reason = "not_found" if resident is None else "inactive"
            log.warning("resident_unavailable", reason=reason)
            if resident is not None:
                self.deactivate_resident(resident.id)
            return Result.err(ResidentUnavailable(sample.resident_id, reason))

        outcome = IngestOutcome(resident_id=resident.id, facility_id=resident.facility_id)

        if self.vitals is not None and self.config.alerting.record_vitals:
            try:
                await self.vitals.record(sample)
            except Exception as e:
                log.error("vital_persist_failed", error=str(e))
                return Result.err(PersistenceError(f"Could not record vital: {e}"))
            outcome.vital_recorded = True

        published = self.broadcaster.publish_vital_update(
            resident.facility_id, resident.id, sample.to_payload()
        )
        if published.is_ok():
            outcome.vital_broadcast = True
        else:
            log.warning("vital_broadcast_failed", error=str(published.unwrap_err()))
            outcome.errors.append(published.unwrap_err())

        if resident.thresholds is None:
            log.warning("thresholds_missing")
        else:
            outcome.violations = evaluate(sample, resident.thresholds, resident.full_name)
            outcome.thresholds_evaluated = True
            for violation in outcome.violations:
                await self._raise_alert(_violation_candidate(resident, sample, violation), outcome)

        reading = sample.accelerometer
        if reading is not None:
            if not reading.is_complete:
                log.debug("fall_detection_skipped", reason="incomplete_accelerometer")
            else:
                try:
                    event = self.fall_detector.process(
                        resident.id, reading, self._fall_clock_ms(sample), sample.location
                    )
                except Exception as e:
                    log.exception("fall_detection_failed", error=str(e))
                    outcome.errors.append(VitalTrackError(f"Fall detection failed: {e}"))
                else:
                    outcome.fall_detection_ran = True
                    if event is not None:
                        outcome.fall_event = event
                        await self._raise_alert(_fall_candidate(resident, sample, event), outcome)

        log.debug(
            "sample_processed",
            violations=len(outcome.violations),
            alerts_created=len(outcome.alerts_created),
            alerts_suppressed=len(outcome.alerts_suppressed),
            fall_detected=outcome.fall_event is not None,
            degraded=outcome.degraded,
        )
        return Result.ok(outcome)

    async def _raise_alert(self, candidate: AlertCandidate, outcome: IngestOutcome) -> None:
        admitted = await self.deduplicator.admit(candidate)
        if admitted.is_err():
            # Broadcast and notification depend on the stored alert; skip both
            outcome.errors.append(admitted.unwrap_err())
            return

        admission = admitted.unwrap()
        if not admission.created:
            outcome.alerts_suppressed.append(admission.alert)
            return

        alert = admission.alert
        outcome.alerts_created.append(alert)

        published = self.broadcaster.publish_alert_created(alert.facility_id, alert.to_payload())
        if published.is_err():
            self.logger.warning(
                "alert_broadcast_failed", alert_id=alert.id, error=str(published.unwrap_err())
            )
            outcome.errors.append(published.unwrap_err())

        if alert.is_critical and self.config.alerting.notify_on_critical:
            try:
                notified = await self.notifier.notify_staff(alert)
            except Exception as e:
                notified = Result.err(DeliveryError(f"Notification failed: {e}"))

            if notified.is_ok():
                outcome.notifications_sent += 1
            else:
                self.logger.warning(
                    "staff_notification_failed",
                    alert_id=alert.id,
                    error=str(notified.unwrap_err()),
                )
                outcome.errors.append(notified.unwrap_err())

    def _fall_clock_ms(self, sample: VitalSample) -> int:
        if self.config.fall_detection.clock_source == "server":
            return int(self.clock().timestamp() * 1000)
        if sample.accelerometer is not None and sample.accelerometer.timestamp is not None:
            return sample.accelerometer.timestamp
        return int(sample.timestamp.timestamp() * 1000)


def _violation_candidate(
    resident: Resident, sample: VitalSample, violation: Violation
) -> AlertCandidate:
    return AlertCandidate(
        resident_id=resident.id,
        facility_id=resident.facility_id,
        category=violation.category,
        severity=violation.severity,
        message=violation.message,
        vital_data={
            to_camel(violation.category.value): violation.value,
            "threshold": violation.threshold,
            "timestamp": sample.timestamp.isoformat(),
        },
    )


def _fall_candidate(resident: Resident, sample: VitalSample, event: FallEvent) -> AlertCandidate:
    return AlertCandidate(
        resident_id=resident.id,
        facility_id=resident.facility_id,
        category=AlertCategory.FALL_DETECTED,
        severity=AlertSeverity.CRITICAL,
        message=(
            f"FALL DETECTED: {resident.full_name} - Possible fall with prolonged inactivity. "
            "Immediate assistance required!"
        ),
        vital_data={
            "impactMagnitude": round(event.impact_magnitude, 3),
            "impactTime": event.impact_time,
            "inactivityDuration": event.inactivity_duration_ms,
            "location": event.location,
            "timestamp": sample.timestamp.isoformat(),
        },
    )
