"""Suppresses repeat alerts of the same category for a resident within a cooldown window."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog

from vitaltrack.domain.errors import PersistenceError
from vitaltrack.domain.models import Alert, AlertCandidate
from vitaltrack.result import Result
from vitaltrack.services.repositories import AlertRepository

logger = structlog.get_logger(__name__)

DEFAULT_DEDUP_WINDOW = timedelta(minutes=5)


@dataclass(frozen=True)
class Admission:
    """Outcome of admitting a candidate: the alert of record and whether it is new."""

    alert: Alert
    created: bool


class AlertDeduplicator:
    """
    Turns alert candidates into persisted alerts, at most one per
    resident + category while an open alert from the last window exists.

    The check and the insert are a single repository call so two samples
    racing for the same resident cannot both create an alert.
    """

    def __init__(
        self,
        repository: AlertRepository,
        window: timedelta = DEFAULT_DEDUP_WINDOW,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.repository = repository
        self.window = window
        self.clock = clock
        self.logger = logger.bind(component="alert_deduplicator")

    async def admit(self, candidate: AlertCandidate) -> Result[Admission, PersistenceError]:
        now = self.clock()
        alert = Alert.from_candidate(candidate, created_at=now)

        try:
            stored, created = await self.repository.create_unless_recent(
                alert, since=now - self.window
            )
        except Exception as e:
            self.logger.error(
                "alert_persist_failed",
                resident_id=candidate.resident_id,
                category=candidate.category.value,
                error=str(e),
            )
            return Result.err(PersistenceError(f"Could not store alert: {e}"))

        if created:
            self.logger.warning(
                "alert_created",
                alert_id=stored.id,
                resident_id=stored.resident_id,
                facility_id=stored.facility_id,
                category=stored.category.value,
                severity=stored.severity.value,
            )
        else:
            self.logger.debug(
                "duplicate_alert_suppressed",
                existing_alert_id=stored.id,
                resident_id=candidate.resident_id,
                category=candidate.category.value,
            )

        return Result.ok(Admission(alert=stored, created=created))
