"""Staff-driven alert transitions: acknowledge, resolve, escalate."""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from vitaltrack.domain.errors import AlertNotFound, ConcurrentModification, InvalidStateTransition
from vitaltrack.domain.models import Alert, AlertStatus
from vitaltrack.services.broadcaster import Broadcaster
from vitaltrack.services.repositories import AlertRepository

logger = structlog.get_logger(__name__)


class AlertLifecycleService:
    """
    Applies lifecycle transitions and tells connected clients about them.

    Transition rules live on ``Alert`` itself; an illegal action raises
    ``InvalidStateTransition`` and nothing is saved or broadcast. Saves are
    conditional on the status that was read, so the loser of two concurrent
    transitions gets the same error.
    """

    def __init__(
        self,
        repository: AlertRepository,
        broadcaster: Broadcaster,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.repository = repository
        self.broadcaster = broadcaster
        self.clock = clock
        self.logger = logger.bind(component="alert_lifecycle")

    async def get_alert(self, alert_id: str, facility_id: str) -> Alert:
        alert = await self.repository.get(alert_id)
        if alert is None or alert.facility_id != facility_id:
            raise AlertNotFound(alert_id)
        return alert

    async def acknowledge(self, alert_id: str, user_id: str, facility_id: str) -> Alert:
        alert = await self.get_alert(alert_id, facility_id)
        previous = alert.status
        alert.acknowledge(user_id, self.clock())
        alert = await self._commit(alert, previous, "acknowledge")

        response_time = alert.response_time
        self.logger.info(
            "alert_acknowledged",
            alert_id=alert.id,
            user_id=user_id,
            response_time_seconds=response_time.total_seconds() if response_time else None,
        )
        return alert

    async def resolve(
        self, alert_id: str, user_id: str, facility_id: str, notes: str | None = None
    ) -> Alert:
        alert = await self.get_alert(alert_id, facility_id)
        previous = alert.status
        alert.resolve(user_id, self.clock(), notes)
        alert = await self._commit(alert, previous, "resolve")

        resolution_time = alert.resolution_time
        self.logger.info(
            "alert_resolved",
            alert_id=alert.id,
            user_id=user_id,
            resolution_time_seconds=resolution_time.total_seconds() if resolution_time else None,
        )
        return alert

    async def escalate(self, alert_id: str, facility_id: str) -> Alert:
        alert = await self.get_alert(alert_id, facility_id)
        previous = alert.status
        alert.escalate(self.clock())
        alert = await self._commit(alert, previous, "escalate")

        self.logger.warning(
            "alert_escalated",
            alert_id=alert.id,
            resident_id=alert.resident_id,
            category=alert.category.value,
        )
        return alert

    async def _commit(self, alert: Alert, previous: AlertStatus, action: str) -> Alert:
        try:
            saved = await self.repository.save(alert, expected_status=previous)
        except ConcurrentModification as e:
            self.logger.warning(
                "alert_transition_conflict",
                alert_id=alert.id,
                action=action,
                expected_status=e.expected_status,
                current_status=e.current_status,
            )
            raise InvalidStateTransition(alert.id, e.current_status, action) from e

        published = self.broadcaster.publish_alert_updated(saved.facility_id, saved.to_payload())
        if published.is_err():
            self.logger.warning(
                "alert_update_broadcast_failed",
                alert_id=saved.id,
                error=str(published.unwrap_err()),
            )
        return saved
