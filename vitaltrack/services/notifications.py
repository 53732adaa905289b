"""Staff notification hand-off for critical alerts."""

from typing import Protocol

import structlog

from vitaltrack.domain.errors import DeliveryError
from vitaltrack.domain.models import Alert
from vitaltrack.result import Result

logger = structlog.get_logger(__name__)


class NotificationService(Protocol):
    """
    Forwards an alert to facility staff over push, SMS or email.

    Delivery is the implementation's business; the engine only needs to know
    whether the hand-off was accepted.
    """

    async def notify_staff(self, alert: Alert) -> Result[bool, DeliveryError]: ...


class LoggingNotificationService:
    """
    Development notifier that records the request in the log.

    In production: This would fan out to the push, SMS and email providers
    configured for the facility.
    """

    def __init__(self) -> None:
        self.logger = logger.bind(component="notification_service")

    async def notify_staff(self, alert: Alert) -> Result[bool, DeliveryError]:
        self.logger.warning(
            "staff_notification_requested",
            alert_id=alert.id,
            facility_id=alert.facility_id,
            resident_id=alert.resident_id,
            category=alert.category.value,
            severity=alert.severity.value,
            message=alert.message,
        )
        return Result.ok(True)
