"""Typed errors raised or returned by the alerting engine."""


class VitalTrackError(Exception):
    """Base class for all alerting engine errors."""


class InvalidStateTransition(VitalTrackError):
    """An alert lifecycle action is not allowed from the alert's current status."""

    def __init__(self, alert_id: str, current_status: str, action: str) -> None:
        self.alert_id = alert_id
        self.current_status = current_status
        self.action = action
        super().__init__(f"Cannot {action} alert {alert_id} while it is {current_status}")


class AlertNotFound(VitalTrackError):
    """No alert with the given id exists for the facility."""

    def __init__(self, alert_id: str) -> None:
        self.alert_id = alert_id
        super().__init__(f"Alert {alert_id} not found")


class ResidentUnavailable(VitalTrackError):
    """The resident is unknown or no longer active."""

    def __init__(self, resident_id: str, reason: str = "not_found") -> None:
        self.resident_id = resident_id
        self.reason = reason
        super().__init__(f"Resident {resident_id} unavailable: {reason}")


class PersistenceError(VitalTrackError):
    """A write or read against an external store failed."""


class DeliveryError(VitalTrackError):
    """A broadcast or notification could not be handed off."""


class ConcurrentModification(VitalTrackError):
    """A conditional save found the alert in a different status than expected."""

    def __init__(self, alert_id: str, expected_status: str, current_status: str) -> None:
        self.alert_id = alert_id
        self.expected_status = expected_status
        self.current_status = current_status
        super().__init__(
            f"Alert {alert_id} is {current_status}, expected {expected_status}"
        )
