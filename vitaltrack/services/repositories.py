"""
Storage protocols the alerting engine depends on.

Structural protocols: the relational store and the in-memory adapters satisfy
them without a shared base class. Implementations signal storage failures by
raising; the engine converts them into ``PersistenceError`` results.
"""

from datetime import datetime
from typing import Protocol

from vitaltrack.domain.models import Alert, AlertStatus, Resident, VitalSample


class ResidentRepository(Protocol):
    """Read access to resident records and their threshold profiles."""

    async def get(self, resident_id: str) -> Resident | None:
        """Return the resident with its threshold profile, or None if unknown."""
        ...


class VitalRepository(Protocol):
    """Append-only store of ingested samples. Retention is the store's concern."""

    async def record(self, sample: VitalSample) -> None: ...


class AlertRepository(Protocol):
    """Alert persistence with an atomic duplicate-suppressing insert."""

    async def create_unless_recent(self, alert: Alert, since: datetime) -> tuple[Alert, bool]:
        """
        Insert ``alert`` unless an open alert already exists for the same
        resident and category created at or after ``since``.

        Must be atomic with respect to concurrent calls for the same
        resident and category.

        Returns:
            (alert, created): the stored new alert and True, or the existing
            alert and False.
        """
        ...

    async def get(self, alert_id: str) -> Alert | None: ...

    async def save(self, alert: Alert, expected_status: AlertStatus | None = None) -> Alert:
        """
        Replace the stored alert.

        With ``expected_status`` the write is conditional: it must be atomic
        with the status check and raise ``ConcurrentModification`` when the
        stored alert has moved on (another staff member got there first).
        """
        ...

    async def list_open(self, facility_id: str) -> list[Alert]:
        """Unresolved alerts for a facility, newest first (client reconciliation)."""
        ...
