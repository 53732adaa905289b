"""Wiring of a complete alerting engine on top of the in-memory adapters."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from adapters.memory.repositories import (
    InMemoryAlertRepository,
    InMemoryResidentRepository,
    InMemoryVitalRepository,
)
from vitaltrack.config import AppConfig, get_config
from vitaltrack.services.alert_lifecycle import AlertLifecycleService
from vitaltrack.services.broadcaster import TopicBroadcaster
from vitaltrack.services.ingest_coordinator import VitalIngestCoordinator
from vitaltrack.services.notifications import LoggingNotificationService, NotificationService


@dataclass
class InMemoryEngine:
    config: AppConfig
    residents: InMemoryResidentRepository
    vitals: InMemoryVitalRepository
    alerts: InMemoryAlertRepository
    broadcaster: TopicBroadcaster
    notifier: NotificationService
    coordinator: VitalIngestCoordinator
    lifecycle: AlertLifecycleService


def build_in_memory_engine(
    config: AppConfig | None = None,
    notifier: NotificationService | None = None,
    clock: Callable[[], datetime] = lambda: datetime.now(UTC),
) -> InMemoryEngine:
    """Assemble every component with shared repositories, broadcaster and clock."""
    config = config or get_config()
    residents = InMemoryResidentRepository(config.thresholds)
    vitals = InMemoryVitalRepository()
    alerts = InMemoryAlertRepository()
    broadcaster = TopicBroadcaster(queue_size=config.alerting.subscriber_queue_size, clock=clock)
    notifier = notifier or LoggingNotificationService()

    coordinator = VitalIngestCoordinator(
        residents,
        alerts,
        broadcaster,
        notifier,
        vitals=vitals,
        config=config,
        clock=clock,
    )
    lifecycle = AlertLifecycleService(alerts, broadcaster, clock=clock)

    return InMemoryEngine(
        config=config,
        residents=residents,
        vitals=vitals,
        alerts=alerts,
        broadcaster=broadcaster,
        notifier=notifier,
        coordinator=coordinator,
        lifecycle=lifecycle,
    )
