"""
Services of the alerting engine.

This package contains threshold evaluation, fall detection, alert
deduplication and lifecycle, event fanout, and the ingest coordinator that
ties them together per sample.
"""

from .alert_deduplicator import Admission, AlertDeduplicator
from .alert_lifecycle import AlertLifecycleService
from .broadcaster import Broadcaster, BroadcastEvent, EventType, Subscription, TopicBroadcaster
from .fall_detector import FallDetector, FallStateStore
from .ingest_coordinator import IngestOutcome, VitalIngestCoordinator
from .notifications import LoggingNotificationService, NotificationService
from .threshold_evaluator import evaluate
from .vital_simulator import SyntheticVitalSource, run_simulation

__all__ = [
    "Admission",
    "AlertDeduplicator",
    "AlertLifecycleService",
    "Broadcaster",
    "BroadcastEvent",
    "EventType",
    "Subscription",
    "TopicBroadcaster",
    "FallDetector",
    "FallStateStore",
    "IngestOutcome",
    "VitalIngestCoordinator",
    "LoggingNotificationService",
    "NotificationService",
    "evaluate",
    "SyntheticVitalSource",
    "run_simulation",
]
