"""
Topic-based fanout of vital and alert events to connected clients.

Topics:
- ``facility:{id}``: every vital update and alert for a facility (staff dashboards)
- ``resident:{id}``: vital updates for one resident (detail screens)

Delivery is at-most-once and never blocks the publisher: each subscriber has
a bounded queue and events that do not fit are dropped for that subscriber.
Clients reconcile through the REST API after reconnecting.
"""

import asyncio
import itertools
from collections import defaultdict
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

import structlog
from pydantic import BaseModel, ConfigDict

from vitaltrack.domain.errors import DeliveryError
from vitaltrack.result import Result

logger = structlog.get_logger(__name__)


def facility_topic(facility_id: str) -> str:
    return f"facility:{facility_id}"


def resident_topic(resident_id: str) -> str:
    return f"resident:{resident_id}"


class EventType(str, Enum):
    VITAL_UPDATE = "vital_update"
    ALERT_CREATED = "alert_created"
    ALERT_UPDATED = "alert_updated"


class BroadcastEvent(BaseModel):
    """What a subscriber receives: the event name, its topic and the wire payload."""

    model_config = ConfigDict(frozen=True)

    event: EventType
    topic: str
    payload: dict[str, Any]


class Broadcaster(Protocol):
    """Publishing side of the fanout, as seen by the ingest pipeline."""

    def publish_vital_update(
        self, facility_id: str, resident_id: str, vital_payload: dict[str, Any]
    ) -> Result[int, DeliveryError]: ...

    def publish_alert_created(
        self, facility_id: str, alert_payload: dict[str, Any]
    ) -> Result[int, DeliveryError]: ...

    def publish_alert_updated(
        self, facility_id: str, alert_payload: dict[str, Any]
    ) -> Result[int, DeliveryError]: ...


_subscription_ids = itertools.count(1)


class Subscription:
    """A single client's attachment to one topic."""

    def __init__(self, topic: str, maxsize: int) -> None:
        self.id = next(_subscription_ids)
        self.topic = topic
        self.queue: asyncio.Queue[BroadcastEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self.active = True

    async def get(self) -> BroadcastEvent:
        return await self.queue.get()

    def get_nowait(self) -> BroadcastEvent:
        return self.queue.get_nowait()

    def drain(self) -> list[BroadcastEvent]:
        """Take everything currently queued without waiting."""
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events

    def __repr__(self) -> str:
        return f"Subscription(id={self.id}, topic={self.topic!r}, pending={self.queue.qsize()})"


class TopicBroadcaster:
    """In-process topic registry. One instance is shared by all residents."""

    def __init__(
        self,
        queue_size: int = 100,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.queue_size = queue_size
        self.clock = clock
        self._topics: defaultdict[str, set[Subscription]] = defaultdict(set)
        self.logger = logger.bind(component="broadcaster")

    def subscribe(self, topic: str) -> Subscription:
        subscription = Subscription(topic, self.queue_size)
        self._topics[topic].add(subscription)
        self.logger.debug("subscribed", topic=topic, subscription_id=subscription.id)
        return subscription

    def subscribe_facility(self, facility_id: str) -> Subscription:
        return self.subscribe(facility_topic(facility_id))

    def subscribe_resident(self, resident_id: str) -> Subscription:
        return self.subscribe(resident_topic(resident_id))

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.active = False
        subscribers = self._topics.get(subscription.topic)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._topics[subscription.topic]
        self.logger.debug(
            "unsubscribed", topic=subscription.topic, subscription_id=subscription.id
        )

    def subscriber_count(self, topic: str | None = None) -> int:
        if topic is not None:
            return len(self._topics.get(topic, ()))
        return sum(len(subscribers) for subscribers in self._topics.values())

    def publish_vital_update(
        self, facility_id: str, resident_id: str, vital_payload: dict[str, Any]
    ) -> Result[int, DeliveryError]:
        payload = {
            "residentId": resident_id,
            "data": vital_payload,
            "timestamp": self.clock().isoformat(),
        }
        return self._publish(
            EventType.VITAL_UPDATE,
            (facility_topic(facility_id), resident_topic(resident_id)),
            payload,
        )

    def publish_alert_created(
        self, facility_id: str, alert_payload: dict[str, Any]
    ) -> Result[int, DeliveryError]:
        payload = {"alert": alert_payload, "timestamp": self.clock().isoformat()}
        return self._publish(EventType.ALERT_CREATED, (facility_topic(facility_id),), payload)

    def publish_alert_updated(
        self, facility_id: str, alert_payload: dict[str, Any]
    ) -> Result[int, DeliveryError]:
        payload = {"alert": alert_payload, "timestamp": self.clock().isoformat()}
        return self._publish(EventType.ALERT_UPDATED, (facility_topic(facility_id),), payload)

    def _publish(
        self, event_type: EventType, topics: Iterable[str], payload: dict[str, Any]
    ) -> Result[int, DeliveryError]:
        delivered = 0
        try:
            for topic in topics:
                event = BroadcastEvent(event=event_type, topic=topic, payload=payload)
                # Snapshot: subscribers may come and go while we iterate
                for subscription in tuple(self._topics.get(topic, ())):
                    try:
                        subscription.queue.put_nowait(event)
                    except asyncio.QueueFull:
                        subscription.dropped += 1
                        self.logger.debug(
                            "event_dropped",
                            topic=topic,
                            event_type=event_type.value,
                            subscription_id=subscription.id,
                        )
                    else:
                        delivered += 1
        except Exception as e:
            self.logger.exception("broadcast_failed", event_type=event_type.value, error=str(e))
            return Result.err(DeliveryError(f"Failed to publish {event_type.value}: {e}"))

        self.logger.debug("event_published", event_type=event_type.value, delivered=delivered)
        return Result.ok(delivered)
