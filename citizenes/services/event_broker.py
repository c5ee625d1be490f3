"""
In-process publish/subscribe for feedback change events.

Subscribers register for one topic (a feedback id or a user id) and receive
events on their own asyncio queue. Delivery is at-most-once: nothing is
stored, a subscriber that joins late sees only later events, and a subscriber
whose queue is full misses the event. Publishing is safe from any thread;
each event is handed to the subscriber's own event loop.

Relays (for example ``RabbitMQEventRelay``) receive every published event so
other processes can be fed without changing any publisher.
"""
import asyncio
import threading
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Set

from pydantic import BaseModel

from ..core.config import settings
from ..core.database import utcnow
from ..core.logging_config import get_logger

logger = get_logger("event_broker")


class EventType(str, Enum):
    FEEDBACK_UPDATED = "feedback.updated"
    COMMENT_ADDED = "comment.added"
    COMMENT_UPDATED = "comment.updated"
    RESPONSE_ADDED = "response.added"
    RESPONSE_UPDATED = "response.updated"
    USER_FEEDBACK_UPDATED = "user.feedback.updated"


def feedback_topic(feedback_id: str) -> str:
    return f"feedback.{feedback_id}"


def user_topic(user_id: str) -> str:
    return f"user.{user_id}"


@dataclass(frozen=True)
class Event:
    """
    A published change.

    The payload is a viewer-neutral snapshot; ``to_message`` derives the
    viewer-relative fields for each recipient.
    """
    type: EventType
    topic: str
    payload: BaseModel
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=utcnow)

    def to_message(self, viewer_id: Optional[str] = None) -> Dict[str, Any]:
        payload = self.payload
        if hasattr(payload, "for_viewer"):
            payload = payload.for_viewer(viewer_id)
        return {
            "event": self.type.value,
            "event_id": self.id,
            "topic": self.topic,
            "occurred_at": self.occurred_at.isoformat(),
            "data": payload.model_dump(mode="json"),
        }


class Subscription:
    """One subscriber's queue for a single topic"""

    def __init__(
        self,
        broker: "EventBroker",
        topic: str,
        event_types: Optional[FrozenSet[EventType]],
        loop: asyncio.AbstractEventLoop,
        maxsize: int
    ):
        self.broker = broker
        self.topic = topic
        self.event_types = event_types
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self.closed = False

    def accepts(self, event: Event) -> bool:
        return not self.closed and (self.event_types is None or event.type in self.event_types)

    def deliver(self, event: Event) -> None:
        """Hand the event to the subscriber's loop; callable from any thread."""
        self.loop.call_soon_threadsafe(self._offer, event)

    def _offer(self, event: Event) -> None:
        if self.closed:
            return
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Subscriber queue full, event dropped",
                topic=self.topic,
                event_type=event.type.value,
                dropped=self.dropped
            )

    async def get(self) -> Event:
        return await self.queue.get()

    def close(self) -> None:
        self.broker.unsubscribe(self)


class EventBroker:
    """Topic-keyed fan-out to in-process subscribers and optional relays"""

    def __init__(self, queue_size: int = None):
        self.queue_size = queue_size or settings.SUBSCRIBER_QUEUE_SIZE
        self._subscriptions: Dict[str, Set[Subscription]] = defaultdict(set)
        self._relays: List[Any] = []
        self._lock = threading.Lock()

    def subscribe(self, topic: str, event_types=None) -> Subscription:
        """
        Register a subscriber on the running event loop.

        Args:
            topic: Topic to listen on, see feedback_topic/user_topic
            event_types: Optional event types to keep; all types when omitted

        Returns:
            Subscription whose queue receives matching events
        """
        loop = asyncio.get_running_loop()
        types = frozenset(event_types) if event_types else None
        subscription = Subscription(self, topic, types, loop, self.queue_size)
        with self._lock:
            self._subscriptions[topic].add(subscription)
        logger.debug("Subscriber added", topic=topic)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.closed = True
        with self._lock:
            subscribers = self._subscriptions.get(subscription.topic)
            if subscribers is not None:
                subscribers.discard(subscription)
                if not subscribers:
                    del self._subscriptions[subscription.topic]
        logger.debug("Subscriber removed", topic=subscription.topic)

    def publish(self, event: Event) -> int:
        """
        Publish an event to current subscribers of its topic and to relays.

        Returns:
            Number of subscribers the event was handed to
        """
        with self._lock:
            targets = [s for s in self._subscriptions.get(event.topic, ()) if s.accepts(event)]

        delivered = 0
        for subscription in targets:
            try:
                subscription.deliver(event)
                delivered += 1
            except RuntimeError:
                # The subscriber's loop has been closed
                self.unsubscribe(subscription)

        for relay in self._relays:
            try:
                relay.publish(event)
            except Exception as e:
                logger.error(f"Event relay failed: {e}", topic=event.topic, event_type=event.type.value)

        logger.debug(
            "Event published",
            topic=event.topic,
            event_type=event.type.value,
            subscribers=delivered
        )
        return delivered

    def add_relay(self, relay) -> None:
        self._relays.append(relay)

    def remove_relay(self, relay) -> None:
        if relay in self._relays:
            self._relays.remove(relay)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(topic, ()))


# Global broker instance
event_broker = EventBroker()


def get_event_broker() -> EventBroker:
    """Dependency to get the event broker"""
    return event_broker
