"""
Tests for the in-process event broker
"""

import asyncio
import threading
from unittest.mock import Mock

import pytest
from pydantic import BaseModel

from citizenes.services.event_broker import (
    Event,
    EventBroker,
    EventType,
    feedback_topic,
    user_topic,
)


class Payload(BaseModel):
    value: str


def event(topic, value="x", event_type=EventType.FEEDBACK_UPDATED):
    return Event(event_type, topic, Payload(value=value))


async def drain(subscription):
    """Let pending call_soon_threadsafe deliveries run, then empty the queue"""
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    events = []
    while not subscription.queue.empty():
        events.append(subscription.queue.get_nowait())
    return events


class TestTopics:

    def test_topic_names(self):
        assert feedback_topic("f1") == "feedback.f1"
        assert user_topic("u1") == "user.u1"


class TestEventBroker:

    @pytest.mark.asyncio
    async def test_delivers_only_to_matching_topic(self, broker):
        first = broker.subscribe(feedback_topic("f1"))
        second = broker.subscribe(feedback_topic("f2"))

        delivered = broker.publish(event(feedback_topic("f1"), "hello"))

        assert delivered == 1
        received = await drain(first)
        assert [e.payload.value for e in received] == ["hello"]
        assert await drain(second) == []

    @pytest.mark.asyncio
    async def test_event_type_filter(self, broker):
        comments = broker.subscribe(feedback_topic("f1"), [EventType.COMMENT_ADDED])

        broker.publish(event(feedback_topic("f1"), "update"))
        broker.publish(event(feedback_topic("f1"), "comment", EventType.COMMENT_ADDED))

        received = await drain(comments)
        assert [e.type for e in received] == [EventType.COMMENT_ADDED]

    @pytest.mark.asyncio
    async def test_late_subscriber_sees_no_earlier_events(self, broker):
        assert broker.publish(event(feedback_topic("f1"), "early")) == 0

        late = broker.subscribe(feedback_topic("f1"))
        broker.publish(event(feedback_topic("f1"), "later"))

        assert [e.payload.value for e in await drain(late)] == ["later"]

    @pytest.mark.asyncio
    async def test_order_is_preserved_per_subscriber(self, broker):
        subscription = broker.subscribe(user_topic("u1"))

        for i in range(5):
            broker.publish(event(user_topic("u1"), str(i)))

        assert [e.payload.value for e in await drain(subscription)] == ["0", "1", "2", "3", "4"]

    @pytest.mark.asyncio
    async def test_full_queue_drops_events(self):
        broker = EventBroker(queue_size=2)
        subscription = broker.subscribe(feedback_topic("f1"))

        for i in range(4):
            broker.publish(event(feedback_topic("f1"), str(i)))

        received = await drain(subscription)
        assert [e.payload.value for e in received] == ["0", "1"]
        assert subscription.dropped == 2

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self, broker):
        subscription = broker.subscribe(feedback_topic("f1"))
        assert broker.subscriber_count(feedback_topic("f1")) == 1

        subscription.close()

        assert subscription.closed is True
        assert broker.subscriber_count(feedback_topic("f1")) == 0
        assert broker.publish(event(feedback_topic("f1"))) == 0
        assert await drain(subscription) == []

    @pytest.mark.asyncio
    async def test_publish_from_another_thread(self, broker):
        subscription = broker.subscribe(feedback_topic("f1"))

        worker = threading.Thread(target=broker.publish, args=(event(feedback_topic("f1"), "threaded"),))
        worker.start()
        worker.join()

        received = await asyncio.wait_for(subscription.get(), timeout=1)
        assert received.payload.value == "threaded"

    @pytest.mark.asyncio
    async def test_relay_failure_does_not_break_publish(self, broker):
        failing = Mock()
        failing.publish.side_effect = RuntimeError("broker down")
        working = Mock()
        broker.add_relay(failing)
        broker.add_relay(working)
        subscription = broker.subscribe(feedback_topic("f1"))

        published = event(feedback_topic("f1"))
        assert broker.publish(published) == 1

        failing.publish.assert_called_once_with(published)
        working.publish.assert_called_once_with(published)
        assert len(await drain(subscription)) == 1

        broker.remove_relay(working)
        broker.publish(event(feedback_topic("f1")))
        assert working.publish.call_count == 1

    def test_subscribe_requires_running_loop(self, broker):
        with pytest.raises(RuntimeError):
            broker.subscribe(feedback_topic("f1"))


class TestEventMessage:

    def test_viewer_relative_fields_are_derived_per_recipient(self, feedback, citizen, neighbour):
        published = Event(EventType.FEEDBACK_UPDATED, feedback_topic(feedback.id), feedback.for_viewer(None))

        as_author = published.to_message(citizen.id)
        as_neighbour = published.to_message(neighbour.id)
        as_nobody = published.to_message()

        assert as_author["event"] == "feedback.updated"
        assert as_author["topic"] == f"feedback.{feedback.id}"
        assert as_author["event_id"] == published.id
        assert as_author["data"]["id"] == feedback.id
        assert as_author["data"]["is_following"] is True
        assert as_neighbour["data"]["is_following"] is False
        assert as_neighbour["data"]["has_liked"] is False
        assert as_nobody["data"]["is_following"] is None

    def test_plain_payload_is_dumped_as_is(self):
        message = event("feedback.f1", "plain").to_message("u1")

        assert message["data"] == {"value": "plain"}
        assert isinstance(message["occurred_at"], str)
