"""
RabbitMQ relay for published events.

Mirrors every event from the in-process broker onto a topic exchange so other
processes can follow feedback activity. The routing key is the event topic
(``feedback.<id>`` or ``user.<id>``). Failures are logged and reported as
False; they never reach the mutation that produced the event.
"""

import json
import time
from typing import Optional

import pika
from pika.exceptions import AMQPConnectionError, StreamLostError, ConnectionClosedByBroker

from ..core.config import settings
from ..core.logging_config import get_logger
from .event_broker import Event

logger = get_logger(__name__)


class RabbitMQEventRelay:
    """
    Publishes broker events to RabbitMQ.

    Attach with ``event_broker.add_relay(relay)``.
    """

    def __init__(
        self,
        host: str = None,
        port: int = None,
        user: str = None,
        password: str = None,
        vhost: str = None,
        exchange: str = None,
        reconnect_cooldown: float = None
    ):
        self.connection = None
        self.channel = None
        self._is_connected = False
        self._next_attempt_at = 0.0

        self.rabbitmq_host = host or settings.RABBITMQ_HOST
        self.rabbitmq_port = port or settings.RABBITMQ_PORT
        self.rabbitmq_user = user or settings.RABBITMQ_USER
        self.rabbitmq_password = password or settings.RABBITMQ_PASSWORD
        self.rabbitmq_vhost = vhost or settings.RABBITMQ_VHOST
        self.exchange = exchange or settings.RABBITMQ_EVENTS_EXCHANGE
        self.reconnect_cooldown = (
            settings.RABBITMQ_RECONNECT_COOLDOWN if reconnect_cooldown is None else reconnect_cooldown
        )

    def connect(self, max_retries: int = 3, retry_delay: int = 5):
        """
        Establish RabbitMQ connection with retry logic

        Args:
            max_retries: Maximum number of connection attempts (default: 3)
            retry_delay: Delay in seconds between retries (default: 5)
        """
        if self._is_connected and self.connection and self.connection.is_open:
            return

        retry_count = 0
        while retry_count < max_retries:
            try:
                credentials = pika.PlainCredentials(self.rabbitmq_user, self.rabbitmq_password)
                parameters = pika.ConnectionParameters(
                    host=self.rabbitmq_host,
                    port=self.rabbitmq_port,
                    virtual_host=self.rabbitmq_vhost,
                    credentials=credentials,
                    heartbeat=600,
                    blocked_connection_timeout=300
                )

                self.connection = pika.BlockingConnection(parameters)
                self.channel = self.connection.channel()
                self.channel.exchange_declare(
                    exchange=self.exchange,
                    exchange_type="topic",
                    durable=True
                )
                self._is_connected = True

                logger.info(
                    "Connected event relay to RabbitMQ",
                    host=self.rabbitmq_host,
                    port=self.rabbitmq_port,
                    vhost=self.rabbitmq_vhost,
                    exchange=self.exchange
                )
                return

            except AMQPConnectionError as e:
                retry_count += 1
                self._reset()

                if retry_count >= max_retries:
                    logger.error(
                        f"Failed to connect event relay to RabbitMQ after {max_retries} attempts",
                        host=self.rabbitmq_host,
                        error=str(e) or repr(e)
                    )
                    raise

                logger.warning(
                    f"Failed to connect event relay to RabbitMQ (attempt {retry_count}/{max_retries}). "
                    f"Retrying in {retry_delay} seconds...",
                    host=self.rabbitmq_host
                )
                time.sleep(retry_delay)

    def close(self):
        """Close RabbitMQ connection"""
        if self.connection and self.connection.is_open:
            self.connection.close()
            logger.info("Closed RabbitMQ event relay connection")
        self._reset()

    def publish(self, event: Event) -> bool:
        """
        Publish one event to the exchange.

        Publishing runs on the caller's thread, usually the event loop, so it
        never sleeps: one connect attempt per event, and none at all until the
        reconnect cooldown has passed after a failed attempt.

        Args:
            event: Event taken from the broker

        Returns:
            True if published successfully, False otherwise
        """
        body = json.dumps(event.to_message(), default=str)

        try:
            if not self._is_connected:
                if time.monotonic() < self._next_attempt_at:
                    logger.debug("Skipped relay while RabbitMQ is unreachable", topic=event.topic)
                    return False
                self._connect_once()
            self._basic_publish(event.topic, body)
            logger.debug("Relayed event", topic=event.topic, event_type=event.type.value)
            return True

        except (StreamLostError, ConnectionClosedByBroker) as e:
            logger.warning(
                f"RabbitMQ connection lost during relay: {e}. Attempting reconnection...",
                topic=event.topic
            )
            self._reset()
            try:
                self._connect_once()
                self._basic_publish(event.topic, body)
                return True
            except Exception as retry_error:
                logger.error(
                    f"Failed to relay event after reconnection: {retry_error}",
                    topic=event.topic
                )
                return False

        except Exception as e:
            logger.error(f"Failed to relay event: {e}", topic=event.topic, event_type=event.type.value)
            self._reset()
            return False

    def _connect_once(self):
        try:
            self.connect(max_retries=1)
        except AMQPConnectionError:
            self._next_attempt_at = time.monotonic() + self.reconnect_cooldown
            raise
        self._next_attempt_at = 0.0

    def _basic_publish(self, routing_key: str, body: str):
        self.channel.basic_publish(
            exchange=self.exchange,
            routing_key=routing_key,
            body=body,
            properties=pika.BasicProperties(
                content_type="application/json",
                delivery_mode=1  # Transient; subscribers never replay
            )
        )

    def _reset(self):
        self._is_connected = False
        self.connection = None
        self.channel = None


def build_event_relay() -> Optional[RabbitMQEventRelay]:
    """Relay configured from settings, or None when relaying is disabled."""
    if not settings.EVENT_RELAY_ENABLED:
        return None
    return RabbitMQEventRelay()
