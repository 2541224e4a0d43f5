"""RabbitMQ message consumer for custom trigger events."""

import json
from typing import Any, Callable, Coroutine

import aio_pika
from aio_pika.abc import AbstractRobustConnection

from ruleflow.core.config import get_settings
from ruleflow.core.exceptions import TriggerError
from ruleflow.core.logging import get_logger
from ruleflow.messaging.handler import parse_trigger
from ruleflow.models.trigger import Trigger

logger = get_logger(__name__)

# Type alias for trigger handler
MessageHandler = Callable[[Trigger], Coroutine[Any, Any, Any]]


class RabbitMQConsumer:
    """RabbitMQ message consumer for trigger processing."""

    def __init__(self, handler: MessageHandler):
        """Initialize consumer.

        Args:
            handler: Async function to handle incoming triggers
        """
        self._settings = get_settings()
        self._handler = handler
        self._connection: AbstractRobustConnection | None = None
        self._should_stop = False

    async def connect(self) -> None:
        """Connect to RabbitMQ."""
        self._connection = await aio_pika.connect_robust(
            self._settings.rabbitmq_url,
            reconnect_interval=5,
        )
        logger.info("Connected to RabbitMQ")

    async def disconnect(self) -> None:
        """Disconnect from RabbitMQ."""
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.info("Disconnected from RabbitMQ")

    async def start_consuming(self) -> None:
        """Start consuming messages from queue."""
        if not self._connection:
            await self.connect()

        channel = await self._connection.channel()
        await channel.set_qos(prefetch_count=10)

        queue = await channel.declare_queue(
            self._settings.rabbitmq_queue,
            durable=True,
        )

        logger.info("Starting message consumption", queue=self._settings.rabbitmq_queue)

        async with queue.iterator() as queue_iter:
            async for message in queue_iter:
                if self._should_stop:
                    break
                await self.process_body(message.body, message_id=message.message_id)
                await message.ack()

    async def process_body(self, body: bytes, message_id: str | None = None) -> bool:
        """Decode and handle one message body.

        Malformed messages are logged and dropped; they are never requeued.

        Returns:
            True if the trigger was handled
        """
        try:
            payload = json.loads(body.decode())
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error("Invalid JSON message", message_id=message_id, error=str(e))
            return False

        if not isinstance(payload, dict):
            logger.warning("Message is not a JSON object", message_id=message_id)
            return False

        payload.setdefault("source", "custom")
        try:
            trigger = parse_trigger(payload)
        except TriggerError as e:
            logger.warning("Rejected trigger message", message_id=message_id, error=e.message)
            return False

        try:
            await self._handler(trigger)
        except Exception as e:
            logger.error("Error processing trigger", message_id=message_id, error=str(e), exc_info=True)
            return False
        return True

    def stop(self) -> None:
        """Signal consumer to stop."""
        self._should_stop = True
        logger.info("Consumer stop requested")
