"""RabbitMQ consumer that decodes `task_created` events and hands them to a notification handler."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from aio_pika.abc import AbstractChannel, AbstractIncomingMessage, AbstractQueue

from taskflow.core.config import HandlerFailurePolicy
from taskflow.messaging.connection import BrokerConnection
from taskflow.messaging.errors import DecodeFailed
from taskflow.messaging.events import TaskCreatedEvent

logger = logging.getLogger(__name__)

NotificationHandler = Callable[[TaskCreatedEvent], Awaitable[None]]


class TaskEventConsumer:
    """
    Durable subscriber for the task queue.

    Each delivery goes through:

        Delivered -> Decoding -> Decoded -> Handling -> Acked
                              -> DecodeFailed -> Rejected (no requeue)

    Handler failures are settled according to `failure_policy`: acknowledged
    (ACK, the default) or rejected without requeue (REJECT) so that a
    dead-letter policy configured on the broker can pick them up.

    Args:
        connection: Process-owned broker connection.
        handler: Notification logic invoked once per decoded event.
        prefetch_count: Max unacknowledged deliveries in flight.
        failure_policy: What to do with a message whose handler raised.
    """

    def __init__(
        self,
        connection: BrokerConnection,
        handler: NotificationHandler,
        *,
        prefetch_count: int = 1,
        failure_policy: HandlerFailurePolicy = HandlerFailurePolicy.ACK,
    ) -> None:
        self._connection = connection
        self._handler = handler
        self._prefetch_count = prefetch_count
        self._failure_policy = failure_policy
        self._lock = asyncio.Lock()
        self._registered = False
        self._stopped = False
        self._queue: AbstractQueue | None = None
        self._consumer_tag: str | None = None

        self.acked = 0
        self.rejected = 0
        self.handler_failures = 0

    @property
    def consumer_tag(self) -> str | None:
        return self._consumer_tag

    async def start(self) -> None:
        """Subscribe now if a channel is open, and again after every reconnect."""
        if not self._registered:
            self._connection.add_connected_listener(self.subscribe)
            self._registered = True

        channel = self._connection.channel
        if channel is not None:
            await self.subscribe(channel)

    async def stop(self) -> None:
        """
        Cancel the subscription so no new deliveries arrive.

        A handler already running is left to finish; its message is settled as usual.
        """
        self._stopped = True
        queue, tag = self._queue, self._consumer_tag
        self._queue = self._consumer_tag = None
        if queue is None or tag is None or self._connection.channel is None:
            return
        try:
            await queue.cancel(tag)
        except Exception as exc:
            logger.warning("Failed to cancel consumer %s: %s", tag, exc)

    async def subscribe(self, channel: AbstractChannel) -> None:
        """Set QoS and attach the message callback with manual acknowledgement."""
        if self._stopped:
            return
        await channel.set_qos(prefetch_count=self._prefetch_count)
        queue = await channel.declare_queue(self._connection.queue_name, durable=True)
        self._consumer_tag = await queue.consume(self.on_message, no_ack=False)
        self._queue = queue
        logger.info(
            "Consuming from %r (prefetch=%d)", self._connection.queue_name, self._prefetch_count
        )

    async def on_message(self, message: AbstractIncomingMessage) -> None:
        """Decode, dispatch and settle a single delivery."""
        async with self._lock:
            try:
                event = TaskCreatedEvent.from_bytes(message.body)
            except DecodeFailed as exc:
                logger.error("Error parsing message: %s", exc.reason)
                logger.error("Raw message: %r", message.body)
                await message.nack(requeue=False)
                self.rejected += 1
                return

            logger.info(
                "New task notification received: task=%s user=%s title=%r timestamp=%s",
                event.task_id,
                event.user_id,
                event.title,
                event.timestamp.isoformat() if event.timestamp else "not provided",
            )

            try:
                await self._handler(event)
            except Exception:
                self.handler_failures += 1
                logger.exception("Error processing notification for task %s", event.task_id)
                if self._failure_policy is HandlerFailurePolicy.REJECT:
                    await message.nack(requeue=False)
                    self.rejected += 1
                    return

            await message.ack()
            self.acked += 1
