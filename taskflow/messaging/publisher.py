"""
Messaging abstractions and implementations for task-related events.

This module defines:
- The publish outcome returned to callers.
- Publisher protocol (interface).
- RabbitMQ-based publisher implementation on top of a BrokerConnection.

Responsibilities:
- Enqueue a persistent `task_created` message after the task is stored.
- Never raise on broker trouble: report it as an outcome instead.

Non-responsibilities:
- Deciding when to publish (the tasks service does, after persisting).
- Local buffering / outbox: a skipped publish is not retried later.
- Publisher confirms: delivery is best effort once the frame is written.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Protocol

import aio_pika

from taskflow.messaging.connection import BrokerConnection
from taskflow.messaging.events import TaskCreatedEvent

logger = logging.getLogger(__name__)

BROKER_UNAVAILABLE = "broker unavailable"


class PublishStatus(str, enum.Enum):
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class PublishOutcome:
    """
    Result of a publish attempt.

    Attributes:
        status: SENT, SKIPPED (no channel) or FAILED (send raised).
        reason: Human-readable reason for SKIPPED / FAILED.
    """

    status: PublishStatus
    reason: str | None = None

    @classmethod
    def sent(cls) -> PublishOutcome:
        return cls(PublishStatus.SENT)

    @classmethod
    def skipped(cls, reason: str) -> PublishOutcome:
        return cls(PublishStatus.SKIPPED, reason)

    @classmethod
    def failed(cls, reason: str) -> PublishOutcome:
        return cls(PublishStatus.FAILED, reason)

    @property
    def delivered(self) -> bool:
        return self.status is PublishStatus.SENT


class Publisher(Protocol):
    """
    Messaging publisher protocol.

    Services depend on this protocol rather than on RabbitMQ, which keeps
    them testable with an in-memory publisher.
    """

    async def publish_task_created(self, event: TaskCreatedEvent) -> PublishOutcome:
        """
        Publish a `task_created` event.

        Args:
            event: Event for an already-persisted task.
        """
        ...


class RabbitPublisher:
    """
    RabbitMQ-based implementation of the Publisher protocol.

    Notes:
        - Reuses the channel owned by the process-wide BrokerConnection.
        - Publishes through the default exchange, routed by queue name.
    """

    def __init__(self, connection: BrokerConnection, queue_name: str | None = None) -> None:
        """
        Initialize RabbitMQ publisher.

        Args:
            connection: Process-owned broker connection.
            queue_name: Target queue; defaults to the connection's declared queue.
        """
        self._connection = connection
        self._queue_name = queue_name or connection.queue_name

    async def publish_task_created(self, event: TaskCreatedEvent) -> PublishOutcome:
        """
        Publish a `task_created` event to RabbitMQ.

        Args:
            event: Event for an already-persisted task.

        Returns:
            SENT on success, SKIPPED if no channel is open, FAILED if the send raised.
        """
        channel = self._connection.channel
        if channel is None:
            logger.warning(
                "RabbitMQ channel not available. Task %s created but notification not sent.",
                event.task_id,
            )
            return PublishOutcome.skipped(BROKER_UNAVAILABLE)

        message = aio_pika.Message(
            body=event.to_bytes(),
            content_type="application/json",
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
        )
        try:
            await channel.default_exchange.publish(message, routing_key=self._queue_name)
        except Exception as exc:
            logger.error("Failed to send task %s notification to queue: %s", event.task_id, exc)
            return PublishOutcome.failed(str(exc) or type(exc).__name__)

        logger.info("Task %s notification sent to queue %r", event.task_id, self._queue_name)
        return PublishOutcome.sent()
