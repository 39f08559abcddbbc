"""Notification worker: consumes `task_created` events until terminated."""

from __future__ import annotations

import asyncio
import logging
import sys

from taskflow.core.config import Settings, get_settings
from taskflow.core.logging import configure_logging
from taskflow.messaging.connection import BrokerConnection, ConnectAborted
from taskflow.messaging.consumer import NotificationHandler, TaskEventConsumer
from taskflow.messaging.errors import ConnectExhausted
from taskflow.notifications.handler import process_notification
from taskflow.shutdown import EXIT_FAILURE, ShutdownCoordinator

logger = logging.getLogger(__name__)


async def main(
    settings: Settings | None = None,
    connection: BrokerConnection | None = None,
    handler: NotificationHandler = process_notification,
) -> int:
    """Run the consumer and return the process exit code."""
    settings = settings or get_settings()
    connection = connection or BrokerConnection(
        settings.rabbitmq_url,
        settings.rabbitmq_queue,
        max_retries=settings.rabbitmq_connect_retries,
        retry_delay=settings.rabbitmq_retry_delay,
    )

    coordinator = ShutdownCoordinator(connection)
    coordinator.install()
    coordinator.watch_exhaustion(settings.consumer_exhaustion_policy)

    consumer = TaskEventConsumer(
        connection, handler, failure_policy=settings.handler_failure_policy
    )
    coordinator.add_hook(consumer.stop)
    await consumer.start()

    logger.info("Waiting %.0f seconds for RabbitMQ to be ready...", settings.rabbitmq_startup_delay)
    if await coordinator.sleep(settings.rabbitmq_startup_delay):
        return await coordinator.wait()

    try:
        await connection.connect()
    except ConnectExhausted as exc:
        await coordinator.on_connect_exhausted(exc, policy=settings.consumer_exhaustion_policy)
    except ConnectAborted:
        logger.info("Startup interrupted by shutdown")
    except Exception:
        logger.exception("Unexpected error while connecting to RabbitMQ")
        coordinator.request_exit(EXIT_FAILURE)
    else:
        logger.info("Notification service is listening for messages...")

    return await coordinator.wait()


def run() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Starting Notification Service...")
    sys.exit(asyncio.run(main(settings)))


if __name__ == "__main__":
    run()
