"""Notification logic run for every accepted `task_created` event."""

from __future__ import annotations

import logging

from taskflow.messaging.events import TaskCreatedEvent

logger = logging.getLogger(__name__)


async def process_notification(event: TaskCreatedEvent) -> None:
    """Log-only notification; email/push delivery plugs in here."""
    logger.info("Processing notification for task: %s", event.title)
    logger.info("Notification processed successfully for user %s", event.user_id)
