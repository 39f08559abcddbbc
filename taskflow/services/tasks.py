"""
Tasks application service.

Creates tasks and announces them on the `task_created` queue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from taskflow.messaging.events import TaskCreatedEvent
from taskflow.messaging.publisher import PublishOutcome, Publisher
from taskflow.repositories.tasks import TasksRepository
from taskflow.schemas.tasks import TaskCreate, TaskRead

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskCreation:
    """A stored task together with the outcome of its notification publish."""

    task: TaskRead
    notification: PublishOutcome


class TasksService:
    """
    Tasks application service.

    Orchestrates the repository and the `task_created` publisher, but does
    NOT perform direct database access or talk HTTP.

    The publish happens strictly after the task is committed, and a publish
    problem never undoes or fails the creation: there is no distributed
    transaction between the database and the broker.
    """

    def __init__(self, repo: TasksRepository, publisher: Publisher) -> None:
        """
        Initialize TasksService.

        Args:
            repo: TasksRepository instance.
            publisher: Messaging publisher used to emit task events.
        """
        self._repo = repo
        self._publisher = publisher

    async def create_task(self, payload: TaskCreate) -> TaskCreation:
        """
        Create a task and announce it.

        Business flow:
        1. Persist the task via repository.
        2. Publish the "task created" event.

        Args:
            payload: TaskCreate payload.

        Returns:
            The stored task and the publish outcome (SENT, SKIPPED or FAILED).
        """
        task = await self._repo.create(payload)
        event = TaskCreatedEvent.for_task(task_id=task.id, user_id=task.user_id, title=task.title)
        outcome = await self._publisher.publish_task_created(event)
        if not outcome.delivered:
            logger.warning(
                "Task %s created without notification (%s: %s)",
                task.id,
                outcome.status.value,
                outcome.reason,
            )
        return TaskCreation(task=task, notification=outcome)

    async def list_tasks(self, user_id: str | None = None) -> list[TaskRead]:
        """
        List tasks, optionally for one user.

        Returns:
            List of TaskRead DTOs (newest first).
        """
        return await self._repo.list_for_user(user_id=user_id)
