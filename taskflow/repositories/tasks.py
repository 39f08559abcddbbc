"""
Tasks repository.

The single place that knows how task records are stored (SQLAlchemy).
It is the persistence collaborator of the notification pipeline: `create`
must have committed before anything is published about the task.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.db.models import Task
from taskflow.schemas.tasks import TaskCreate, TaskRead


class TasksRepository:
    """
    Data access layer for Task entities.

    Args:
        session: SQLAlchemy async session.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, data: TaskCreate) -> TaskRead:
        """
        Persist a new task and commit.

        Args:
            data: TaskCreate payload.

        Returns:
            TaskRead DTO of the stored task (id and createdAt populated).
        """
        task = Task(title=data.title, description=data.description, user_id=data.user_id)
        self._session.add(task)
        await self._session.commit()
        await self._session.refresh(task)
        return TaskRead.model_validate(task, from_attributes=True)

    async def list_for_user(self, user_id: str | None = None) -> list[TaskRead]:
        """
        List tasks, newest first.

        Args:
            user_id: Restrict to one owner when given.
        """
        stmt = select(Task).order_by(Task.created_at.desc())
        if user_id:
            stmt = stmt.where(Task.user_id == user_id)
        res = await self._session.execute(stmt)
        return [TaskRead.model_validate(t, from_attributes=True) for t in res.scalars().all()]
