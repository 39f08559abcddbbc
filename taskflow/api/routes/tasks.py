"""Task endpoints: create (persist + notify) and list."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError

from taskflow.api.deps import TasksServiceDep
from taskflow.schemas.tasks import TaskCreate, TaskCreated, TasksList

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tasks"])

NOTIFICATION_NOT_SENT = "Notification not sent"


@router.post("/tasks", response_model=TaskCreated, response_model_exclude_none=True, status_code=201)
async def create_task_endpoint(payload: TaskCreate, service: TasksServiceDep) -> TaskCreated:
    """Store a task and publish its `task_created` event.

    Messaging trouble never fails the request; it only adds a `warning`.
    """
    try:
        result = await service.create_task(payload)
    except SQLAlchemyError as err:
        logger.exception("Error creating task")
        raise HTTPException(status_code=500, detail="Internal Server Error") from err

    if not result.notification.delivered:
        return TaskCreated(
            task=result.task,
            message="Task created successfully (notification service unavailable)",
            warning=NOTIFICATION_NOT_SENT,
        )
    return TaskCreated(task=result.task, message="Task created successfully")


@router.get("/tasks", response_model=TasksList)
async def list_tasks_endpoint(
    service: TasksServiceDep,
    user_id: str | None = Query(default=None, alias="userId"),
) -> TasksList:
    """List tasks newest first, optionally for a single user."""
    try:
        tasks = await service.list_tasks(user_id=user_id)
    except SQLAlchemyError as err:
        logger.exception("Error fetching tasks")
        raise HTTPException(status_code=500, detail="Internal Server Error") from err
    return TasksList(tasks=tasks, count=len(tasks))
