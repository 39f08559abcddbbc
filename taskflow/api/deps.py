"""
FastAPI dependency providers.

This module wires together infrastructure and application layers via FastAPI `Depends`.
It contains factories/providers for:
- Database session (SQLAlchemy AsyncSession)
- The process-wide broker connection and the messaging publisher
- Repositories and services

Guidelines:
- Dependency functions should be lightweight and composable.
- Keep HTTP concerns (status codes/messages) in routers, not here.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.db.session import get_session
from taskflow.messaging.connection import BrokerConnection
from taskflow.messaging.publisher import Publisher, RabbitPublisher
from taskflow.repositories.tasks import TasksRepository
from taskflow.repositories.users import UsersRepository
from taskflow.services.tasks import TasksService
from taskflow.services.users import UsersService


def get_broker(request: Request) -> BrokerConnection:
    """
    Provide the broker connection created by the application lifespan.

    Raises:
        HTTPException: 503 if the application was started without one.
    """
    broker: BrokerConnection | None = getattr(request.app.state, "broker", None)
    if broker is None:
        raise HTTPException(status_code=503, detail="Messaging not initialised")
    return broker


def get_publisher(broker: Annotated[BrokerConnection, Depends(get_broker)]) -> Publisher:
    """
    Provide a messaging publisher.

    Returns:
        Publisher bound to the lifespan-managed connection. The publisher reads
        the current channel on every call, so reconnects are picked up.
    """
    return RabbitPublisher(broker)


def get_tasks_repo(session: SessionDep) -> TasksRepository:
    return TasksRepository(session=session)


def get_users_repo(session: SessionDep) -> UsersRepository:
    return UsersRepository(session=session)


def get_tasks_service(
    repo: Annotated[TasksRepository, Depends(get_tasks_repo)],
    publisher: Annotated[Publisher, Depends(get_publisher)],
) -> TasksService:
    """
    Build TasksService.

    Args:
        repo: TasksRepository dependency.
        publisher: Publisher dependency.
    """
    return TasksService(repo=repo, publisher=publisher)


def get_users_service(
    users_repo: Annotated[UsersRepository, Depends(get_users_repo)],
) -> UsersService:
    return UsersService(users_repo=users_repo)


# ---- Public dependency aliases (use these in routers) ----

SessionDep = Annotated[AsyncSession, Depends(get_session)]
TasksServiceDep = Annotated[TasksService, Depends(get_tasks_service)]
UsersServiceDep = Annotated[UsersService, Depends(get_users_service)]
