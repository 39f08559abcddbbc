"""Schemas for task endpoints."""
from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class TaskCreate(BaseModel):
    """Input schema for creating a task."""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    user_id: str = Field(alias="userId", min_length=1, max_length=64)


class TaskRead(BaseModel):
    """Output schema for returning a task."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str
    title: str
    description: str
    user_id: str = Field(
        validation_alias=AliasChoices("user_id", "userId"), serialization_alias="userId"
    )
    created_at: datetime = Field(
        validation_alias=AliasChoices("created_at", "createdAt"), serialization_alias="createdAt"
    )


class TaskCreated(BaseModel):
    """Output schema for a create-task call.

    `warning` is set when the task was stored but its notification was not sent.
    """
    task: TaskRead
    message: str
    warning: str | None = None


class TasksList(BaseModel):
    """Output schema for listing tasks."""
    tasks: list[TaskRead]
    message: str = "Tasks fetched successfully"
    count: int
