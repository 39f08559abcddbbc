"""
Event contracts exchanged between the task service and the notification worker.

The wire format is a UTF-8 JSON object with camelCase keys:

    {"taskId": "<id>", "userId": "<id>", "title": "<title>", "timestamp": "<iso-8601>"}

`timestamp` is stamped by the publisher at enqueue time. It is informational
only: a missing or unparseable value decodes to None instead of failing the event.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidatorFunctionWrapHandler,
    field_validator,
)

from taskflow.messaging.errors import DecodeFailed

logger = logging.getLogger(__name__)


class TaskCreatedEvent(BaseModel):
    """
    Event payload for a newly persisted task.

    Attributes:
        task_id: Identifier of the already-persisted task.
        user_id: Owner of the task.
        title: Task title.
        timestamp: Enqueue time, or None when absent or malformed.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, str_strip_whitespace=True)

    task_id: str = Field(alias="taskId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)
    title: str = Field(min_length=1)
    timestamp: datetime | None = None

    @field_validator("timestamp", mode="wrap")
    @classmethod
    def _lenient_timestamp(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> datetime | None:
        try:
            return handler(value)
        except ValidationError:
            logger.warning("Ignoring malformed event timestamp %r", value)
            return None

    @classmethod
    def for_task(cls, task_id: str, user_id: str, title: str) -> TaskCreatedEvent:
        """Build an event stamped with the current UTC time."""
        return cls(task_id=task_id, user_id=user_id, title=title, timestamp=datetime.now(tz=UTC))

    def to_bytes(self) -> bytes:
        """
        Serialize the event for message transport.

        Returns:
            UTF-8 encoded JSON bytes with camelCase keys.
        """
        return self.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")

    @classmethod
    def from_bytes(cls, body: bytes) -> TaskCreatedEvent:
        """
        Decode a message body.

        Args:
            body: Raw message body.

        Returns:
            Parsed event.

        Raises:
            DecodeFailed: If the body is not UTF-8 JSON matching the event shape.
        """
        try:
            return cls.model_validate_json(body)
        except ValidationError as exc:
            raise DecodeFailed(body, str(exc)) from exc
