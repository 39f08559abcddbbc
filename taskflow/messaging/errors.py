"""Error types raised by the messaging layer."""

from __future__ import annotations


class MessagingError(Exception):
    """Base class for broker-related failures."""


class ConnectExhausted(MessagingError):
    """Every connect attempt in a retry budget failed."""

    def __init__(self, attempts: int, last_error: BaseException | None = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error!r}" if last_error is not None else ""
        super().__init__(f"Broker not reachable after {attempts} attempts{detail}")


class DecodeFailed(MessagingError):
    """A message body is not a valid task-created event."""

    def __init__(self, raw: bytes, reason: str) -> None:
        self.raw = raw
        self.reason = reason
        super().__init__(reason)
