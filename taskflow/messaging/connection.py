"""
RabbitMQ connection ownership for one process.

`BrokerConnection` owns a single AMQP connection and one channel on it. It:
- retries the initial connect a fixed number of times with a fixed delay;
- declares the durable task queue on every (re)connect;
- watches the connection and the channel, and after an unexpected close
  schedules a fresh connect cycle on a supervising task;
- stops reacting to close events once `close()` has been requested.

State machine:

    DISCONNECTED -> CONNECTING -> CONNECTED -> CLOSED -> CONNECTING -> ...
                         |                                    |
                         +------------> FAILED <--------------+
    any state -- close() --> STOPPED

Readers must treat `channel is None` as "temporarily unavailable".
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import functools
import logging
from collections.abc import Awaitable, Callable

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractConnection

from taskflow.messaging.errors import ConnectExhausted, MessagingError

logger = logging.getLogger(__name__)

ConnectFactory = Callable[[str], Awaitable[AbstractConnection]]
ConnectedListener = Callable[[AbstractChannel], Awaitable[None]]
ExhaustedListener = Callable[[ConnectExhausted], Awaitable[None]]


class ConnectionState(str, enum.Enum):
    """Lifecycle states of a BrokerConnection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"
    FAILED = "failed"
    STOPPED = "stopped"


class ConnectAborted(MessagingError):
    """A connect cycle was abandoned because shutdown was requested."""


class BrokerConnection:
    """
    Owned connection + channel to RabbitMQ with retry and reconnect.

    Args:
        url: AMQP URL of the broker.
        queue_name: Durable queue declared on every connect.
        max_retries: Default number of connect attempts per cycle.
        retry_delay: Seconds between attempts, and before a reconnect cycle.
        connect: Factory opening a raw connection; `aio_pika.connect` by default.
    """

    def __init__(
        self,
        url: str,
        queue_name: str,
        *,
        max_retries: int = 10,
        retry_delay: float = 5.0,
        connect: ConnectFactory = aio_pika.connect,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._url = url
        self._queue_name = queue_name
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._connect = connect

        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._state = ConnectionState.DISCONNECTED
        self._generation = 0
        self._stop = asyncio.Event()
        self._reconnect_task: asyncio.Task[None] | None = None
        self._reconnect_requested = False
        self._stale: AbstractConnection | None = None

        self._connected_listeners: list[ConnectedListener] = []
        self._exhausted_listeners: list[ExhaustedListener] = []

    @property
    def queue_name(self) -> str:
        return self._queue_name

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def channel(self) -> AbstractChannel | None:
        """Current channel, or None while connecting, dropped or stopped."""
        return self._channel

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED and self._channel is not None

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def add_connected_listener(self, listener: ConnectedListener) -> None:
        """Call `listener(channel)` after every successful connect, reconnects included."""
        self._connected_listeners.append(listener)

    def add_exhausted_listener(self, listener: ExhaustedListener) -> None:
        """Call `listener(error)` when a scheduled reconnect cycle gives up."""
        self._exhausted_listeners.append(listener)

    async def connect(
        self, max_retries: int | None = None, retry_delay: float | None = None
    ) -> AbstractChannel:
        """
        Open a connection and a channel, and declare the durable queue.

        Args:
            max_retries: Attempts in this cycle (defaults to the instance setting).
            retry_delay: Fixed wait between attempts (defaults to the instance setting).

        Returns:
            The ready channel.

        Raises:
            ConnectExhausted: If every attempt failed.
            ConnectAborted: If `close()` was requested while connecting.
        """
        attempts = self._max_retries if max_retries is None else max_retries
        delay = self._retry_delay if retry_delay is None else retry_delay
        if attempts < 1:
            raise ValueError("max_retries must be at least 1")
        if self._stop.is_set():
            raise ConnectAborted("connection has been closed")

        self._state = ConnectionState.CONNECTING
        remaining = attempts
        while True:
            logger.info("Connecting to RabbitMQ (%d attempts left)", remaining)
            connection: AbstractConnection | None = None
            try:
                connection = await self._connect(self._url)
                channel = await connection.channel()
                await channel.declare_queue(self._queue_name, durable=True)
            except asyncio.CancelledError:
                if connection is not None:
                    await self._release(connection, "connection")
                raise
            except Exception as exc:
                remaining -= 1
                logger.warning("RabbitMQ connection failed: %s (%d retries left)", exc, remaining)
                if connection is not None:
                    await self._release(connection, "connection")
                if remaining <= 0:
                    self._state = ConnectionState.FAILED
                    logger.error("Failed to connect to RabbitMQ after %d attempts", attempts)
                    raise ConnectExhausted(attempts, exc) from exc
                if await self._wait_for_stop(delay):
                    raise ConnectAborted("shutdown requested while connecting") from exc
                continue

            if self._stop.is_set():
                await self._release(connection, "connection")
                raise ConnectAborted("shutdown requested while connecting")
            break

        self._attach(connection, channel)
        logger.info("Connected to RabbitMQ, queue %r declared", self._queue_name)

        for listener in self._connected_listeners:
            try:
                await listener(channel)
            except Exception:
                logger.exception("Connected listener %r failed", listener)
        return channel

    async def close(self) -> None:
        """
        Stop reconnecting and release the channel, then the connection.

        Each release is attempted even if the other one fails. Safe to call
        more than once.
        """
        self._stop.set()

        task = self._reconnect_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._reconnect_task = None

        channel, connection = self._channel, self._connection
        self._channel = None
        self._connection = None
        self._state = ConnectionState.STOPPED

        try:
            if channel is not None and not channel.is_closed:
                await self._release(channel, "channel")
        finally:
            if connection is not None and not connection.is_closed:
                await self._release(connection, "connection")
        logger.info("RabbitMQ connection closed")

    async def wait_reconnected(self) -> None:
        """Wait for a pending reconnect cycle, if any (mostly useful in tests)."""
        task = self._reconnect_task
        if task is not None:
            await asyncio.shield(task)

    def _attach(self, connection: AbstractConnection, channel: AbstractChannel) -> None:
        self._generation += 1
        generation = self._generation
        connection.close_callbacks.add(functools.partial(self._on_close, "connection", generation))
        channel.close_callbacks.add(functools.partial(self._on_close, "channel", generation))
        self._connection = connection
        self._channel = channel
        self._state = ConnectionState.CONNECTED

    def _on_close(
        self, kind: str, generation: int, sender: object, exc: BaseException | None = None
    ) -> None:
        if exc is not None and not isinstance(exc, asyncio.CancelledError):
            logger.error("RabbitMQ %s error: %s", kind, exc)

        if self._stop.is_set() or generation != self._generation:
            return

        logger.warning("RabbitMQ %s closed. Attempting to reconnect...", kind)
        self._stale = self._connection
        self._generation += 1
        self._connection = None
        self._channel = None
        self._state = ConnectionState.CLOSED
        self._reconnect_requested = True

        # A running cycle picks the request up once its current connect() returns.
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.get_running_loop().create_task(
                self._reconnect(), name="rabbitmq-reconnect"
            )

    async def _reconnect(self) -> None:
        while self._reconnect_requested and not self._stop.is_set():
            self._reconnect_requested = False
            stale, self._stale = self._stale, None
            # A channel can close on its own while the connection stays up.
            if stale is not None and not stale.is_closed:
                await self._release(stale, "connection")

            if await self._wait_for_stop(self._retry_delay):
                return
            try:
                await self.connect()
            except ConnectAborted:
                logger.info("Reconnect abandoned: shutdown requested")
                return
            except ConnectExhausted as exc:
                logger.error("Reconnect cycle exhausted: %s", exc)
                for listener in self._exhausted_listeners:
                    await listener(exc)
                return

    async def _wait_for_stop(self, delay: float) -> bool:
        """Sleep up to `delay` seconds; return True if close() was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    @staticmethod
    async def _release(resource: AbstractChannel | AbstractConnection, kind: str) -> None:
        try:
            await resource.close()
        except Exception:
            logger.exception("Failed to close RabbitMQ %s", kind)
