"""
Process termination handling.

`ShutdownCoordinator` decides how a process ends:
- SIGTERM / SIGINT: release broker resources, exit code 0.
- Connect retry budget exhausted: exit code 1 or keep running degraded,
  depending on the configured `ExhaustionPolicy`.
- Any unhandled error surfacing on the event loop: fatal, exit code 1.

The coordinator never calls `sys.exit` itself; the entrypoint awaits
`wait()` and exits with the returned code.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import signal
from collections.abc import Awaitable, Callable
from typing import Any

from taskflow.core.config import ExhaustionPolicy
from taskflow.messaging.connection import BrokerConnection
from taskflow.messaging.errors import ConnectExhausted

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


class ShutdownCoordinator:
    """
    Owns the shutdown sequence of one process.

    Args:
        connection: Broker connection released on shutdown.
        on_exit: Optional callback invoked with the exit code once resources
            are released (e.g. to stop an HTTP server).
    """

    def __init__(
        self,
        connection: BrokerConnection,
        on_exit: Callable[[int], None] | None = None,
    ) -> None:
        self._connection = connection
        self._on_exit = on_exit
        self._hooks: list[Callable[[], Awaitable[None]]] = []
        self._exit_code: int | None = None
        self._closing: asyncio.Task[None] | None = None
        self._done = asyncio.Event()

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    @property
    def shutting_down(self) -> bool:
        return self._closing is not None

    def add_hook(self, hook: Callable[[], Awaitable[None]]) -> None:
        """Await `hook()` before the connection is closed."""
        self._hooks.append(hook)

    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Register signal handlers and the fatal exception handler on the loop."""
        loop = loop or asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self.handle_signal, sig)
            except NotImplementedError:
                # Windows event loops have no add_signal_handler.
                pass
        loop.set_exception_handler(self.handle_loop_exception)

    def watch_exhaustion(self, policy: ExhaustionPolicy) -> None:
        """Apply `policy` when a reconnect cycle runs out of attempts."""
        self._connection.add_exhausted_listener(
            functools.partial(self.on_connect_exhausted, policy=policy)
        )

    def handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down gracefully", sig.name)
        self.request_exit(EXIT_OK)

    def handle_loop_exception(
        self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
    ) -> None:
        exc = context.get("exception")
        logger.critical(
            "Unhandled asynchronous error: %s",
            context.get("message", "no message"),
            exc_info=exc if isinstance(exc, BaseException) else None,
        )
        self.request_exit(EXIT_FAILURE)

    async def on_connect_exhausted(
        self, exc: ConnectExhausted, *, policy: ExhaustionPolicy
    ) -> None:
        """
        React to an exhausted connect cycle.

        Args:
            exc: The exhaustion error.
            policy: EXIT terminates with a failure code; DEGRADE keeps the
                process running without messaging.
        """
        if policy is ExhaustionPolicy.EXIT:
            logger.critical("Could not establish RabbitMQ connection (%s). Exiting...", exc)
            self.request_exit(EXIT_FAILURE)
        else:
            logger.error("RabbitMQ unavailable (%s). Continuing without messaging.", exc)

    def request_exit(self, code: int) -> None:
        """Start the shutdown sequence; the first requested code wins."""
        if self._closing is not None:
            return
        self._exit_code = code
        self._closing = asyncio.get_running_loop().create_task(
            self._shutdown(), name="shutdown"
        )

    async def shutdown(self, code: int = EXIT_OK) -> int:
        """Request exit with `code` and wait until resources are released."""
        self.request_exit(code)
        return await self.wait()

    async def wait(self) -> int:
        """Block until the shutdown sequence completed; return the exit code."""
        await self._done.wait()
        assert self._exit_code is not None
        return self._exit_code

    async def sleep(self, delay: float) -> bool:
        """Sleep up to `delay` seconds; return True if shutdown completed meanwhile."""
        try:
            await asyncio.wait_for(self._done.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _shutdown(self) -> None:
        try:
            for hook in self._hooks:
                try:
                    await hook()
                except Exception:
                    logger.exception("Shutdown hook %r failed", hook)
            await self._connection.close()
        except Exception:
            logger.exception("Error while releasing broker resources")
            self._exit_code = EXIT_FAILURE
        finally:
            self._done.set()
            if self._on_exit is not None:
                assert self._exit_code is not None
                self._on_exit(self._exit_code)
