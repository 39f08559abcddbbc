"""FastAPI application entrypoint (task + user API, producer side of the pipeline)."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request
from sqlalchemy import text

from taskflow.api.deps import SessionDep
from taskflow.api.routes.tasks import router as tasks_router
from taskflow.api.routes.users import router as users_router
from taskflow.core.config import get_settings
from taskflow.core.logging import configure_logging
from taskflow.db.session import engine
from taskflow.messaging.connection import BrokerConnection, ConnectAborted
from taskflow.messaging.errors import ConnectExhausted
from taskflow.shutdown import EXIT_OK, ShutdownCoordinator

settings = get_settings()
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


def _stop_server(code: int) -> None:
    # Let uvicorn run its own graceful shutdown when messaging is configured as fatal.
    if code != EXIT_OK:
        signal.raise_signal(signal.SIGTERM)


async def connect_broker(connection: BrokerConnection, coordinator: ShutdownCoordinator) -> None:
    """Connect after the startup delay; apply the producer exhaustion policy on failure."""
    if await coordinator.sleep(settings.rabbitmq_startup_delay):
        return
    try:
        await connection.connect()
    except ConnectExhausted as exc:
        await coordinator.on_connect_exhausted(exc, policy=settings.producer_exhaustion_policy)
    except ConnectAborted:
        logger.info("Broker connect abandoned: application is shutting down")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    connection = BrokerConnection(
        settings.rabbitmq_url,
        settings.rabbitmq_queue,
        max_retries=settings.rabbitmq_connect_retries,
        retry_delay=settings.rabbitmq_retry_delay,
    )
    coordinator = ShutdownCoordinator(connection, on_exit=_stop_server)
    coordinator.watch_exhaustion(settings.producer_exhaustion_policy)
    app.state.broker = connection

    # Serve HTTP right away; messaging comes up in the background.
    starter = asyncio.create_task(connect_broker(connection, coordinator), name="broker-connect")
    yield
    starter.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await starter
    await coordinator.shutdown()
    await engine.dispose()


app = FastAPI(title=settings.app_name, version="1.0.0", lifespan=lifespan)

app.include_router(tasks_router)
app.include_router(users_router)


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "Task Service API", "version": app.version}


@app.get("/health")
async def health(request: Request, session: SessionDep) -> dict[str, Any]:
    """Report database and broker reachability; always 200 while the process runs."""
    try:
        await session.execute(text("SELECT 1"))
        database = "connected"
    except Exception as e:
        logger.warning("Database health check failed: %s", type(e).__name__)
        database = "disconnected"

    broker: BrokerConnection | None = getattr(request.app.state, "broker", None)
    return {
        "service": settings.app_name,
        "status": "running",
        "database": database,
        "rabbitmq": "connected" if broker is not None and broker.is_connected else "disconnected",
        "timestamp": datetime.now(tz=UTC).isoformat(),
    }
