"""Tests for process shutdown: signals, exhaustion policies and fatal loop errors."""

from __future__ import annotations

import asyncio
import signal

import pytest

from taskflow.core.config import ExhaustionPolicy, HandlerFailurePolicy, Settings
from taskflow.messaging.connection import BrokerConnection, ConnectionState
from taskflow.messaging.errors import ConnectExhausted
from taskflow.notifications import worker
from taskflow.shutdown import EXIT_FAILURE, EXIT_OK, ShutdownCoordinator
from tests.conftest import QUEUE
from tests.fakes import FakeBroker, StoredMessage


def worker_settings(**overrides: object) -> Settings:
    values: dict[str, object] = {
        "rabbitmq_queue": QUEUE,
        "rabbitmq_connect_retries": 2,
        "rabbitmq_retry_delay": 0.0,
        "rabbitmq_startup_delay": 0.0,
        "consumer_exhaustion_policy": ExhaustionPolicy.EXIT,
        "handler_failure_policy": HandlerFailurePolicy.ACK,
    }
    values.update(overrides)
    return Settings(**values)  # type: ignore[arg-type]


async def test_signal_closes_channel_and_connection(
    connection: BrokerConnection, broker: FakeBroker
) -> None:
    channel = await connection.connect()
    coordinator = ShutdownCoordinator(connection)

    coordinator.handle_signal(signal.SIGTERM)
    code = await coordinator.wait()

    assert code == EXIT_OK
    assert channel.is_closed
    assert broker.connections[0].is_closed
    assert connection.state is ConnectionState.STOPPED
    await asyncio.sleep(0.03)
    assert len(broker.attempts) == 1


async def test_first_exit_code_wins(connection: BrokerConnection) -> None:
    coordinator = ShutdownCoordinator(connection)

    coordinator.request_exit(EXIT_FAILURE)
    coordinator.request_exit(EXIT_OK)

    assert await coordinator.wait() == EXIT_FAILURE


async def test_hooks_run_before_close(connection: BrokerConnection) -> None:
    await connection.connect()
    seen: list[bool] = []

    async def hook() -> None:
        seen.append(connection.channel is not None)

    async def broken_hook() -> None:
        raise RuntimeError("boom")

    coordinator = ShutdownCoordinator(connection)
    coordinator.add_hook(broken_hook)
    coordinator.add_hook(hook)

    assert await coordinator.shutdown() == EXIT_OK
    assert seen == [True]


async def test_exhaustion_exit_policy(connection: BrokerConnection) -> None:
    exits: list[int] = []
    coordinator = ShutdownCoordinator(connection, on_exit=exits.append)

    await coordinator.on_connect_exhausted(ConnectExhausted(3), policy=ExhaustionPolicy.EXIT)

    assert await coordinator.wait() == EXIT_FAILURE
    assert exits == [EXIT_FAILURE]


async def test_exhaustion_degrade_policy_keeps_running(connection: BrokerConnection) -> None:
    coordinator = ShutdownCoordinator(connection)

    await coordinator.on_connect_exhausted(ConnectExhausted(3), policy=ExhaustionPolicy.DEGRADE)

    assert not coordinator.shutting_down
    assert await coordinator.sleep(0.01) is False


async def test_reconnect_exhaustion_is_routed_to_policy(broker: FakeBroker) -> None:
    conn = BrokerConnection("amqp://test", QUEUE, max_retries=1, retry_delay=0.0, connect=broker.connect)
    coordinator = ShutdownCoordinator(conn)
    coordinator.watch_exhaustion(ExhaustionPolicy.EXIT)
    await conn.connect()

    broker.up = False
    await broker.drop()

    assert await asyncio.wait_for(coordinator.wait(), timeout=1.0) == EXIT_FAILURE


async def test_unhandled_loop_error_is_fatal(connection: BrokerConnection) -> None:
    coordinator = ShutdownCoordinator(connection)
    loop = asyncio.get_running_loop()

    coordinator.handle_loop_exception(
        loop, {"message": "Task exception was never retrieved", "exception": ValueError("bug")}
    )

    assert await coordinator.wait() == EXIT_FAILURE


async def test_worker_exits_with_failure_when_broker_unreachable(broker: FakeBroker) -> None:
    broker.up = False
    settings = worker_settings()
    conn = BrokerConnection(
        settings.rabbitmq_url, QUEUE, max_retries=2, retry_delay=0.0, connect=broker.connect
    )

    code = await asyncio.wait_for(worker.main(settings, connection=conn), timeout=2.0)

    assert code == EXIT_FAILURE
    assert len(broker.attempts) == 2


async def test_worker_consumes_until_sigterm(broker: FakeBroker) -> None:
    settings = worker_settings()
    conn = BrokerConnection(settings.rabbitmq_url, QUEUE, retry_delay=0.0, connect=broker.connect)
    handled: list[str] = []

    async def handler(event) -> None:  # type: ignore[no-untyped-def]
        handled.append(event.task_id)

    run = asyncio.create_task(worker.main(settings, connection=conn, handler=handler))
    while not broker.consumers:
        await asyncio.sleep(0.005)

    broker.queue(QUEUE).append(
        StoredMessage(b'{"taskId": "t-9", "userId": "U1", "title": "T"}', None, None)
    )
    message = await broker.deliver(QUEUE)
    signal.raise_signal(signal.SIGTERM)
    code = await asyncio.wait_for(run, timeout=2.0)

    assert code == EXIT_OK
    assert handled == ["t-9"]
    assert message is not None and message.acked
    assert broker.consumers == {}
    assert all(c.is_closed for c in broker.connections)



async def test_worker_releases_connection_on_unexpected_connect_error(
    broker: FakeBroker, monkeypatch: pytest.MonkeyPatch
) -> None:
    settings = worker_settings()
    conn = BrokerConnection(settings.rabbitmq_url, QUEUE, retry_delay=0.0, connect=broker.connect)

    async def broken_connect(*args: object, **kwargs: object) -> None:
        raise RuntimeError("unexpected")

    monkeypatch.setattr(conn, "connect", broken_connect)

    code = await asyncio.wait_for(worker.main(settings, connection=conn), timeout=2.0)

    assert code == EXIT_FAILURE
    assert conn.state is ConnectionState.STOPPED
