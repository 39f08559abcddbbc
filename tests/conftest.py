"""Pytest fixtures for the service.

The suite uses an in-memory SQLite database and in-memory fakes for RabbitMQ
(see `tests/fakes.py`) to keep tests deterministic and fast. No broker or
Postgres instance is required.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from taskflow.api import deps
from taskflow.db.models import Base
from taskflow.main import app
from taskflow.messaging.connection import BrokerConnection
from tests.fakes import FakeBroker, FakePublisher

QUEUE = "task_created"


@pytest.fixture()
async def session_maker() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """SQLite async session factory for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    maker = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    yield maker
    await engine.dispose()


@pytest.fixture()
async def db_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with session_maker() as session:
        yield session


@pytest.fixture()
def broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture()
async def connection(broker: FakeBroker) -> AsyncIterator[BrokerConnection]:
    """BrokerConnection wired to the fake broker with short retry delays."""
    conn = BrokerConnection(
        "amqp://test", QUEUE, max_retries=3, retry_delay=0.01, connect=broker.connect
    )
    yield conn
    await conn.close()


@pytest.fixture()
def fake_publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture()
async def client(
    db_session: AsyncSession, fake_publisher: FakePublisher
) -> AsyncIterator[AsyncClient]:
    """HTTP client with the database and publisher overridden.

    ASGITransport does not run the lifespan, so no broker connection is made.
    """

    async def _get_session_override() -> AsyncIterator[AsyncSession]:
        yield db_session

    def _get_publisher_override() -> FakePublisher:
        return fake_publisher

    app.dependency_overrides[deps.get_session] = _get_session_override
    app.dependency_overrides[deps.get_publisher] = _get_publisher_override

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
