"""End-to-end tests for API endpoints."""

from __future__ import annotations

from typing import Any

import pytest
from faker import Faker
from httpx import AsyncClient

from taskflow import main
from taskflow.messaging.connection import ConnectionState
from taskflow.messaging.publisher import BROKER_UNAVAILABLE, PublishOutcome
from tests.fakes import FakePublisher


async def create_task(client: AsyncClient, **fields: str) -> dict[str, Any]:
    body = {"title": "T", "description": "D", "userId": "U1"} | fields
    r = await client.post("/tasks", json=body)
    assert r.status_code == 201, r.text
    return r.json()


async def test_create_task_publishes_event(
    client: AsyncClient, fake_publisher: FakePublisher
) -> None:
    """Persist task {T, D, U1} and publish {taskId, userId, title, timestamp}."""
    payload = await create_task(client)

    task = payload["task"]
    assert payload["message"] == "Task created successfully"
    assert "warning" not in payload
    assert task["title"] == "T" and task["description"] == "D" and task["userId"] == "U1"
    assert task["id"] and task["createdAt"]

    [event] = fake_publisher.published
    assert event.task_id == task["id"]
    assert event.user_id == "U1"
    assert event.title == "T"
    assert event.timestamp is not None


@pytest.mark.parametrize(
    "outcome",
    [PublishOutcome.skipped(BROKER_UNAVAILABLE), PublishOutcome.failed("socket closed")],
)
async def test_create_task_succeeds_when_notification_not_sent(
    client: AsyncClient, fake_publisher: FakePublisher, outcome: PublishOutcome
) -> None:
    fake_publisher.outcome = outcome

    payload = await create_task(client)

    assert payload["warning"] == "Notification not sent"
    assert "unavailable" in payload["message"]

    listed = await client.get("/tasks")
    assert [t["id"] for t in listed.json()["tasks"]] == [payload["task"]["id"]]


@pytest.mark.parametrize(
    "body",
    [
        {"description": "D", "userId": "U1"},
        {"title": "T", "userId": "U1"},
        {"title": "T", "description": "D"},
        {"title": "", "description": "D", "userId": "U1"},
    ],
)
async def test_create_task_requires_all_fields(
    client: AsyncClient, fake_publisher: FakePublisher, body: dict[str, str]
) -> None:
    r = await client.post("/tasks", json=body)

    assert r.status_code == 422
    assert fake_publisher.published == []


async def test_list_tasks_newest_first_and_filtered(client: AsyncClient, faker: Faker) -> None:
    first = await create_task(client, title=faker.sentence(), userId="U1")
    second = await create_task(client, title=faker.sentence(), userId="U2")
    third = await create_task(client, title=faker.sentence(), userId="U1")

    r = await client.get("/tasks")
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 3
    assert body["message"] == "Tasks fetched successfully"
    assert [t["id"] for t in body["tasks"]] == [
        third["task"]["id"],
        second["task"]["id"],
        first["task"]["id"],
    ]

    mine = (await client.get("/tasks", params={"userId": "U1"})).json()
    assert mine["count"] == 2
    assert {t["userId"] for t in mine["tasks"]} == {"U1"}


async def test_users_create_and_list(client: AsyncClient, faker: Faker) -> None:
    name, email = faker.name(), faker.unique.email()

    r = await client.post("/users", json={"name": name, "email": email})
    assert r.status_code == 201
    created = r.json()["user"]
    assert created["name"] == name and created["email"] == email

    listed = await client.get("/users")
    assert listed.status_code == 200
    assert [u["id"] for u in listed.json()["users"]] == [created["id"]]


async def test_create_user_rejects_bad_email(client: AsyncClient) -> None:
    r = await client.post("/users", json={"name": "A", "email": "not-an-email"})
    assert r.status_code == 422


async def test_health_reports_broker_disconnected(client: AsyncClient) -> None:
    r = await client.get("/health")

    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "running"
    assert body["database"] == "connected"
    assert body["rabbitmq"] == "disconnected"


async def test_root(client: AsyncClient) -> None:
    r = await client.get("/")
    assert r.json() == {"message": "Task Service API", "version": "1.0.0"}


async def test_lifespan_releases_broker_and_database(monkeypatch: pytest.MonkeyPatch) -> None:
    disposed: list[bool] = []

    class SpyEngine:
        async def dispose(self) -> None:
            disposed.append(True)

    monkeypatch.setattr(main, "engine", SpyEngine())
    monkeypatch.setattr(main.settings, "rabbitmq_startup_delay", 60.0)
    monkeypatch.setattr(main.app.state, "broker", None, raising=False)

    async with main.lifespan(main.app):
        broker = main.app.state.broker
        assert not broker.is_connected

    assert broker.state is ConnectionState.STOPPED
    assert disposed == [True]
