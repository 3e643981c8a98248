from __future__ import annotations

from fastapi.testclient import TestClient

from config.config import AppConfig, StorageBackend, StorageConfig
from remindly.api.server import create_app
from remindly.app.reminder_app import ReminderApp
from remindly.models.errors import PersistenceError
from remindly.store.memory import MemoryReminderStore

from conftest import never_wakes


class LockedStore(MemoryReminderStore):
    async def create(self, reminder):
        raise PersistenceError("database is locked")


def build_test_client(store: MemoryReminderStore | None = None) -> TestClient:
    reminder_app = ReminderApp(
        config=AppConfig(storage=StorageConfig(backend=StorageBackend.MEMORY)),
        store=store or MemoryReminderStore(warn=False),
        sleep=never_wakes,
    )
    app = create_app(reminder_app)
    return TestClient(app)


def test_chat_endpoint_returns_reply() -> None:
    with build_test_client() as client:
        response = client.post("/chat", json={"user_id": "ada", "message": "/settimezone Africa/Lagos"})
        assert response.status_code == 200
        assert response.json() == {"message": "Time zone set to Africa/Lagos."}

        response = client.post("/chat", json={"user_id": "ada", "message": "Buy groceries by 13:30"})
        assert response.json()["message"] == 'Reminder set for "Buy groceries" at 13:30 (Africa/Lagos).'


def test_create_and_list_reminders() -> None:
    with build_test_client() as client:
        resp = client.put("/users/ada/timezone", json={"time_zone": "Asia/Tokyo"})
        assert resp.status_code == 200

        resp = client.post("/users/ada/reminders", json={"task": "stretch", "local_time": "07:15", "frequency": "daily"})
        assert resp.status_code == 201
        created = resp.json()
        assert created["time_zone"] == "Asia/Tokyo"
        assert created["due_local"] == "07:15"
        assert created["frequency"] == "daily"
        assert created["state"] == "scheduled"

        client.post("/users/ada/reminders", json={"task": "read", "local_time": "22:00"})

        resp = client.get("/users/ada/reminders")
        assert resp.status_code == 200
        listed = resp.json()
        assert [item["task"] for item in listed] == ["stretch", "read"]
        assert listed[0]["id"] == created["id"]
        assert listed[1]["frequency"] is None

        assert client.get("/users/bob/reminders").json() == []


def test_create_rejects_invalid_input() -> None:
    with build_test_client() as client:
        for payload in (
            {"task": "stretch", "local_time": "7h15"},
            {"task": "stretch", "local_time": "07:15", "frequency": "hourly"},
            {"task": "   ", "local_time": "07:15"},
        ):
            resp = client.post("/users/ada/reminders", json=payload)
            assert resp.status_code == 422

        assert client.get("/users/ada/reminders").json() == []


def test_time_zone_endpoints() -> None:
    with build_test_client() as client:
        assert client.get("/users/ada/timezone").json() == {"user_id": "ada", "time_zone": "UTC"}

        resp = client.put("/users/ada/timezone", json={"time_zone": "Mars/Colony"})
        assert resp.status_code == 422
        assert "Mars/Colony" in resp.json()["detail"]

        client.put("/users/ada/timezone", json={"time_zone": "Europe/Paris"})
        assert client.get("/users/ada/timezone").json()["time_zone"] == "Europe/Paris"


def test_delete_reminder_by_position() -> None:
    with build_test_client() as client:
        for task in ("first", "second"):
            client.post("/users/ada/reminders", json={"task": task, "local_time": "12:00"})

        resp = client.delete("/users/ada/reminders/3")
        assert resp.status_code == 404
        assert "You have 2 reminder(s)" in resp.json()["detail"]

        resp = client.delete("/users/ada/reminders/1")
        assert resp.status_code == 200
        assert resp.json()["task"] == "first"
        assert resp.json()["state"] == "cancelled"
        assert [item["task"] for item in client.get("/users/ada/reminders").json()] == ["second"]


def test_stats_endpoint_returns_data() -> None:
    with build_test_client() as client:
        client.post("/users/ada/reminders", json={"task": "stretch", "local_time": "12:00"})
        resp = client.get("/stats")
        assert resp.status_code == 200
        data = resp.json()["reminders"]
        assert data["is_started"] is True
        assert data["scheduler"]["armed"] == 1
        assert "dispatcher" in data


def test_notifications_endpoint_returns_batch() -> None:
    with build_test_client() as client:
        resp = client.get("/notifications")
        assert resp.status_code == 200
        assert resp.json() == {"notifications": []}


def test_health_endpoint_returns_snapshot() -> None:
    with build_test_client() as client:
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["config_loaded"] is True
        assert data["is_started"] is True
        assert data["store_ready"] is True


def test_store_failure_returns_503_without_backend_detail() -> None:
    with build_test_client(LockedStore(warn=False)) as client:
        resp = client.post("/users/ada/reminders", json={"task": "stretch", "local_time": "12:00"})
        assert resp.status_code == 503
        assert resp.json()["detail"] == PersistenceError.default_message

        resp = client.post("/chat", json={"user_id": "ada", "message": "stretch by 12:00"})
        assert resp.json()["message"] == PersistenceError.default_message
