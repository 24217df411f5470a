"""
Integration tests for the FastAPI server.

Uses the real FastAPI TestClient over a SyncService wired to the in-memory fakes.
"""
import asyncio
import json

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from core import BackendError, SyncService, invalidate
from core.constants import NOTIFICATIONS, PROJECT_MEMBERS, PROJECTS, TASKS
from server import app, set_service
from server.app import backend_error_handler, parse_cors_origins
from server.event_bus import SSEEventBus

from fakes import ADMIN_ID, EMPLOYEE_ID, task_row


@pytest.fixture
def event_bus() -> SSEEventBus:
    return SSEEventBus()


@pytest.fixture
def service(backend, transport, cache, event_bus) -> SyncService:
    sync = SyncService(backend, transport, cache, event_bus)
    event_bus.attach(sync.bus)
    set_service(sync)
    yield sync
    event_bus.detach()
    set_service(None)


@pytest.fixture
def client(service, transport):
    """A client whose requests share one event loop, so background workers survive between calls."""
    with TestClient(app) as test_client:
        yield test_client
        test_client.delete("/session")
    assert transport.open_channels == []


def sign_in(client: TestClient, user_id: str = ADMIN_ID) -> dict:
    response = client.post("/session", json={"user_id": user_id, "access_token": "jwt"})
    assert response.status_code == 200
    return response.json()


class TestHealthEndpoint:
    def test_health_without_service(self):
        set_service(None)
        response = TestClient(app).get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["sync_configured"] is False

    def test_health_with_session(self, client):
        sign_in(client)
        data = client.get("/health").json()
        assert data["sync_configured"] is True
        assert data["user_id"] == ADMIN_ID
        assert data["feed_active"] is True


class TestSessionEndpoints:
    def test_start_session_returns_profile(self, client):
        data = sign_in(client)
        assert data["profile"]["id"] == ADMIN_ID
        assert data["profile"]["role"] == "admin"

    def test_end_session(self, client, transport):
        sign_in(client)
        assert client.delete("/session").json() == {"ended": True}
        assert transport.open_channels == []
        assert client.delete("/session").json() == {"ended": False}

    def test_routes_need_a_session(self, client):
        assert client.get("/profile").status_code == 409
        assert client.patch("/task/1/status", json={"status": "done"}).status_code == 409

    def test_routes_need_a_service(self):
        set_service(None)
        assert TestClient(app).get("/tasks").status_code == 503


class TestTaskEndpoints:
    def test_list_tasks(self, client):
        sign_in(client)
        assert [t["id"] for t in client.get("/tasks").json()] == [2, 1]
        assert [t["id"] for t in client.get("/tasks", params={"status": "inprogress"}).json()] == [2]

    def test_update_status(self, client, backend):
        sign_in(client)

        response = client.patch("/task/1/status", json={"status": "done"})

        assert response.status_code == 200
        assert response.json()["status"] == "done"
        assert client.get("/tasks", params={"status": "done"}).json()[0]["id"] == 1
        assert backend.calls_for("update", TASKS)[0].args["values"] == {"status": "done"}

    def test_update_status_validation(self, client):
        sign_in(client)
        assert client.patch("/task/1/status", json={"status": "someday"}).status_code == 422
        assert client.patch("/task/99/status", json={"status": "done"}).status_code == 404

    def test_update_status_failure(self, client, backend):
        sign_in(client)
        backend.fail_on("update", TASKS, "rls")
        assert client.patch("/task/1/status", json={"status": "done"}).status_code == 400

    def test_delete_task(self, client):
        sign_in(client)
        assert client.delete("/task/2").json() is True
        assert [t["id"] for t in client.get("/tasks").json()] == [1]
        assert client.delete("/task/2").status_code == 404

    def test_clear_cancelled(self, client, backend):
        backend.rows(TASKS).append(task_row(3, "Dropped", "cancelled"))
        sign_in(client)

        assert client.post("/task/clear-cancelled").json() == {"cleared": 1}
        assert [t["id"] for t in client.get("/tasks").json()] == [2, 1]


class TestTaskPermissions:
    """Employees may only change tasks they are assigned to or created."""

    @pytest.fixture
    def foreign_task(self, backend):
        backend.rows(TASKS).append(
            task_row(3, "Someone else's", "cancelled", user_id="user-other", created_by="user-other", assignee=None)
        )
        return 3

    def test_employee_updates_own_task(self, client):
        sign_in(client, EMPLOYEE_ID)
        assert client.patch("/task/1/status", json={"status": "done"}).status_code == 200

    def test_employee_cannot_touch_foreign_task(self, client, backend, foreign_task):
        sign_in(client, EMPLOYEE_ID)

        assert client.patch(f"/task/{foreign_task}/status", json={"status": "todo"}).status_code == 403
        assert client.delete(f"/task/{foreign_task}").status_code == 403
        assert client.post("/task/clear-cancelled").status_code == 403

        assert backend.calls_for("update", TASKS) == []
        assert backend.calls_for("delete", TASKS) == []
        assert foreign_task in [t["id"] for t in client.get("/tasks").json()]

    def test_admin_may_touch_foreign_task(self, client, foreign_task):
        sign_in(client)
        assert client.delete(f"/task/{foreign_task}").json() is True


class TestProjectEndpoints:
    def test_my_projects(self, client, backend):
        backend.rows(PROJECT_MEMBERS).append(
            {"project_id": 5, "user_id": ADMIN_ID, "projects": {"id": 5, "name": "Beta"}}
        )
        sign_in(client)

        [membership] = client.get("/projects/mine").json()
        assert membership["projects"]["name"] == "Beta"

    def test_admin_creates_project(self, client):
        sign_in(client)

        response = client.put("/project", json={"name": "Alpha", "color": "#f00"})

        assert response.status_code == 200
        data = response.json()
        assert data["created"] is True
        assert data["project"]["name"] == "Alpha"
        assert data["warnings"] == []

    def test_partial_failure_is_reported_as_warning(self, client, backend):
        backend.rows(PROJECTS).append({"id": 5, "name": "Beta"})
        sign_in(client)
        backend.fail_on("delete", PROJECT_MEMBERS, "network error")

        response = client.put(
            "/project",
            json={
                "name": "Beta",
                "original_members": [{"user_id": ADMIN_ID}, {"user_id": EMPLOYEE_ID}],
                "updated_members": [{"user_id": EMPLOYEE_ID}],
                "target_project": {"id": 5, "name": "Beta"},
            },
        )

        assert response.status_code == 200
        assert response.json()["warnings"] == [
            {"step": "remove_members", "message": "Error removing members: network error"}
        ]

    def test_employee_cannot_create_project(self, client):
        sign_in(client, EMPLOYEE_ID)
        response = client.put("/project", json={"name": "Alpha"})
        assert response.status_code == 403

    def test_project_write_failure(self, client, backend):
        sign_in(client)
        backend.fail_on("insert", PROJECTS, "duplicate name")
        response = client.put("/project", json={"name": "Alpha"})
        assert response.status_code == 400
        assert response.json()["detail"] == "duplicate name"


class TestProfileAndNotifications:
    def test_profile_and_users(self, client):
        sign_in(client, EMPLOYEE_ID)
        assert client.get("/profile").json()["id"] == EMPLOYEE_ID
        assert [u["full_name"] for u in client.get("/users").json()] == ["Ada Admin", "Erin Employee"]

    def test_unread_and_mark_read(self, client, backend):
        backend.rows(NOTIFICATIONS).append(
            {"id": 1, "user_id": ADMIN_ID, "type": "new_comment", "is_read": False}
        )
        sign_in(client)

        assert client.get("/notifications/unread").json() == {"unread": 1}
        assert client.post("/notifications/read").json() == {"unread": 0}


class TestRefreshAndEvents:
    def test_refresh_streams_invalidate_and_toast(self, client, event_bus):
        sign_in(client)
        queue = event_bus.subscribe()

        assert client.post("/refresh").json() == {"refreshed": True}

        frames = []
        while not queue.empty():
            frames.append(queue.get_nowait())
        event_bus.unsubscribe(queue)
        assert frames[0]["type"] == "batch_invalidate"
        assert frames[0]["payload"]["reason"] == "idle_refresh"
        assert {"type": "toast", "message": "Data refreshed", "severity": "info"} in frames


class TestSSEEventBus:
    @pytest.mark.asyncio
    async def test_bus_events_and_toasts_fan_out(self, bus, event_bus):
        event_bus.attach(bus)
        first = event_bus.subscribe()
        second = event_bus.subscribe()

        bus.publish(invalidate(PROJECTS))
        event_bus.notify("Project created successfully", "success")

        for queue in (first, second):
            change = await asyncio.wait_for(queue.get(), 1)
            assert change["type"] == "batch_invalidate"
            assert change["payload"]["table"] == PROJECTS
            toast = await asyncio.wait_for(queue.get(), 1)
            assert toast == {"type": "toast", "message": "Project created successfully", "severity": "success"}

        event_bus.unsubscribe(first)
        event_bus.unsubscribe(second)
        event_bus.detach()
        assert event_bus.subscribers == []

    def test_events_route_is_registered(self):
        assert "/global/event" in {route.path for route in app.routes}


class TestAppSetup:
    def test_parse_cors_origins(self):
        assert parse_cors_origins(None) == ["*"]
        assert parse_cors_origins(" * ") == ["*"]
        assert parse_cors_origins("https://a.example.com, https://b.example.com,") == [
            "https://a.example.com",
            "https://b.example.com",
        ]

    @pytest.mark.asyncio
    async def test_backend_error_becomes_bad_gateway(self):
        request = Request({"type": "http", "method": "GET", "path": "/tasks", "headers": []})

        response = await backend_error_handler(request, BackendError("upstream down", "503"))

        assert response.status_code == 502
        assert json.loads(response.body) == {"detail": "upstream down", "code": "503"}
