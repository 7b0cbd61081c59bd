# tests/test_tasks_api.py
"""HTTP tests for the /tasks endpoints."""

from datetime import date, timedelta
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from main import app
from routers.tasks import get_task_service

FUTURE = (date.today() + timedelta(days=30)).isoformat()


@pytest.fixture
def create_task(client: TestClient, auth_headers: dict):
    def _create(**payload) -> dict:
        payload.setdefault("title", "Write report")
        response = client.post("/tasks/", json=payload, headers=auth_headers)
        assert response.status_code == 201, response.text
        return response.json()

    return _create


class TestCreate:
    def test_create_returns_task(self, client, auth_headers) -> None:
        response = client.post(
            "/tasks/",
            json={"title": "Plan sprint", "priority": 2, "due_date": FUTURE},
            headers=auth_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["title"] == "Plan sprint"
        assert data["status"] == "todo"
        assert data["priority"] == 2
        assert data["description"] == ""
        assert data["due_date"] == FUTURE
        assert data["completed_at"] is None

    def test_missing_title(self, client, auth_headers) -> None:
        response = client.post("/tasks/", json={"description": "no title"}, headers=auth_headers)

        assert response.status_code == 422

    def test_invalid_priority(self, client, auth_headers) -> None:
        response = client.post("/tasks/", json={"title": "x", "priority": 9}, headers=auth_headers)

        assert response.status_code == 422

    def test_parent_not_found(self, client, auth_headers) -> None:
        response = client.post(
            "/tasks/", json={"title": "Child", "parent_id": str(uuid4())}, headers=auth_headers
        )

        assert response.status_code == 422
        assert response.json()["code"] == "parent_not_found"

    def test_parent_completed(self, client, auth_headers, create_task) -> None:
        parent = create_task(title="Parent")
        client.post(f"/tasks/{parent['task_id']}/complete", headers=auth_headers)

        response = client.post(
            "/tasks/", json={"title": "Child", "parent_id": parent["task_id"]}, headers=auth_headers
        )

        assert response.status_code == 422
        assert response.json()["code"] == "parent_completed"


class TestReadAndList:
    def test_get_task(self, client, auth_headers, create_task) -> None:
        task = create_task()

        response = client.get(f"/tasks/{task['task_id']}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["task_id"] == task["task_id"]

    def test_other_users_task_is_not_found(self, client, other_auth_headers, create_task) -> None:
        task = create_task()

        response = client.get(f"/tasks/{task['task_id']}", headers=other_auth_headers)

        assert response.status_code == 404
        assert response.json() == {"message": "Task not found", "code": "not_found"}

    def test_list_with_filters_and_sort(self, client, auth_headers, create_task) -> None:
        create_task(title="Alpha", priority=1)
        create_task(title="Beta", priority=1)
        create_task(title="Gamma", priority=5)

        response = client.get(
            "/tasks/",
            params={"priority": 1, "status": "todo", "sort": "title:desc,bogus:asc"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert [t["title"] for t in response.json()] == ["Beta", "Alpha"]

    def test_list_done_filter_excludes_todo(self, client, auth_headers, create_task) -> None:
        create_task(title="Alpha", priority=1)

        response = client.get("/tasks/", params={"priority": 1, "status": "done"}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == []

    def test_list_rejects_malformed_date_filter(self, client, auth_headers) -> None:
        response = client.get("/tasks/", params={"due_date": "15/01/2024"}, headers=auth_headers)

        assert response.status_code == 422


class TestUpdate:
    def test_partial_update(self, client, auth_headers, create_task) -> None:
        task = create_task(description="keep", due_date=FUTURE)

        response = client.put(f"/tasks/{task['task_id']}", json={"title": "New title"}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "New title"
        assert data["description"] == "keep"
        assert data["due_date"] == FUTURE
        assert data["status"] == "todo"
        assert data["completed_at"] is None

    def test_patch_is_accepted(self, client, auth_headers, create_task) -> None:
        task = create_task()

        response = client.patch(f"/tasks/{task['task_id']}", json={"priority": 3}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["priority"] == 3

    def test_self_parent(self, client, auth_headers, create_task) -> None:
        task = create_task()

        response = client.put(
            f"/tasks/{task['task_id']}", json={"parent_id": task["task_id"]}, headers=auth_headers
        )

        assert response.status_code == 422
        assert response.json()["code"] == "self_parent"

    def test_status_done_with_incomplete_subtask(self, client, auth_headers, create_task) -> None:
        parent = create_task(title="Parent")
        create_task(title="Child", parent_id=parent["task_id"])

        response = client.put(f"/tasks/{parent['task_id']}", json={"status": "done"}, headers=auth_headers)

        assert response.status_code == 422
        assert response.json()["code"] == "incomplete_subtasks"


class TestDelete:
    def test_delete_todo_task(self, client, auth_headers, create_task) -> None:
        task = create_task()

        response = client.delete(f"/tasks/{task['task_id']}", headers=auth_headers)

        assert response.status_code == 204
        assert client.get(f"/tasks/{task['task_id']}", headers=auth_headers).status_code == 404

    def test_cannot_delete_completed_task(self, client, auth_headers, create_task) -> None:
        task = create_task()
        client.post(f"/tasks/{task['task_id']}/complete", headers=auth_headers)

        response = client.delete(f"/tasks/{task['task_id']}", headers=auth_headers)

        assert response.status_code == 422
        assert response.json()["message"] == "Cannot delete completed tasks"
        assert client.get(f"/tasks/{task['task_id']}", headers=auth_headers).status_code == 200


class TestComplete:
    def test_parent_and_subtask_scenario(self, client, auth_headers, create_task) -> None:
        parent = create_task(title="P")
        child = create_task(title="S1", parent_id=parent["task_id"])

        blocked = client.post(f"/tasks/{parent['task_id']}/complete", headers=auth_headers)
        assert blocked.status_code == 422
        assert blocked.json()["message"] == "Cannot complete task with incomplete subtasks"

        assert client.post(f"/tasks/{child['task_id']}/complete", headers=auth_headers).status_code == 200

        done = client.post(f"/tasks/{parent['task_id']}/complete", headers=auth_headers)
        assert done.status_code == 200
        assert done.json()["status"] == "done"
        assert done.json()["completed_at"] is not None

    def test_second_completion_conflicts(self, client, auth_headers, create_task) -> None:
        task = create_task()
        first = client.post(f"/tasks/{task['task_id']}/complete", headers=auth_headers)

        second = client.post(f"/tasks/{task['task_id']}/complete", headers=auth_headers)

        assert second.status_code == 409
        assert second.json()["code"] == "already_completed"
        current = client.get(f"/tasks/{task['task_id']}", headers=auth_headers).json()
        assert current["completed_at"] == first.json()["completed_at"]

    def test_store_error_is_retryable(self, client, auth_headers, create_task) -> None:
        task = create_task()

        class _LockedService:
            def complete_task(self, user_id, task_id):
                raise OperationalError("SELECT ... FOR UPDATE", {}, Exception("lock timeout"))

        app.dependency_overrides[get_task_service] = lambda: _LockedService()
        try:
            response = client.post(f"/tasks/{task['task_id']}/complete", headers=auth_headers)
        finally:
            del app.dependency_overrides[get_task_service]

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1"
        assert response.json()["code"] == "store_unavailable"


class TestAuthRequired:
    def test_missing_token(self, client) -> None:
        response = client.get("/tasks/")

        assert response.status_code in (401, 403)

    def test_invalid_token(self, client) -> None:
        response = client.get("/tasks/", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401
