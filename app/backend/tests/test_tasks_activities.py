from __future__ import annotations

from fastapi.testclient import TestClient

from helpers import ACCOUNTS, BDM, COO, DESIGNER, LEAD, auth_headers, create_project, staff_project


def _create_task(client: TestClient, project_id: str, *, title: str = "Check load paths", assignee: str | None = "designer-1") -> dict:
    response = client.post(
        "/api/v1/tasks",
        json={"project_id": project_id, "title": title, "assigned_to_uid": assignee, "priority": "high"},
        headers=LEAD,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _move(client: TestClient, task_id: str, action: str, headers: dict[str, str]):
    return client.post(f"/api/v1/tasks/{task_id}/transition", json={"action": action}, headers=headers)


def test_task_workflow(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    task = _create_task(client, project_id)
    assert task["status"] == "todo"
    assert task["assigned_to_name"] == "Dee Designer"

    assert _move(client, task["id"], "start", DESIGNER).json()["data"]["status"] == "in_progress"
    assert _move(client, task["id"], "submit_for_review", DESIGNER).json()["data"]["status"] == "review"
    assert _move(client, task["id"], "complete", DESIGNER).status_code == 403
    assert _move(client, task["id"], "request_changes", LEAD).json()["data"]["status"] == "in_progress"
    _move(client, task["id"], "submit_for_review", DESIGNER)

    completed = _move(client, task["id"], "complete", LEAD)
    assert completed.status_code == 200
    assert completed.json()["data"]["status"] == "completed"
    assert completed.json()["data"]["completed_at"] is not None
    assert _move(client, task["id"], "start", LEAD).status_code == 409


def test_unknown_task_action_is_rejected_by_request_validation(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    task = _create_task(client, project_id)

    response = _move(client, task["id"], "archive", LEAD)

    assert response.status_code == 422
    assert response.json()["error"]["details"]["fields"] == ["action"]


def test_task_assignee_must_be_active_user(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)

    response = client.post(
        "/api/v1/tasks",
        json={"project_id": project_id, "title": "Ghost work", "assigned_to_uid": "nobody-9"},
        headers=LEAD,
    )

    assert response.status_code == 422
    assert response.json()["error"]["details"]["fields"] == ["assigned_to_uid"]


def test_task_creation_permissions(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    body = {"project_id": project_id, "title": "Review calcs"}

    assert client.post("/api/v1/tasks", json=body, headers=DESIGNER).status_code == 403
    assert client.post("/api/v1/tasks", json=body, headers=auth_headers("lead-2", "design_manager")).status_code == 403
    assert client.post("/api/v1/tasks", json=body, headers=COO).status_code == 201


def test_task_listing_by_role(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    mine = _create_task(client, project_id)
    _create_task(client, project_id, title="Unassigned", assignee=None)

    own = client.get("/api/v1/tasks", headers=DESIGNER).json()["data"]
    assert [task["id"] for task in own] == [mine["id"]]
    assert len(client.get("/api/v1/tasks", params={"project_id": project_id}, headers=DESIGNER).json()["data"]) == 2
    assert len(client.get("/api/v1/tasks", headers=COO).json()["data"]) == 2
    assert client.get("/api/v1/tasks", headers=BDM).json()["data"] == []


def test_task_update_and_delete(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    task = _create_task(client, project_id)

    updated = client.patch(f"/api/v1/tasks/{task['id']}", json={"title": "Check load paths (rev B)"}, headers=LEAD)
    assert updated.json()["data"]["title"] == "Check load paths (rev B)"
    assert client.patch(f"/api/v1/tasks/{task['id']}", json={"title": "Mine now"}, headers=DESIGNER).status_code == 403

    assert client.delete(f"/api/v1/tasks/{task['id']}", headers=DESIGNER).status_code == 403
    assert client.delete(f"/api/v1/tasks/{task['id']}", headers=LEAD).status_code == 204
    assert client.get(f"/api/v1/tasks/{task['id']}", headers=COO).status_code == 404


def test_activity_feed_records_workflow_events(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)

    response = client.get("/api/v1/activities", params={"project_id": project_id}, headers=BDM)

    assert response.status_code == 200
    types = {row["activity_type"] for row in response.json()["data"]}
    assert {"project_created", "project_lead_assigned", "project_designer_assigned"} <= types
    created = next(row for row in response.json()["data"] if row["activity_type"] == "project_created")
    assert created["actor_uid"] == "coo-1"
    assert created["actor_role"] == "coo"


def test_activity_feed_filters_and_limit(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)

    limited = client.get("/api/v1/activities", params={"limit": 2}, headers=COO).json()["data"]
    assert len(limited) == 2

    by_actor = client.get("/api/v1/activities", params={"actor_uid": "coo-1"}, headers=COO).json()["data"]
    assert by_actor and all(row["actor_uid"] == "coo-1" for row in by_actor)

    by_type = client.get("/api/v1/activities", params={"entity_type": "timesheet"}, headers=COO).json()["data"]
    assert by_type == []

    future = client.get("/api/v1/activities", params={"since": "2999-01-01T00:00:00"}, headers=COO).json()["data"]
    assert future == []


def test_activity_window_must_be_ordered(client: TestClient) -> None:
    response = client.get(
        "/api/v1/activities",
        params={"since": "2026-10-18T10:00:00", "until": "2026-10-18T09:00:00"},
        headers=COO,
    )

    assert response.status_code == 422
    assert response.json()["error"]["details"]["fields"] == ["until"]


def test_activity_feed_is_restricted(client: TestClient) -> None:
    for headers in (DESIGNER, LEAD, ACCOUNTS):
        assert client.get("/api/v1/activities", headers=headers).status_code == 403


def test_any_role_can_log_activity(client: TestClient) -> None:
    project_id = create_project(client)["id"]

    response = client.post(
        "/api/v1/activities",
        json={"activity_type": "site_visit", "details": " Visited pier 3 ", "project_id": project_id},
        headers=DESIGNER,
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["details"] == "Visited pier 3"
    assert data["actor_uid"] == "designer-1"
    assert data["actor_role"] == "designer"
    logged = client.get("/api/v1/activities", params={"actor_uid": "designer-1"}, headers=COO).json()["data"]
    assert [row["activity_type"] for row in logged] == ["site_visit"]
