from __future__ import annotations

from fastapi.testclient import TestClient

from helpers import COO, DESIGNER, LEAD, create_project, staff_project


def _notify_designer(client: TestClient, title: str = "Site visit", kind: str = "info") -> dict:
    response = client.post(
        "/api/v1/notifications",
        json={"user_uid": "designer-1", "title": title, "message": "Thursday 9am at the depot.", "kind": kind},
        headers=COO,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _unread(client: TestClient, headers: dict[str, str]) -> int:
    response = client.get("/api/v1/notifications/unread", headers=headers)
    assert response.status_code == 200
    return response.json()["data"]["count"]


def test_workflow_notifications_land_in_the_recipients_inbox(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)

    [entry] = client.get("/api/v1/notifications", headers=DESIGNER).json()["data"]
    assert entry["user_uid"] == "designer-1"
    assert entry["title"] == "Assigned to project: Harbour Bridge Retrofit"
    assert entry["kind"] == "info"
    assert entry["read"] is False
    assert entry["source_key"] == f"project:{project_id}:assign_designer:designer-1"

    [lead_entry] = client.get("/api/v1/notifications", headers=LEAD).json()["data"]
    assert lead_entry["title"] == "Project allocated: Harbour Bridge Retrofit"


def test_inbox_read_and_cleanup_lifecycle(client: TestClient) -> None:
    assert client.get("/api/v1/me", headers=DESIGNER).status_code == 200
    first = _notify_designer(client, "Site visit")
    _notify_designer(client, "Drawing comments", kind="warning")
    assert _unread(client, DESIGNER) == 2

    response = client.put(f"/api/v1/notifications/{first['id']}/read", headers=DESIGNER)
    assert response.status_code == 200
    assert response.json()["data"]["read"] is True
    read_at = response.json()["data"]["read_at"]
    assert read_at is not None

    again = client.put(f"/api/v1/notifications/{first['id']}/read", headers=DESIGNER)
    assert again.status_code == 200
    assert again.json()["data"]["read_at"] == read_at
    assert _unread(client, DESIGNER) == 1

    unread_only = client.get("/api/v1/notifications", params={"read": "false"}, headers=DESIGNER).json()["data"]
    assert [row["title"] for row in unread_only] == ["Drawing comments"]
    assert unread_only[0]["kind"] == "warning"

    response = client.put("/api/v1/notifications/read-all", headers=DESIGNER)
    assert response.status_code == 200
    assert response.json()["data"] == {"updated": 1}
    assert _unread(client, DESIGNER) == 0

    response = client.delete("/api/v1/notifications/delete-all", headers=DESIGNER)
    assert response.status_code == 200
    assert response.json()["data"] == {"deleted": 2}
    assert client.get("/api/v1/notifications", headers=DESIGNER).json()["data"] == []


def test_delete_all_keeps_unread_entries(client: TestClient) -> None:
    assert client.get("/api/v1/me", headers=DESIGNER).status_code == 200
    read = _notify_designer(client, "Old news")
    _notify_designer(client, "Fresh news")
    assert client.put(f"/api/v1/notifications/{read['id']}/read", headers=DESIGNER).status_code == 200

    response = client.delete("/api/v1/notifications/delete-all", headers=DESIGNER)

    assert response.json()["data"] == {"deleted": 1}
    remaining = client.get("/api/v1/notifications", headers=DESIGNER).json()["data"]
    assert [row["title"] for row in remaining] == ["Fresh news"]


def test_inbox_entries_belong_to_their_recipient(client: TestClient) -> None:
    assert client.get("/api/v1/me", headers=DESIGNER).status_code == 200
    entry = _notify_designer(client)

    assert client.get("/api/v1/notifications", headers=LEAD).json()["data"] == []
    assert client.put(f"/api/v1/notifications/{entry['id']}/read", headers=LEAD).status_code == 403
    assert client.delete(f"/api/v1/notifications/{entry['id']}", headers=LEAD).status_code == 403
    assert client.put("/api/v1/notifications/read-all", headers=LEAD).json()["data"] == {"updated": 0}
    assert _unread(client, DESIGNER) == 1

    assert client.delete(f"/api/v1/notifications/{entry['id']}", headers=DESIGNER).status_code == 204
    assert client.delete(f"/api/v1/notifications/{entry['id']}", headers=DESIGNER).status_code == 404


def test_creating_notifications(client: TestClient) -> None:
    assert client.get("/api/v1/me", headers=DESIGNER).status_code == 200
    body = {"user_uid": "designer-1", "title": "Reminder", "message": "Submit your timesheets."}

    assert client.post("/api/v1/notifications", json=body, headers=LEAD).status_code == 403
    missing = client.post("/api/v1/notifications", json={**body, "user_uid": "nobody"}, headers=COO)
    assert missing.status_code == 404
    assert client.post("/api/v1/notifications", json={**body, "title": ""}, headers=COO).status_code == 422
    assert client.post("/api/v1/notifications", json={**body, "kind": "urgent"}, headers=COO).status_code == 422


def test_inbox_listing_limit(client: TestClient) -> None:
    assert client.get("/api/v1/me", headers=DESIGNER).status_code == 200
    for index in range(3):
        _notify_designer(client, f"Note {index}")

    rows = client.get("/api/v1/notifications", params={"limit": 2}, headers=DESIGNER).json()["data"]

    assert len(rows) == 2
    assert client.get("/api/v1/notifications", params={"limit": 0}, headers=DESIGNER).status_code == 422
