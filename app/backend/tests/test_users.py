from __future__ import annotations

from fastapi.testclient import TestClient

from helpers import COO, DESIGNER, DIRECTOR, LEAD, create_project


def test_coo_registers_user_ahead_of_sign_in(client: TestClient) -> None:
    response = client.post(
        "/api/v1/users",
        json={"uid": "designer-7", "name": "Sam Seven", "role": "designer", "email": "Sam.Seven@Test.Local"},
        headers=COO,
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["email"] == "sam.seven@test.local"
    assert data["active"] is True
    assert data["last_seen_at"] is None

    duplicate = client.post(
        "/api/v1/users", json={"uid": "designer-7", "name": "Sam", "role": "designer"}, headers=COO
    )
    assert duplicate.status_code == 409


def test_registered_designer_can_be_staffed(client: TestClient) -> None:
    client.post("/api/v1/users", json={"uid": "designer-7", "name": "Sam Seven", "role": "designer"}, headers=COO)
    project_id = create_project(client)["id"]

    response = client.post(
        f"/api/v1/projects/{project_id}/designers", json={"designer_uids": ["designer-7"]}, headers=COO
    )

    assert response.status_code == 200
    assert response.json()["data"]["assigned_designer_uids"] == ["designer-7"]


def test_only_active_designers_can_be_assigned(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    client.get("/api/v1/me", headers=LEAD)

    response = client.post(
        f"/api/v1/projects/{project_id}/designers", json={"designer_uids": ["lead-1", "ghost-1"]}, headers=COO
    )

    assert response.status_code == 422
    assert response.json()["error"]["details"]["fields"] == ["designer_uids"]
    assert "lead-1" in response.json()["message"]


def test_user_directory_access(client: TestClient) -> None:
    client.get("/api/v1/me", headers=DESIGNER)

    designers = client.get("/api/v1/users", params={"role": "designer"}, headers=LEAD)
    assert designers.status_code == 200
    assert [user["uid"] for user in designers.json()["data"]] == ["designer-1"]

    assert client.get("/api/v1/users", headers=DESIGNER).status_code == 403
    assert client.post(
        "/api/v1/users", json={"uid": "x-1", "name": "X", "role": "bdm"}, headers=LEAD
    ).status_code == 403


def test_director_deactivates_user_and_they_are_locked_out(client: TestClient) -> None:
    assert client.get("/api/v1/me", headers=DESIGNER).status_code == 200

    forbidden = client.patch("/api/v1/users/designer-1", json={"active": False}, headers=COO)
    assert forbidden.status_code == 403

    response = client.patch(
        "/api/v1/users/designer-1", json={"active": False, "department": "Structures"}, headers=DIRECTOR
    )

    assert response.status_code == 200
    assert response.json()["data"]["active"] is False
    assert response.json()["data"]["department"] == "Structures"
    locked_out = client.get("/api/v1/me", headers=DESIGNER)
    assert locked_out.status_code == 401
    assert locked_out.json()["error"]["kind"] == "unauthorized"
    listed = client.get("/api/v1/users", headers=DIRECTOR).json()["data"]
    assert "designer-1" not in [row["uid"] for row in listed]

    client.put("/api/v1/users/designer-1", json={"active": True}, headers=DIRECTOR)
    assert client.get("/api/v1/me", headers=DESIGNER).status_code == 200


def test_assigned_role_survives_later_sign_ins(client: TestClient) -> None:
    client.get("/api/v1/me", headers=DESIGNER)

    client.patch("/api/v1/users/designer-1", json={"role": "design_manager"}, headers=DIRECTOR)

    me = client.get("/api/v1/me", headers=DESIGNER)
    assert me.status_code == 200
    assert me.json()["data"]["role"] == "design_manager"
    activities = client.get("/api/v1/activities", params={"entity_type": "user"}, headers=DIRECTOR).json()["data"]
    assert "user_updated" in [row["activity_type"] for row in activities]


def test_user_update_validation(client: TestClient) -> None:
    client.get("/api/v1/me", headers=DIRECTOR)

    missing = client.patch("/api/v1/users/nobody", json={"active": False}, headers=DIRECTOR)
    empty = client.patch("/api/v1/users/director-1", json={}, headers=DIRECTOR)
    self_lock = client.patch("/api/v1/users/director-1", json={"active": False}, headers=DIRECTOR)

    assert missing.status_code == 404
    assert empty.status_code == 422
    assert self_lock.status_code == 422
    assert self_lock.json()["error"]["details"]["fields"] == ["active"]
