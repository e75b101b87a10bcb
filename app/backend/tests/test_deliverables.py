from __future__ import annotations

import base64
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from ebtracker.integrations.storage import LocalObjectStorage
from helpers import BDM, COO, DESIGNER, DIRECTOR, LEAD, RecordingSender, create_project, staff_project

DRAWING = b"%PDF-1.4 general arrangement rev B"


def _create_deliverable(client: TestClient, project_id: str, headers: dict[str, str] = LEAD) -> dict:
    response = client.post(
        "/api/v1/deliverables",
        json={"project_id": project_id, "name": "GA Drawings", "deliverable_type": "drawing"},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _submit(client: TestClient, deliverable_id: str, headers: dict[str, str] = DESIGNER):
    return client.post(
        f"/api/v1/deliverables/{deliverable_id}/submit",
        json={
            "files": [
                {
                    "file_name": "GA rev B.pdf",
                    "mime_type": "application/pdf",
                    "content_base64": base64.b64encode(DRAWING).decode("ascii"),
                }
            ]
        },
        headers=headers,
    )


def test_submit_stores_files_and_notifies_creator(
    client: TestClient, sender: RecordingSender, storage: LocalObjectStorage
) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    deliverable = _create_deliverable(client, project_id)
    assert deliverable["status"] == "pending"
    assert deliverable["files"] == []

    response = _submit(client, deliverable["id"])

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "submitted"
    assert data["submitted_by_uid"] == "designer-1"
    assert data["submitted_at"] is not None
    [stored] = data["files"]
    assert stored["file_name"] == "GA rev B.pdf"
    assert stored["mime_type"] == "application/pdf"
    assert stored["size"] == len(DRAWING)
    assert stored["storage_key"].startswith(f"deliverables-{deliverable['id']}/")
    assert stored["storage_key"].endswith("-GA-rev-B.pdf")
    assert (storage.root / stored["storage_key"]).read_bytes() == DRAWING
    assert sender.sent[-1][:2] == (["lead-1@test.local"], "deliverableSubmitted")


def test_signed_url_serves_file(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    deliverable = _create_deliverable(client, project_id)
    url = _submit(client, deliverable["id"]).json()["data"]["files"][0]["url"]

    response = client.get(url)

    assert response.status_code == 200
    assert response.content == DRAWING
    assert response.headers["content-type"] == "application/pdf"


def test_tampered_signature_is_forbidden(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    deliverable = _create_deliverable(client, project_id)
    stored = _submit(client, deliverable["id"]).json()["data"]["files"][0]
    key = stored["storage_key"]
    expires = stored["url"].split("expires=")[1].split("&")[0]

    response = client.get(f"/api/v1/files/{key}", params={"expires": expires, "signature": "0" * 64})

    assert response.status_code == 403
    assert response.json()["error"]["kind"] == "forbidden"


def test_signature_for_another_key_is_rejected(storage: LocalObjectStorage) -> None:
    url = storage.signed_url("deliverables-a/one.pdf")
    expires = int(url.split("expires=")[1].split("&")[0])
    signature = url.split("signature=")[1]

    assert storage.verify("deliverables-a/one.pdf", expires, signature) is True
    assert storage.verify("deliverables-a/two.pdf", expires, signature) is False
    assert storage.verify("deliverables-a/one.pdf", expires + 1, signature) is False


def test_expired_signature_is_rejected(storage: LocalObjectStorage) -> None:
    url = storage.signed_url("deliverables-a/one.pdf", ttl_seconds=-10)
    expires = int(url.split("expires=")[1].split("&")[0])
    signature = url.split("signature=")[1]

    assert storage.verify("deliverables-a/one.pdf", expires, signature) is False


def test_storage_keys_cannot_escape_root(storage: LocalObjectStorage, tmp_path: Path) -> None:
    (tmp_path / "secret.txt").write_text("nope")

    with pytest.raises(ValueError):
        storage.read("../secret.txt")


def test_review_by_manager_roles(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    first = _create_deliverable(client, project_id)
    second = _create_deliverable(client, project_id, headers=COO)
    _submit(client, first["id"])
    _submit(client, second["id"])

    assert client.post(f"/api/v1/deliverables/{first['id']}/approve", json={}, headers=DESIGNER).status_code == 403

    missing_reason = client.post(f"/api/v1/deliverables/{second['id']}/reject", json={}, headers=DIRECTOR)
    assert missing_reason.status_code == 422
    assert missing_reason.json()["error"]["details"]["fields"] == ["reason"]

    approved = client.post(f"/api/v1/deliverables/{first['id']}/approve", json={"notes": "Issue"}, headers=LEAD)
    assert approved.status_code == 200
    assert approved.json()["data"]["status"] == "approved"
    assert approved.json()["data"]["reviewed_by_name"] == "Lee Lead"

    rejected = client.post(
        f"/api/v1/deliverables/{second['id']}/reject", json={"reason": "Missing title block"}, headers=DIRECTOR
    )
    assert rejected.json()["data"]["status"] == "rejected"
    assert rejected.json()["data"]["review_notes"] == "Missing title block"


def test_pending_deliverable_cannot_be_approved(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    deliverable = _create_deliverable(client, project_id)

    response = client.post(f"/api/v1/deliverables/{deliverable['id']}/approve", json={}, headers=COO)

    assert response.status_code == 409


def test_second_submit_does_not_store_files(client: TestClient, storage: LocalObjectStorage) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    deliverable = _create_deliverable(client, project_id)
    _submit(client, deliverable["id"])

    again = _submit(client, deliverable["id"])

    assert again.status_code == 409
    assert len(list((storage.root / f"deliverables-{deliverable['id']}").iterdir())) == 1


def test_unstaffed_roles_cannot_touch_deliverables(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    deliverable = _create_deliverable(client, project_id)

    assert client.post(
        "/api/v1/deliverables", json={"project_id": project_id, "name": "Calcs"}, headers=DESIGNER
    ).status_code == 403
    assert _submit(client, deliverable["id"], headers=BDM).status_code == 403
    assert client.get("/api/v1/deliverables", params={"project_id": project_id}, headers=BDM).status_code == 403
    assert len(client.get("/api/v1/deliverables", params={"project_id": project_id}, headers=DESIGNER).json()["data"]) == 1


def test_delete_removes_stored_files(client: TestClient, storage: LocalObjectStorage) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    deliverable = _create_deliverable(client, project_id)
    key = _submit(client, deliverable["id"]).json()["data"]["files"][0]["storage_key"]
    assert (storage.root / key).exists()

    assert client.delete(f"/api/v1/deliverables/{deliverable['id']}", headers=DESIGNER).status_code == 403
    assert client.delete(f"/api/v1/deliverables/{deliverable['id']}", headers=LEAD).status_code == 204

    assert not (storage.root / key).exists()
    assert client.get(f"/api/v1/deliverables/{deliverable['id']}", headers=COO).status_code == 404
