from __future__ import annotations

import uuid
import warnings

from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError

from ebtracker.core.errors import ErrorKind, classify_integrity_error
from helpers import COO, DIRECTOR


def test_missing_record_uses_error_envelope(client: TestClient) -> None:
    response = client.get(f"/api/v1/projects/{uuid.uuid4()}", headers=COO)

    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "message": "Project not found.",
        "error": {"kind": "not_found", "message": "Project not found."},
    }


def test_unknown_route_uses_error_envelope(client: TestClient) -> None:
    response = client.get("/api/v1/does-not-exist", headers=COO)

    assert response.status_code == 404
    assert response.json()["success"] is False
    assert response.json()["error"]["kind"] == "not_found"


def test_request_validation_lists_fields(client: TestClient) -> None:
    response = client.post(
        "/api/v1/projects",
        json={"project_name": "", "client_company": "Co", "allocated_hours": "-1"},
        headers=COO,
    )

    assert response.status_code == 422
    body = response.json()
    assert body["message"] == "Request validation failed."
    assert body["error"]["kind"] == "validation_error"
    assert sorted(body["error"]["details"]["fields"]) == ["allocated_hours", "project_name"]
    assert all(item["message"] for item in body["error"]["details"]["errors"])


def test_malformed_path_id_is_a_validation_error(client: TestClient) -> None:
    response = client.get("/api/v1/projects/not-a-uuid", headers=COO)

    assert response.status_code == 422
    assert response.json()["error"]["details"]["fields"] == ["path.project_id"]


def test_missing_body_is_a_validation_error(client: TestClient) -> None:
    response = client.post(f"/api/v1/timesheets/{uuid.uuid4()}/approve", headers=COO)

    assert response.status_code == 422
    assert response.json()["error"]["kind"] == "validation_error"


def test_validation_responses_use_the_current_422_status_name(client: TestClient) -> None:
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        request_error = client.post("/api/v1/projects", json={}, headers=COO)
        app_error = client.patch("/api/v1/users/director-1", json={}, headers=DIRECTOR)

    assert request_error.status_code == 422
    assert app_error.status_code == 422
    assert not [item for item in caught if "HTTP_422" in str(item.message)]


def test_integrity_errors_are_classified_by_constraint_kind() -> None:
    def violation(text: str) -> IntegrityError:
        return IntegrityError("INSERT INTO payments ...", {}, Exception(text))

    unique = classify_integrity_error(violation("UNIQUE constraint failed: users.uid"))
    check = classify_integrity_error(violation("CHECK constraint failed: ck_payments_amount_positive"))
    pg_check = classify_integrity_error(
        violation('new row for relation "payments" violates check constraint "ck_payments_amount_positive"')
    )
    foreign = classify_integrity_error(violation("FOREIGN KEY constraint failed"))

    assert unique == (ErrorKind.CONFLICT, "A record with this value already exists.", 409)
    assert check[0] is ErrorKind.VALIDATION_ERROR and check[2] == 422
    assert pg_check[0] is ErrorKind.VALIDATION_ERROR
    assert "already exists" not in check[1]
    assert foreign[0] is ErrorKind.CONFLICT and "referenced" in foreign[1]
