from __future__ import annotations

import uuid
from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ebtracker.core.auth import RequestUserContext
from ebtracker.core.errors import InvalidStateTransition
from ebtracker.models.entities import Activity, Project, ReviewStatus, Role, Timesheet
from ebtracker.policy.oracle import Entity
from ebtracker.services.workflow import WorkflowEngine
from helpers import COO, DESIGNER, DIRECTOR, LEAD, RecordingSender, create_project, staff_project


def _submit_timesheet(client: TestClient, project_id: str, hours: str, work_date: str = "2026-10-12") -> dict:
    response = client.post(
        "/api/v1/timesheets",
        json={"project_id": project_id, "work_date": work_date, "hours": hours, "description": "Drafting"},
        headers=DESIGNER,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _ledger(client: TestClient, project_id: str) -> dict:
    response = client.get(f"/api/v1/projects/{project_id}/ledger", headers=COO)
    assert response.status_code == 200
    return response.json()["data"]


def test_timesheet_and_variation_scenario(client: TestClient, sender: RecordingSender) -> None:
    project = create_project(client, allocated_hours="100")
    project_id = project["id"]
    staff_project(client, project_id)

    timesheet = _submit_timesheet(client, project_id, "10")
    approved = client.post(f"/api/v1/timesheets/{timesheet['id']}/approve", json={}, headers=COO)
    assert approved.status_code == 200
    assert approved.json()["data"]["status"] == "approved"
    assert approved.json()["data"]["reviewed_by_name"] == "Carol COO"

    ledger = _ledger(client, project_id)
    assert ledger["used_hours"] == "10.00"
    assert ledger["remaining_hours"] == "90.00"
    assert ledger["progress_percentage"] == 10

    variation = client.post(
        "/api/v1/variations",
        json={"project_id": project_id, "scope_description": "Extra loading study", "estimated_hours": "20"},
        headers=COO,
    )
    assert variation.status_code == 201
    variation_data = variation.json()["data"]
    assert variation_data["variation_code"].startswith(f"VAR-{project['project_code']}-")

    approved_variation = client.post(
        f"/api/v1/variations/{variation_data['id']}/approve", json={"approved_hours": "15"}, headers=COO
    )
    assert approved_variation.status_code == 200
    assert approved_variation.json()["data"]["approved_hours"] == "15.00"

    ledger = _ledger(client, project_id)
    assert ledger["allocated_hours"] == "115.00"
    assert ledger["used_hours"] == "10.00"
    assert ledger["remaining_hours"] == "105.00"
    assert ledger["progress_percentage"] == 9
    assert "variationSubmitted" in sender.templates()
    assert "variationApproved" in sender.templates()


def test_second_approval_is_rejected_and_counted_once(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    timesheet = _submit_timesheet(client, project_id, "6.5")

    first = client.post(f"/api/v1/timesheets/{timesheet['id']}/approve", json={}, headers=COO)
    second = client.post(f"/api/v1/timesheets/{timesheet['id']}/approve", json={}, headers=DIRECTOR)

    assert first.status_code == 200
    assert second.status_code == 409
    error = second.json()["error"]
    assert error["kind"] == "invalid_state_transition"
    assert error["details"]["current_status"] == "approved"
    assert error["details"]["action"] == "approve"
    assert _ledger(client, project_id)["used_hours"] == "6.50"


def test_stale_snapshot_cannot_approve_twice(client: TestClient, db_session: Session) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    timesheet_id = _submit_timesheet(client, project_id, "8")["id"]

    timesheet = db_session.scalar(select(Timesheet).where(Timesheet.id == uuid.UUID(timesheet_id)))
    project = db_session.get(Project, timesheet.project_id)
    # What a concurrent request read before the first approval landed.
    snapshot = SimpleNamespace(
        id=timesheet.id,
        project_id=timesheet.project_id,
        status=ReviewStatus.PENDING,
        hours=timesheet.hours,
        user_name=timesheet.user_name,
    )
    actor = RequestUserContext(uid="coo-1", role=Role.COO, name="Carol COO", email=None)
    engine = WorkflowEngine(db_session, sender=RecordingSender())

    engine.apply(Entity.TIMESHEET, timesheet, "approve", {}, context=actor, project=project)
    with pytest.raises(InvalidStateTransition) as exc_info:
        engine.apply(Entity.TIMESHEET, snapshot, "approve", {}, context=actor, project=project)

    assert exc_info.value.current_status == "approved"
    assert db_session.get(Project, snapshot.project_id).used_hours == Decimal("8.00")
    approvals = db_session.scalar(
        select(func.count(Activity.id)).where(Activity.activity_type == "timesheet_approved")
    )
    assert approvals == 1


def test_distinct_approvals_sum_exactly(client: TestClient) -> None:
    project_id = create_project(client, allocated_hours="40")["id"]
    staff_project(client, project_id)
    hours = ["7.5", "8", "3.25"]
    ids = [_submit_timesheet(client, project_id, value, f"2026-10-{12 + index}")["id"] for index, value in enumerate(hours)]

    for timesheet_id in ids:
        response = client.post(f"/api/v1/timesheets/{timesheet_id}/approve", json={}, headers=LEAD)
        assert response.status_code == 200

    ledger = _ledger(client, project_id)
    assert ledger["used_hours"] == "18.75"
    assert ledger["remaining_hours"] == "21.25"
    assert ledger["progress_percentage"] == 47


def test_timesheet_rejection_needs_reason_and_leaves_ledger(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    timesheet_id = _submit_timesheet(client, project_id, "4")["id"]

    missing = client.post(f"/api/v1/timesheets/{timesheet_id}/reject", json={"notes": "no"}, headers=LEAD)
    assert missing.status_code == 422
    assert missing.json()["error"]["details"]["fields"] == ["reason"]

    rejected = client.post(
        f"/api/v1/timesheets/{timesheet_id}/reject", json={"reason": "Booked to wrong project"}, headers=LEAD
    )
    assert rejected.status_code == 200
    assert rejected.json()["data"]["review_notes"] == "Booked to wrong project"
    assert _ledger(client, project_id)["used_hours"] == "0.00"


def test_designer_cannot_approve_own_timesheet(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    timesheet_id = _submit_timesheet(client, project_id, "4")["id"]

    response = client.post(f"/api/v1/timesheets/{timesheet_id}/approve", json={}, headers=DESIGNER)

    assert response.status_code == 403
    assert response.json()["error"] == {"kind": "forbidden", "message": "Access denied."}


def test_unassigned_designer_cannot_log_time(client: TestClient) -> None:
    project_id = create_project(client)["id"]

    response = client.post(
        "/api/v1/timesheets",
        json={"project_id": project_id, "work_date": "2026-10-12", "hours": "2"},
        headers=DESIGNER,
    )

    assert response.status_code == 403


def test_timesheet_hours_are_bounded(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)

    response = client.post(
        "/api/v1/timesheets",
        json={"project_id": project_id, "work_date": "2026-10-12", "hours": "25"},
        headers=DESIGNER,
    )

    assert response.status_code == 422
    assert response.json()["error"]["details"]["fields"] == ["hours"]


def test_timesheet_summary_and_visibility(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    first = _submit_timesheet(client, project_id, "5")
    _submit_timesheet(client, project_id, "3", "2026-10-13")
    client.post(f"/api/v1/timesheets/{first['id']}/approve", json={}, headers=COO)

    summary = client.get("/api/v1/timesheets/summary", params={"project_id": project_id}, headers=LEAD)
    assert summary.status_code == 200
    data = summary.json()["data"]
    assert data["count"] == 2
    assert data["total_hours"] == "8.00"
    assert data["by_status"] == {"pending": "3.00", "approved": "5.00", "rejected": "0.00"}

    other = client.get("/api/v1/timesheets", params={"user_uid": "designer-1"}, headers=LEAD)
    assert other.status_code == 403
    own = client.get("/api/v1/timesheets", headers=DESIGNER)
    assert len(own.json()["data"]) == 2


def test_approved_timesheet_cannot_be_edited(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    timesheet_id = _submit_timesheet(client, project_id, "5")["id"]
    client.post(f"/api/v1/timesheets/{timesheet_id}/approve", json={}, headers=COO)

    response = client.patch(f"/api/v1/timesheets/{timesheet_id}", json={"hours": "6"}, headers=DESIGNER)

    assert response.status_code == 409


def test_project_lifecycle(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)

    held = client.post(f"/api/v1/projects/{project_id}/status", json={"action": "hold"}, headers=LEAD)
    assert held.status_code == 200
    assert held.json()["data"]["status"] == "on_hold"

    blocked = client.post(
        "/api/v1/timesheets",
        json={"project_id": project_id, "work_date": "2026-10-12", "hours": "2"},
        headers=DESIGNER,
    )
    assert blocked.status_code == 409

    cancel = client.post(f"/api/v1/projects/{project_id}/status", json={"action": "cancel"}, headers=LEAD)
    assert cancel.status_code == 403

    completed = client.post(f"/api/v1/projects/{project_id}/status", json={"action": "complete"}, headers=COO)
    assert completed.status_code == 200
    assert completed.json()["data"]["completed_at"] is not None

    again = client.post(f"/api/v1/projects/{project_id}/status", json={"action": "resume"}, headers=COO)
    assert again.status_code == 409


def test_project_listing_by_role(client: TestClient) -> None:
    first = create_project(client, project_code="PRJ-A")["id"]
    create_project(client, project_code="PRJ-B")
    staff_project(client, first)

    assert len(client.get("/api/v1/projects", headers=COO).json()["data"]) == 2
    led = client.get("/api/v1/projects", headers=LEAD).json()["data"]
    assert [item["project_code"] for item in led] == ["PRJ-A"]
    assigned = client.get("/api/v1/projects", headers=DESIGNER).json()["data"]
    assert [item["project_code"] for item in assigned] == ["PRJ-A"]


def test_design_lead_must_be_design_manager(client: TestClient, sender: RecordingSender) -> None:
    project_id = create_project(client)["id"]
    client.get("/api/v1/me", headers=DESIGNER)

    response = client.post(f"/api/v1/projects/{project_id}/design-lead", json={"lead_uid": "designer-1"}, headers=COO)

    assert response.status_code == 422
    assert response.json()["error"]["details"]["fields"] == ["lead_uid"]
    staff_project(client, project_id)
    assert sender.templates().count("projectAllocated") == 1
    assert sender.templates().count("designerAssigned") == 1


def test_duplicate_project_code_conflicts(client: TestClient) -> None:
    create_project(client, project_code="PRJ-DUP")

    response = client.post(
        "/api/v1/projects",
        json={"project_name": "Again", "client_company": "Co", "allocated_hours": "5", "project_code": "prj-dup"},
        headers=COO,
    )

    assert response.status_code == 409
    assert response.json()["error"]["kind"] == "conflict"


def test_project_with_children_cannot_be_deleted(client: TestClient) -> None:
    project_id = create_project(client)["id"]
    staff_project(client, project_id)
    _submit_timesheet(client, project_id, "1")

    assert client.delete(f"/api/v1/projects/{project_id}", headers=COO).status_code == 409

    empty_id = create_project(client, project_code="PRJ-EMPTY")["id"]
    assert client.delete(f"/api/v1/projects/{empty_id}", headers=COO).status_code == 204
    assert client.get(f"/api/v1/projects/{empty_id}", headers=COO).status_code == 404
