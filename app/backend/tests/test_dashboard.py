from __future__ import annotations

from datetime import date

import pytest
from fastapi.testclient import TestClient

from helpers import BDM, COO, DESIGNER, DIRECTOR, LEAD, create_project, staff_project


def _timesheet(client: TestClient, project_id: str, hours: str, work_date: str) -> dict:
    response = client.post(
        "/api/v1/timesheets",
        json={"project_id": project_id, "work_date": work_date, "hours": hours, "description": "Modelling"},
        headers=DESIGNER,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture()
def portfolio(client: TestClient) -> dict[str, str]:
    """One active staffed project with an approved and a pending timesheet, one project on hold."""

    active = create_project(client, allocated_hours="100")["id"]
    staff_project(client, active)
    held = create_project(client, allocated_hours="50", project_code="DASH-HOLD")["id"]
    response = client.post(f"/api/v1/projects/{held}/status", json={"action": "hold"}, headers=COO)
    assert response.status_code == 200, response.text

    approved = _timesheet(client, active, "10", date.today().isoformat())
    response = client.post(f"/api/v1/timesheets/{approved['id']}/approve", json={}, headers=COO)
    assert response.status_code == 200, response.text
    _timesheet(client, active, "4.5", "2024-01-15")
    return {"active": active, "held": held}


def test_company_stats(client: TestClient, portfolio: dict[str, str]) -> None:
    response = client.get("/api/v1/dashboard/stats", headers=DIRECTOR)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["projects"] == {"total": 2, "active": 1, "completed": 0, "on_hold": 1}
    assert data["proposals"] == {"total": 0, "pending": 0, "approved": 0, "rejected": 0}
    assert data["timesheets"] == {"total": 2, "pending": 1, "approved": 1, "total_hours": "10.00"}
    assert data["users"]["total"] == 4
    assert data["users"]["by_role"]["coo"] == 1
    assert data["users"]["by_role"]["director"] == 1
    assert data["users"]["by_role"]["design_manager"] == 1
    assert data["users"]["by_role"]["designer"] == 1
    assert data["users"]["by_role"]["bdm"] == 0


def test_projects_summary_is_open_to_every_role(client: TestClient, portfolio: dict[str, str]) -> None:
    response = client.get("/api/v1/dashboard/projects-summary", headers=BDM)

    assert response.status_code == 200
    assert response.json()["data"] == {
        "total_projects": 2,
        "by_status": {"active": 1, "on_hold": 1, "completed": 0, "cancelled": 0},
        "total_allocated_hours": "150.00",
        "total_used_hours": "10.00",
        "average_progress": 5,
    }


def test_projects_summary_without_projects(client: TestClient) -> None:
    data = client.get("/api/v1/dashboard/projects-summary", headers=DESIGNER).json()["data"]

    assert data["total_projects"] == 0
    assert data["total_allocated_hours"] == "0.00"
    assert data["average_progress"] == 0


def test_team_performance_counts_only_approved_hours(client: TestClient, portfolio: dict[str, str]) -> None:
    response = client.get("/api/v1/dashboard/team-performance", headers=COO)

    assert response.status_code == 200
    assert response.json()["data"] == [
        {"user_uid": "designer-1", "user_name": "Dee Designer", "total_hours": "10.00", "entries_count": 1}
    ]


@pytest.mark.parametrize("path", ["/api/v1/dashboard/stats", "/api/v1/dashboard/team-performance"])
def test_company_dashboards_are_admin_only(client: TestClient, path: str) -> None:
    for headers in (LEAD, DESIGNER, BDM):
        response = client.get(path, headers=headers)
        assert response.status_code == 403
        assert response.json()["success"] is False


def test_my_dashboard(client: TestClient, portfolio: dict[str, str]) -> None:
    data = client.get("/api/v1/dashboard/my-dashboard", headers=DESIGNER).json()["data"]

    assert data == {
        "projects": {"total": 1, "active": 1},
        "timesheets": {"this_month": 1, "pending": 1},
        "notifications": {"unread": 1},
    }

    created = client.post(
        "/api/v1/notifications",
        json={"user_uid": "designer-1", "title": "Site visit", "message": "Thursday 9am at the depot."},
        headers=COO,
    )
    assert created.status_code == 201, created.text

    lead = client.get("/api/v1/dashboard/my-dashboard", headers=LEAD).json()["data"]
    assert lead["projects"] == {"total": 1, "active": 1}
    assert lead["timesheets"] == {"this_month": 0, "pending": 0}
    designer = client.get("/api/v1/dashboard/my-dashboard", headers=DESIGNER).json()["data"]
    assert designer["notifications"] == {"unread": 2}
