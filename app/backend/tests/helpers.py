"""Identity headers and setup helpers shared by the HTTP tests."""

from __future__ import annotations

from typing import Any

from fastapi.testclient import TestClient


class RecordingSender:
    """Notification sender that remembers what it was asked to send."""

    def __init__(self) -> None:
        self.sent: list[tuple[list[str], str, dict[str, Any]]] = []
        self.fail = False

    def send(self, recipients: list[str], template: str, data: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("SMTP server unavailable")
        self.sent.append((list(recipients), template, dict(data)))

    def templates(self) -> list[str]:
        return [template for _, template, _ in self.sent]


def auth_headers(
    uid: str = "coo-1",
    role: str = "coo",
    *,
    name: str | None = None,
    email: str | None = None,
) -> dict[str, str]:
    headers = {
        "X-User-Id": uid,
        "X-User-Role": role,
        "X-User-Name": name or uid.replace("-", " ").title(),
    }
    headers["X-User-Email"] = email or f"{uid}@test.local"
    return headers


COO = auth_headers("coo-1", "coo", name="Carol COO")
DIRECTOR = auth_headers("director-1", "director", name="Dan Director")
BDM = auth_headers("bdm-1", "bdm", name="Bea BDM")
LEAD = auth_headers("lead-1", "design_manager", name="Lee Lead")
DESIGNER = auth_headers("designer-1", "designer", name="Dee Designer")
ACCOUNTS = auth_headers("accounts-1", "accounts", name="Ann Accounts")


def create_project(client: TestClient, *, allocated_hours: str = "100", **overrides: Any) -> dict[str, Any]:
    body = {
        "project_name": "Harbour Bridge Retrofit",
        "client_company": "Harbour Authority",
        "client_email": "client@harbour.test",
        "allocated_hours": allocated_hours,
        "quote_value": "25000",
    }
    body.update(overrides)
    response = client.post("/api/v1/projects", json=body, headers=COO)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def staff_project(client: TestClient, project_id: str) -> None:
    """Register the lead and designer, then staff them on the project."""

    for headers in (LEAD, DESIGNER):
        assert client.get("/api/v1/me", headers=headers).status_code == 200

    response = client.post(f"/api/v1/projects/{project_id}/design-lead", json={"lead_uid": "lead-1"}, headers=COO)
    assert response.status_code == 200, response.text
    response = client.post(
        f"/api/v1/projects/{project_id}/designers", json={"designer_uids": ["designer-1"]}, headers=COO
    )
    assert response.status_code == 200, response.text
