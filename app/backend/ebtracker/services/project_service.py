"""Project setup, staffing, lifecycle and ledger reads."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from ebtracker.core.auth import RequestUserContext
from ebtracker.core.errors import Conflict, InvalidStateTransition, ValidationError
from ebtracker.models.entities import Project, ProjectStatus, Proposal, ReviewStatus, Role
from ebtracker.policy.effects import notify
from ebtracker.policy.oracle import Entity, can_perform
from ebtracker.services.base import EntityService, iso, provided_fields, q2

OPEN_STATUSES = {ProjectStatus.ACTIVE, ProjectStatus.ON_HOLD}


@dataclass(slots=True)
class ProjectCreateData:
    project_name: str
    client_company: str
    allocated_hours: Decimal
    project_code: str | None = None
    client_email: str | None = None
    proposal_id: UUID | None = None
    quote_value: Decimal = Decimal("0")
    currency: str = "USD"
    deadline: date | None = None
    description: str | None = None


@dataclass(slots=True)
class ProjectUpdateData:
    project_name: str | None = None
    client_company: str | None = None
    client_email: str | None = None
    quote_value: Decimal | None = None
    currency: str | None = None
    deadline: date | None = None
    description: str | None = None


def _generated_code(now: datetime) -> str:
    return f"PROJ-{int(now.timestamp() * 1000)}"


class ProjectService(EntityService):
    entity = Entity.PROJECT

    # ---------- Setup ----------
    def create_project(self, *, context: RequestUserContext, data: ProjectCreateData) -> Project:
        self._authorize(context, "create")
        if data.allocated_hours <= 0:
            raise ValidationError("Allocated hours must be greater than zero.", fields=["allocated_hours"])

        now = datetime.utcnow()
        project_code = (data.project_code or _generated_code(now)).strip().upper()
        if self.repository.get_project_by_code(project_code) is not None:
            raise Conflict(f"Project code {project_code} is already in use.")

        if data.proposal_id is not None:
            proposal = self._get_or_404(Proposal, data.proposal_id, "Proposal")
            if proposal.status != ReviewStatus.APPROVED:
                raise ValidationError("Projects can only be created from approved proposals.", fields=["proposal_id"])

        allocated = q2(data.allocated_hours)
        project = Project(
            project_name=data.project_name.strip(),
            project_code=project_code,
            client_company=data.client_company.strip(),
            client_email=data.client_email,
            proposal_id=data.proposal_id,
            quote_value=q2(data.quote_value),
            currency=data.currency.upper(),
            allocated_hours=allocated,
            used_hours=Decimal("0.00"),
            remaining_hours=allocated,
            progress_percentage=0,
            total_received=Decimal("0.00"),
            status=ProjectStatus.ACTIVE,
            assigned_designer_uids=[],
            deadline=data.deadline,
            description=data.description,
            created_by_uid=context.uid,
            created_by_name=context.name,
            created_at=now,
            updated_at=now,
        )
        self.repository.add(project)
        self._log_activity(
            context,
            "project_created",
            f"Project {project.project_code} created with {allocated}h allocated",
            record_id=project.id,
            project_id=project.id,
        )
        return self._commit(project)

    def list_projects(self, *, context: RequestUserContext, status: ProjectStatus | None = None) -> list[Project]:
        if can_perform(context, self.entity, "list_all"):
            return list(self.repository.list_projects(status=status))
        if context.role == Role.DESIGN_MANAGER:
            return list(self.repository.list_projects(lead_uid=context.uid, status=status))
        if context.role == Role.DESIGNER:
            return list(self.repository.list_projects(designer_uid=context.uid, status=status))
        return []

    def get_project(self, *, context: RequestUserContext, project_id: UUID) -> Project:
        project = self._project_or_404(project_id)
        self._authorize(context, "read", project)
        return project

    def update_project(self, *, context: RequestUserContext, project_id: UUID, data: ProjectUpdateData) -> Project:
        project = self._project_or_404(project_id)
        self._authorize(context, "update", project)

        changes = provided_fields(data)
        if "quote_value" in changes:
            changes["quote_value"] = q2(changes["quote_value"])
        if "currency" in changes:
            changes["currency"] = changes["currency"].upper()
        for key, value in changes.items():
            setattr(project, key, value)
        project.updated_at = datetime.utcnow()
        return self._commit(project)

    def delete_project(self, *, context: RequestUserContext, project_id: UUID) -> None:
        project = self._project_or_404(project_id)
        self._authorize(context, "delete", project)
        if self.repository.project_has_children(project.id):
            raise Conflict("Project still has timesheets, invoices or other dependent records.")
        self.repository.delete(project)
        self.db.commit()

    # ---------- Staffing ----------
    def assign_design_lead(self, *, context: RequestUserContext, project_id: UUID, lead_uid: str) -> Project:
        project = self._project_or_404(project_id)
        self._authorize(context, "assign_lead", project)
        self._ensure_open(project, "assign_lead")

        lead = self.repository.get_user_by_uid(lead_uid)
        if lead is None or not lead.active or lead.role != Role.DESIGN_MANAGER:
            raise ValidationError("Design lead must be an active design manager.", fields=["lead_uid"])

        project.design_lead_uid = lead.uid
        project.design_lead_name = lead.name
        project.updated_at = datetime.utcnow()
        self._log_activity(
            context,
            "project_lead_assigned",
            f"{lead.name} assigned as design lead of {project.project_code}",
            record_id=project.id,
            project_id=project.id,
        )
        outbox_ids = self._queue(
            notify(
                "projectAllocated",
                [lead.email],
                idempotency_key=f"project:{project.id}:assign_lead:{lead.uid}",
                data={"project_name": project.project_name, "project_code": project.project_code},
            )
        )
        return self._commit(project, outbox_ids=outbox_ids)

    def assign_designers(
        self, *, context: RequestUserContext, project_id: UUID, designer_uids: list[str]
    ) -> Project:
        project = self._project_or_404(project_id)
        self._authorize(context, "assign_designers", project)
        self._ensure_open(project, "assign_designers")
        if not designer_uids:
            raise ValidationError("At least one designer is required.", fields=["designer_uids"])

        designers = []
        invalid: list[str] = []
        for uid in dict.fromkeys(designer_uids):
            user = self.repository.get_user_by_uid(uid)
            if user is None or not user.active or user.role != Role.DESIGNER:
                invalid.append(uid)
            else:
                designers.append(user)
        if invalid:
            raise ValidationError(
                f"Only active designers can be assigned: {', '.join(invalid)}.", fields=["designer_uids"]
            )

        current = list(project.assigned_designer_uids or [])
        added = [user for user in designers if user.uid not in current]
        # Reassign the list so the JSON column is marked dirty.
        project.assigned_designer_uids = current + [user.uid for user in added]
        project.updated_at = datetime.utcnow()

        outbox_ids: list[UUID] = []
        for user in added:
            self._log_activity(
                context,
                "project_designer_assigned",
                f"{user.name} assigned to {project.project_code}",
                record_id=project.id,
                project_id=project.id,
            )
            outbox_ids += self._queue(
                notify(
                    "designerAssigned",
                    [user.email],
                    idempotency_key=f"project:{project.id}:assign_designer:{user.uid}",
                    data={"project_name": project.project_name, "project_code": project.project_code},
                )
            )
        return self._commit(project, outbox_ids=outbox_ids)

    # ---------- Lifecycle ----------
    def change_status(
        self, *, context: RequestUserContext, project_id: UUID, action: str, notes: str | None = None
    ) -> Project:
        project = self._project_or_404(project_id)
        self.engine.apply(self.entity, project, action, {"notes": notes}, context=context, project=project)
        return self._project_or_404(project_id)

    def get_ledger(self, *, context: RequestUserContext, project_id: UUID) -> Project:
        project = self._project_or_404(project_id)
        self._authorize(context, "read", project)
        return project

    def _ensure_open(self, project: Project, action: str) -> None:
        if project.status not in OPEN_STATUSES:
            raise InvalidStateTransition(entity=self.entity.value, current_status=project.status.value, action=action)

    @staticmethod
    def serialize_ledger(project: Project) -> dict[str, Any]:
        return {
            "project_id": str(project.id),
            "allocated_hours": str(project.allocated_hours),
            "used_hours": str(project.used_hours),
            "remaining_hours": str(project.remaining_hours),
            "progress_percentage": project.progress_percentage,
            "total_received": str(project.total_received),
            "currency": project.currency,
        }

    @staticmethod
    def serialize_project(project: Project) -> dict[str, Any]:
        return {
            "id": str(project.id),
            "project_name": project.project_name,
            "project_code": project.project_code,
            "client_company": project.client_company,
            "client_email": project.client_email,
            "proposal_id": str(project.proposal_id) if project.proposal_id else None,
            "quote_value": str(project.quote_value),
            "currency": project.currency,
            "status": project.status.value,
            "design_lead_uid": project.design_lead_uid,
            "design_lead_name": project.design_lead_name,
            "assigned_designer_uids": list(project.assigned_designer_uids or []),
            "deadline": iso(project.deadline),
            "description": project.description,
            "created_by_uid": project.created_by_uid,
            "created_by_name": project.created_by_name,
            "completed_at": iso(project.completed_at),
            "created_at": iso(project.created_at),
            "updated_at": iso(project.updated_at),
            "ledger": ProjectService.serialize_ledger(project),
        }
