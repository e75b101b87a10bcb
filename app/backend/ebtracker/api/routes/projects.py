"""Project setup, staffing, lifecycle and ledger endpoints."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ebtracker.core.auth import RequestUserContext, get_current_user_context
from ebtracker.core.errors import success_response
from ebtracker.db.dependencies import get_db_session
from ebtracker.integrations.email import NotificationSender, get_notification_sender
from ebtracker.models.entities import ProjectStatus
from ebtracker.services.project_service import ProjectCreateData, ProjectService, ProjectUpdateData

router = APIRouter(prefix="/projects", tags=["projects"])


class ProjectCreatePayload(BaseModel):
    project_name: str = Field(min_length=1, max_length=255)
    client_company: str = Field(min_length=1, max_length=255)
    allocated_hours: Decimal = Field(gt=0)
    project_code: str | None = Field(default=None, min_length=1, max_length=64)
    client_email: str | None = Field(default=None, max_length=320)
    proposal_id: UUID | None = None
    quote_value: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    deadline: date | None = None
    description: str | None = Field(default=None, max_length=5000)


class ProjectUpdatePayload(BaseModel):
    project_name: str | None = Field(default=None, min_length=1, max_length=255)
    client_company: str | None = Field(default=None, min_length=1, max_length=255)
    client_email: str | None = Field(default=None, max_length=320)
    quote_value: Decimal | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    deadline: date | None = None
    description: str | None = Field(default=None, max_length=5000)


class DesignLeadPayload(BaseModel):
    lead_uid: str = Field(min_length=1, max_length=128)


class DesignersPayload(BaseModel):
    designer_uids: list[str] = Field(min_length=1)


class ProjectStatusPayload(BaseModel):
    action: Literal["hold", "resume", "complete", "cancel"]
    notes: str | None = Field(default=None, max_length=2000)


def _service(
    db: Session = Depends(get_db_session),
    sender: NotificationSender = Depends(get_notification_sender),
) -> ProjectService:
    return ProjectService(db, sender=sender)


@router.get("")
def list_projects(
    status_filter: ProjectStatus | None = Query(default=None, alias="status"),
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProjectService = Depends(_service),
) -> dict[str, object]:
    rows = service.list_projects(context=context, status=status_filter)
    return success_response([service.serialize_project(project) for project in rows])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProjectService = Depends(_service),
) -> dict[str, object]:
    project = service.create_project(
        context=context,
        data=ProjectCreateData(
            project_name=payload.project_name,
            client_company=payload.client_company,
            allocated_hours=payload.allocated_hours,
            project_code=payload.project_code,
            client_email=payload.client_email,
            proposal_id=payload.proposal_id,
            quote_value=payload.quote_value,
            currency=payload.currency,
            deadline=payload.deadline,
            description=payload.description,
        ),
    )
    return success_response(service.serialize_project(project), message="Project created.")


@router.get("/{project_id}")
def get_project(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProjectService = Depends(_service),
) -> dict[str, object]:
    project = service.get_project(context=context, project_id=project_id)
    return success_response(service.serialize_project(project))


@router.patch("/{project_id}")
def update_project(
    project_id: UUID,
    payload: ProjectUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProjectService = Depends(_service),
) -> dict[str, object]:
    project = service.update_project(
        context=context,
        project_id=project_id,
        data=ProjectUpdateData(
            project_name=payload.project_name,
            client_company=payload.client_company,
            client_email=payload.client_email,
            quote_value=payload.quote_value,
            currency=payload.currency,
            deadline=payload.deadline,
            description=payload.description,
        ),
    )
    return success_response(service.serialize_project(project))


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProjectService = Depends(_service),
) -> Response:
    service.delete_project(context=context, project_id=project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{project_id}/design-lead")
def assign_design_lead(
    project_id: UUID,
    payload: DesignLeadPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProjectService = Depends(_service),
) -> dict[str, object]:
    project = service.assign_design_lead(context=context, project_id=project_id, lead_uid=payload.lead_uid)
    return success_response(service.serialize_project(project), message="Design lead assigned.")


@router.post("/{project_id}/designers")
def assign_designers(
    project_id: UUID,
    payload: DesignersPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProjectService = Depends(_service),
) -> dict[str, object]:
    project = service.assign_designers(context=context, project_id=project_id, designer_uids=payload.designer_uids)
    return success_response(service.serialize_project(project), message="Designers assigned.")


@router.post("/{project_id}/status")
def change_project_status(
    project_id: UUID,
    payload: ProjectStatusPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProjectService = Depends(_service),
) -> dict[str, object]:
    project = service.change_status(context=context, project_id=project_id, action=payload.action, notes=payload.notes)
    return success_response(service.serialize_project(project), message=f"Project {project.status.value}.")


@router.get("/{project_id}/ledger")
def get_project_ledger(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProjectService = Depends(_service),
) -> dict[str, object]:
    project = service.get_ledger(context=context, project_id=project_id)
    return success_response(service.serialize_ledger(project))
