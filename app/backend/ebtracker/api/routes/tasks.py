"""Task endpoints."""

from __future__ import annotations

from datetime import date
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ebtracker.core.auth import RequestUserContext, get_current_user_context
from ebtracker.core.errors import success_response
from ebtracker.db.dependencies import get_db_session
from ebtracker.integrations.email import NotificationSender, get_notification_sender
from ebtracker.models.entities import TaskPriority, TaskStatus
from ebtracker.services.task_service import TaskCreateData, TaskService, TaskUpdateData

router = APIRouter(prefix="/tasks", tags=["tasks"])


class TaskCreatePayload(BaseModel):
    project_id: UUID
    title: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    assigned_to_uid: str | None = Field(default=None, max_length=128)
    due_date: date | None = None
    priority: TaskPriority = TaskPriority.MEDIUM


class TaskUpdatePayload(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    assigned_to_uid: str | None = Field(default=None, max_length=128)
    due_date: date | None = None
    priority: TaskPriority | None = None


class TaskTransitionPayload(BaseModel):
    action: Literal["start", "submit_for_review", "request_changes", "complete"]


def _service(
    db: Session = Depends(get_db_session),
    sender: NotificationSender = Depends(get_notification_sender),
) -> TaskService:
    return TaskService(db, sender=sender)


@router.get("")
def list_tasks(
    project_id: UUID | None = None,
    assigned_to_uid: str | None = None,
    status_filter: TaskStatus | None = Query(default=None, alias="status"),
    context: RequestUserContext = Depends(get_current_user_context),
    service: TaskService = Depends(_service),
) -> dict[str, object]:
    rows = service.list_tasks(
        context=context, project_id=project_id, assigned_to_uid=assigned_to_uid, status=status_filter
    )
    return success_response([service.serialize_task(task) for task in rows])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_task(
    payload: TaskCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: TaskService = Depends(_service),
) -> dict[str, object]:
    task = service.create_task(
        context=context,
        data=TaskCreateData(
            project_id=payload.project_id,
            title=payload.title,
            description=payload.description,
            assigned_to_uid=payload.assigned_to_uid,
            due_date=payload.due_date,
            priority=payload.priority,
        ),
    )
    return success_response(service.serialize_task(task), message="Task created.")


@router.get("/{task_id}")
def get_task(
    task_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: TaskService = Depends(_service),
) -> dict[str, object]:
    task = service.get_task(context=context, task_id=task_id)
    return success_response(service.serialize_task(task))


@router.patch("/{task_id}")
def update_task(
    task_id: UUID,
    payload: TaskUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: TaskService = Depends(_service),
) -> dict[str, object]:
    task = service.update_task(
        context=context,
        task_id=task_id,
        data=TaskUpdateData(
            title=payload.title,
            description=payload.description,
            assigned_to_uid=payload.assigned_to_uid,
            due_date=payload.due_date,
            priority=payload.priority,
        ),
    )
    return success_response(service.serialize_task(task))


@router.post("/{task_id}/transition")
def transition_task(
    task_id: UUID,
    payload: TaskTransitionPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: TaskService = Depends(_service),
) -> dict[str, object]:
    task = service.transition_task(context=context, task_id=task_id, action=payload.action)
    return success_response(service.serialize_task(task), message=f"Task {task.status.value}.")


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: TaskService = Depends(_service),
) -> Response:
    service.delete_task(context=context, task_id=task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
