"""Timesheet endpoints."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ebtracker.api.payloads import ReviewPayload
from ebtracker.core.auth import RequestUserContext, get_current_user_context
from ebtracker.core.errors import success_response
from ebtracker.db.dependencies import get_db_session
from ebtracker.integrations.email import NotificationSender, get_notification_sender
from ebtracker.models.entities import ReviewStatus
from ebtracker.services.timesheet_service import (
    TimesheetCreateData,
    TimesheetFilter,
    TimesheetService,
    TimesheetUpdateData,
)

router = APIRouter(prefix="/timesheets", tags=["timesheets"])


class TimesheetCreatePayload(BaseModel):
    project_id: UUID
    work_date: date
    hours: Decimal = Field(gt=0, le=24)
    description: str | None = Field(default=None, max_length=2000)
    task_type: str | None = Field(default=None, max_length=64)


class TimesheetUpdatePayload(BaseModel):
    work_date: date | None = None
    hours: Decimal | None = Field(default=None, gt=0, le=24)
    description: str | None = Field(default=None, max_length=2000)
    task_type: str | None = Field(default=None, max_length=64)


def _service(
    db: Session = Depends(get_db_session),
    sender: NotificationSender = Depends(get_notification_sender),
) -> TimesheetService:
    return TimesheetService(db, sender=sender)


def _filters(
    project_id: UUID | None = None,
    user_uid: str | None = None,
    status_filter: ReviewStatus | None = Query(default=None, alias="status"),
    date_from: date | None = None,
    date_to: date | None = None,
) -> TimesheetFilter:
    return TimesheetFilter(
        project_id=project_id,
        user_uid=user_uid,
        status=status_filter,
        date_from=date_from,
        date_to=date_to,
    )


@router.get("")
def list_timesheets(
    filters: TimesheetFilter = Depends(_filters),
    context: RequestUserContext = Depends(get_current_user_context),
    service: TimesheetService = Depends(_service),
) -> dict[str, object]:
    rows = service.list_timesheets(context=context, filters=filters)
    return success_response([service.serialize_timesheet(timesheet) for timesheet in rows])


@router.get("/summary")
def summarize_timesheets(
    filters: TimesheetFilter = Depends(_filters),
    context: RequestUserContext = Depends(get_current_user_context),
    service: TimesheetService = Depends(_service),
) -> dict[str, object]:
    return success_response(service.summarize(context=context, filters=filters))


@router.post("", status_code=status.HTTP_201_CREATED)
def submit_timesheet(
    payload: TimesheetCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: TimesheetService = Depends(_service),
) -> dict[str, object]:
    timesheet = service.submit_timesheet(
        context=context,
        data=TimesheetCreateData(
            project_id=payload.project_id,
            work_date=payload.work_date,
            hours=payload.hours,
            description=payload.description,
            task_type=payload.task_type,
        ),
    )
    return success_response(service.serialize_timesheet(timesheet), message="Timesheet submitted.")


@router.get("/{timesheet_id}")
def get_timesheet(
    timesheet_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: TimesheetService = Depends(_service),
) -> dict[str, object]:
    timesheet = service.get_timesheet(context=context, timesheet_id=timesheet_id)
    return success_response(service.serialize_timesheet(timesheet))


@router.patch("/{timesheet_id}")
def update_timesheet(
    timesheet_id: UUID,
    payload: TimesheetUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: TimesheetService = Depends(_service),
) -> dict[str, object]:
    timesheet = service.update_timesheet(
        context=context,
        timesheet_id=timesheet_id,
        data=TimesheetUpdateData(
            work_date=payload.work_date,
            hours=payload.hours,
            description=payload.description,
            task_type=payload.task_type,
        ),
    )
    return success_response(service.serialize_timesheet(timesheet))


@router.delete("/{timesheet_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_timesheet(
    timesheet_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: TimesheetService = Depends(_service),
) -> Response:
    service.delete_timesheet(context=context, timesheet_id=timesheet_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{timesheet_id}/approve")
def approve_timesheet(
    timesheet_id: UUID,
    payload: ReviewPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: TimesheetService = Depends(_service),
) -> dict[str, object]:
    timesheet = service.review_timesheet(
        context=context, timesheet_id=timesheet_id, action="approve", payload=payload.transition_values()
    )
    return success_response(service.serialize_timesheet(timesheet), message="Timesheet approved.")


@router.post("/{timesheet_id}/reject")
def reject_timesheet(
    timesheet_id: UUID,
    payload: ReviewPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: TimesheetService = Depends(_service),
) -> dict[str, object]:
    timesheet = service.review_timesheet(
        context=context, timesheet_id=timesheet_id, action="reject", payload=payload.transition_values()
    )
    return success_response(service.serialize_timesheet(timesheet), message="Timesheet rejected.")
