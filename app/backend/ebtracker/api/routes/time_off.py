"""Time-off request endpoints."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ebtracker.api.payloads import ReviewPayload
from ebtracker.core.auth import RequestUserContext, get_current_user_context
from ebtracker.core.errors import success_response
from ebtracker.db.dependencies import get_db_session
from ebtracker.integrations.email import NotificationSender, get_notification_sender
from ebtracker.models.entities import LeaveType, ReviewStatus
from ebtracker.services.time_off_service import TimeOffCreateData, TimeOffService, TimeOffUpdateData

router = APIRouter(prefix="/time-requests", tags=["time-requests"])


class TimeOffCreatePayload(BaseModel):
    start_date: date
    end_date: date
    leave_type: LeaveType
    reason: str | None = Field(default=None, max_length=2000)


class TimeOffUpdatePayload(BaseModel):
    start_date: date | None = None
    end_date: date | None = None
    leave_type: LeaveType | None = None
    reason: str | None = Field(default=None, max_length=2000)


def _service(
    db: Session = Depends(get_db_session),
    sender: NotificationSender = Depends(get_notification_sender),
) -> TimeOffService:
    return TimeOffService(db, sender=sender)


@router.get("")
def list_time_requests(
    user_uid: str | None = None,
    status_filter: ReviewStatus | None = Query(default=None, alias="status"),
    context: RequestUserContext = Depends(get_current_user_context),
    service: TimeOffService = Depends(_service),
) -> dict[str, object]:
    rows = service.list_requests(context=context, status=status_filter, user_uid=user_uid)
    return success_response([service.serialize_request(request) for request in rows])


@router.post("", status_code=status.HTTP_201_CREATED)
def submit_time_request(
    payload: TimeOffCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: TimeOffService = Depends(_service),
) -> dict[str, object]:
    request = service.submit_request(
        context=context,
        data=TimeOffCreateData(
            start_date=payload.start_date,
            end_date=payload.end_date,
            leave_type=payload.leave_type,
            reason=payload.reason,
        ),
    )
    return success_response(service.serialize_request(request), message="Time-off request submitted.")


@router.get("/{request_id}")
def get_time_request(
    request_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: TimeOffService = Depends(_service),
) -> dict[str, object]:
    request = service.get_request(context=context, request_id=request_id)
    return success_response(service.serialize_request(request))


@router.patch("/{request_id}")
def update_time_request(
    request_id: UUID,
    payload: TimeOffUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: TimeOffService = Depends(_service),
) -> dict[str, object]:
    request = service.update_request(
        context=context,
        request_id=request_id,
        data=TimeOffUpdateData(
            start_date=payload.start_date,
            end_date=payload.end_date,
            leave_type=payload.leave_type,
            reason=payload.reason,
        ),
    )
    return success_response(service.serialize_request(request))


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_time_request(
    request_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: TimeOffService = Depends(_service),
) -> Response:
    service.delete_request(context=context, request_id=request_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{request_id}/approve")
def approve_time_request(
    request_id: UUID,
    payload: ReviewPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: TimeOffService = Depends(_service),
) -> dict[str, object]:
    request = service.review_request(
        context=context, request_id=request_id, action="approve", payload=payload.transition_values()
    )
    return success_response(service.serialize_request(request), message="Time-off request approved.")


@router.post("/{request_id}/reject")
def reject_time_request(
    request_id: UUID,
    payload: ReviewPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: TimeOffService = Depends(_service),
) -> dict[str, object]:
    request = service.review_request(
        context=context, request_id=request_id, action="reject", payload=payload.transition_values()
    )
    return success_response(service.serialize_request(request), message="Time-off request rejected.")
