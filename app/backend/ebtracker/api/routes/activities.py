"""Activity feed and notification outbox endpoints."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ebtracker.core.auth import RequestUserContext, get_current_user_context
from ebtracker.core.errors import success_response
from ebtracker.db.dependencies import get_db_session
from ebtracker.integrations.email import NotificationSender, get_notification_sender
from ebtracker.services.activity_service import (
    ActivityCreateData,
    ActivityFilter,
    ActivityService,
    NotificationService,
)

router = APIRouter(tags=["activities"])


class ActivityCreatePayload(BaseModel):
    activity_type: str = Field(min_length=1, max_length=64)
    details: str = Field(min_length=1, max_length=5000)
    entity_type: str | None = Field(default=None, max_length=32)
    entity_id: str | None = Field(default=None, max_length=64)
    project_id: UUID | None = None


@router.get("/activities")
def list_activities(
    limit: int | None = None,
    project_id: UUID | None = None,
    entity_type: str | None = None,
    actor_uid: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = ActivityService(db)
    rows = service.list_activities(
        context=context,
        filters=ActivityFilter(
            limit=limit,
            project_id=project_id,
            entity_type=entity_type,
            actor_uid=actor_uid,
            since=since,
            until=until,
        ),
    )
    return success_response([service.serialize_activity(activity) for activity in rows])


@router.post("/activities", status_code=status.HTTP_201_CREATED)
def log_activity(
    payload: ActivityCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = ActivityService(db)
    activity = service.log_activity(
        context=context,
        data=ActivityCreateData(
            activity_type=payload.activity_type,
            details=payload.details,
            entity_type=payload.entity_type,
            entity_id=payload.entity_id,
            project_id=payload.project_id,
        ),
    )
    return success_response(service.serialize_activity(activity))


@router.post("/notifications/retry", tags=["notifications"])
def retry_notifications(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
    sender: NotificationSender = Depends(get_notification_sender),
) -> dict[str, object]:
    service = NotificationService(db, sender=sender)
    outcomes = service.retry_pending(context=context)
    return success_response(
        [service.serialize_outcome(outcome) for outcome in outcomes],
        message=f"{len(outcomes)} notification(s) retried.",
    )
