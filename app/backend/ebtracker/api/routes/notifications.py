"""In-app notification inbox endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ebtracker.core.auth import RequestUserContext, get_current_user_context
from ebtracker.core.errors import success_response
from ebtracker.db.dependencies import get_db_session
from ebtracker.integrations.email import NotificationSender, get_notification_sender
from ebtracker.models.entities import NotificationKind
from ebtracker.services.activity_service import InboxNotificationCreateData, NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationCreatePayload(BaseModel):
    user_uid: str = Field(min_length=1, max_length=128)
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1, max_length=5000)
    kind: NotificationKind = NotificationKind.INFO
    link: str | None = Field(default=None, max_length=512)


def _service(
    db: Session = Depends(get_db_session),
    sender: NotificationSender = Depends(get_notification_sender),
) -> NotificationService:
    return NotificationService(db, sender=sender)


@router.get("")
def list_notifications(
    read: bool | None = None,
    limit: int | None = Query(default=None, ge=1),
    context: RequestUserContext = Depends(get_current_user_context),
    service: NotificationService = Depends(_service),
) -> dict[str, object]:
    rows = service.list_inbox(context=context, read=read, limit=limit)
    return success_response([service.serialize_notification(row) for row in rows])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_notification(
    payload: NotificationCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: NotificationService = Depends(_service),
) -> dict[str, object]:
    notification = service.create_notification(
        context=context,
        data=InboxNotificationCreateData(
            user_uid=payload.user_uid,
            title=payload.title,
            message=payload.message,
            kind=payload.kind,
            link=payload.link,
        ),
    )
    return success_response(service.serialize_notification(notification), message="Notification created.")


@router.get("/unread")
def count_unread(
    context: RequestUserContext = Depends(get_current_user_context),
    service: NotificationService = Depends(_service),
) -> dict[str, object]:
    return success_response({"count": service.unread_count(context=context)})


@router.put("/read-all")
def mark_all_read(
    context: RequestUserContext = Depends(get_current_user_context),
    service: NotificationService = Depends(_service),
) -> dict[str, object]:
    updated = service.mark_all_read(context=context)
    return success_response({"updated": updated}, message=f"{updated} notification(s) marked as read.")


@router.delete("/delete-all")
def delete_read_notifications(
    context: RequestUserContext = Depends(get_current_user_context),
    service: NotificationService = Depends(_service),
) -> dict[str, object]:
    deleted = service.delete_read(context=context)
    return success_response({"deleted": deleted}, message=f"{deleted} read notification(s) deleted.")


@router.put("/{notification_id}/read")
def mark_read(
    notification_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: NotificationService = Depends(_service),
) -> dict[str, object]:
    notification = service.mark_read(context=context, notification_id=notification_id)
    return success_response(service.serialize_notification(notification))


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: NotificationService = Depends(_service),
) -> Response:
    service.delete_notification(context=context, notification_id=notification_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
