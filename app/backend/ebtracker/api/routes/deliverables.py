"""Deliverable endpoints and signed file downloads."""

from __future__ import annotations

import mimetypes
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import Base64Bytes, BaseModel, Field
from sqlalchemy.orm import Session

from ebtracker.api.payloads import ReviewPayload
from ebtracker.core.auth import RequestUserContext, get_current_user_context
from ebtracker.core.errors import Forbidden, NotFound, success_response
from ebtracker.db.dependencies import get_db_session
from ebtracker.integrations.email import NotificationSender, get_notification_sender
from ebtracker.integrations.storage import ObjectStorage, get_object_storage
from ebtracker.services.deliverable_service import (
    DeliverableCreateData,
    DeliverableFileData,
    DeliverableService,
    DeliverableSubmitData,
)

router = APIRouter(prefix="/deliverables", tags=["deliverables"])
files_router = APIRouter(prefix="/files", tags=["files"])


class DeliverableCreatePayload(BaseModel):
    project_id: UUID
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    deliverable_type: str | None = Field(default=None, max_length=64)
    due_date: date | None = None


class DeliverableFilePayload(BaseModel):
    file_name: str = Field(min_length=1, max_length=255)
    mime_type: str = Field(default="application/octet-stream", max_length=128)
    content_base64: Base64Bytes


class DeliverableSubmitPayload(BaseModel):
    files: list[DeliverableFilePayload] = Field(default_factory=list)


def _service(
    db: Session = Depends(get_db_session),
    sender: NotificationSender = Depends(get_notification_sender),
    storage: ObjectStorage = Depends(get_object_storage),
) -> DeliverableService:
    return DeliverableService(db, sender=sender, storage=storage)


@router.get("")
def list_deliverables(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: DeliverableService = Depends(_service),
) -> dict[str, object]:
    rows = service.list_deliverables(context=context, project_id=project_id)
    return success_response([service.serialize_deliverable(row, service.storage) for row in rows])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_deliverable(
    payload: DeliverableCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: DeliverableService = Depends(_service),
) -> dict[str, object]:
    deliverable = service.create_deliverable(
        context=context,
        data=DeliverableCreateData(
            project_id=payload.project_id,
            name=payload.name,
            description=payload.description,
            deliverable_type=payload.deliverable_type,
            due_date=payload.due_date,
        ),
    )
    return success_response(service.serialize_deliverable(deliverable, service.storage), message="Deliverable created.")


@router.get("/{deliverable_id}")
def get_deliverable(
    deliverable_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: DeliverableService = Depends(_service),
) -> dict[str, object]:
    deliverable = service.get_deliverable(context=context, deliverable_id=deliverable_id)
    return success_response(service.serialize_deliverable(deliverable, service.storage))


@router.delete("/{deliverable_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_deliverable(
    deliverable_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: DeliverableService = Depends(_service),
) -> Response:
    service.delete_deliverable(context=context, deliverable_id=deliverable_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{deliverable_id}/submit")
def submit_deliverable(
    deliverable_id: UUID,
    payload: DeliverableSubmitPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: DeliverableService = Depends(_service),
) -> dict[str, object]:
    deliverable = service.submit_deliverable(
        context=context,
        deliverable_id=deliverable_id,
        data=DeliverableSubmitData(
            files=[
                DeliverableFileData(file_name=item.file_name, mime_type=item.mime_type, content=item.content_base64)
                for item in payload.files
            ]
        ),
    )
    return success_response(service.serialize_deliverable(deliverable, service.storage), message="Deliverable submitted.")


@router.post("/{deliverable_id}/approve")
def approve_deliverable(
    deliverable_id: UUID,
    payload: ReviewPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: DeliverableService = Depends(_service),
) -> dict[str, object]:
    deliverable = service.review_deliverable(
        context=context, deliverable_id=deliverable_id, action="approve", payload=payload.transition_values()
    )
    return success_response(service.serialize_deliverable(deliverable, service.storage), message="Deliverable approved.")


@router.post("/{deliverable_id}/reject")
def reject_deliverable(
    deliverable_id: UUID,
    payload: ReviewPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: DeliverableService = Depends(_service),
) -> dict[str, object]:
    deliverable = service.review_deliverable(
        context=context, deliverable_id=deliverable_id, action="reject", payload=payload.transition_values()
    )
    return success_response(service.serialize_deliverable(deliverable, service.storage), message="Deliverable rejected.")


@files_router.get("/{key:path}")
def download_file(
    key: str,
    expires: int,
    signature: str,
    storage: ObjectStorage = Depends(get_object_storage),
) -> Response:
    """Serve a stored object to the holder of a valid signed URL."""

    if not storage.verify(key, expires, signature):
        raise Forbidden()
    try:
        content = storage.read(key)
    except (FileNotFoundError, ValueError):
        raise NotFound("File not found.") from None
    media_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
    return Response(content=content, media_type=media_type)
