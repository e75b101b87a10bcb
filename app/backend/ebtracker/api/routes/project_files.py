"""Project file endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import Base64Bytes, BaseModel, Field
from sqlalchemy.orm import Session

from ebtracker.core.auth import RequestUserContext, get_current_user_context
from ebtracker.core.errors import success_response
from ebtracker.db.dependencies import get_db_session
from ebtracker.integrations.email import NotificationSender, get_notification_sender
from ebtracker.integrations.storage import ObjectStorage, get_object_storage
from ebtracker.services.project_file_service import ProjectFileService, ProjectFileUploadData

router = APIRouter(prefix="/project-files", tags=["project-files"])


class ProjectFileUploadPayload(BaseModel):
    project_id: UUID
    file_name: str = Field(min_length=1, max_length=255)
    mime_type: str = Field(default="application/octet-stream", max_length=128)
    content_base64: Base64Bytes
    category: str | None = Field(default=None, max_length=64)
    description: str | None = Field(default=None, max_length=5000)


def _service(
    db: Session = Depends(get_db_session),
    sender: NotificationSender = Depends(get_notification_sender),
    storage: ObjectStorage = Depends(get_object_storage),
) -> ProjectFileService:
    return ProjectFileService(db, sender=sender, storage=storage)


@router.get("")
def list_project_files(
    project_id: UUID | None = None,
    category: str | None = None,
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProjectFileService = Depends(_service),
) -> dict[str, object]:
    rows = service.list_files(context=context, project_id=project_id, category=category)
    return success_response([service.serialize_file(row, service.storage) for row in rows])


@router.post("", status_code=status.HTTP_201_CREATED)
def upload_project_file(
    payload: ProjectFileUploadPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProjectFileService = Depends(_service),
) -> dict[str, object]:
    record = service.upload_file(
        context=context,
        data=ProjectFileUploadData(
            project_id=payload.project_id,
            file_name=payload.file_name,
            mime_type=payload.mime_type,
            content=payload.content_base64,
            category=payload.category,
            description=payload.description,
        ),
    )
    return success_response(service.serialize_file(record, service.storage), message="File uploaded.")


@router.get("/{file_id}")
def get_project_file(
    file_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProjectFileService = Depends(_service),
) -> dict[str, object]:
    record = service.get_file(context=context, file_id=file_id)
    return success_response(service.serialize_file(record, service.storage))


@router.get("/{file_id}/download")
def download_project_file(
    file_id: UUID,
    expires_in: int | None = Query(default=None, ge=60, le=86400),
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProjectFileService = Depends(_service),
) -> dict[str, object]:
    return success_response(service.download_link(context=context, file_id=file_id, expires_in=expires_in))


@router.delete("/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project_file(
    file_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProjectFileService = Depends(_service),
) -> Response:
    service.delete_file(context=context, file_id=file_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
