"""Documents attached to a project, kept in object storage."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ebtracker.core.auth import RequestUserContext
from ebtracker.core.config import Settings
from ebtracker.core.errors import DependencyFailure, NotFound, ValidationError
from ebtracker.integrations.email import NotificationSender
from ebtracker.integrations.storage import ObjectStorage, get_object_storage
from ebtracker.models.entities import ProjectFile
from ebtracker.policy.oracle import Entity
from ebtracker.services.base import EntityService, iso

logger = logging.getLogger(__name__)

MAX_FILE_BYTES = 100 * 1024 * 1024
DEFAULT_CATEGORY = "general"


@dataclass(slots=True)
class ProjectFileUploadData:
    project_id: UUID
    file_name: str
    mime_type: str
    content: bytes
    category: str | None = None
    description: str | None = None


class ProjectFileService(EntityService):
    entity = Entity.PROJECT_FILE

    def __init__(
        self,
        db: Session,
        *,
        sender: NotificationSender | None = None,
        settings: Settings | None = None,
        storage: ObjectStorage | None = None,
    ) -> None:
        super().__init__(db, sender=sender, settings=settings)
        self.storage = storage or get_object_storage()

    def upload_file(self, *, context: RequestUserContext, data: ProjectFileUploadData) -> ProjectFile:
        """Store the content, then record it against the project.

        The stored object is removed again if the record cannot be committed.
        """

        project = self._project_or_404(data.project_id)
        self._authorize(context, "create", project=project)
        if not data.content:
            raise ValidationError("File is empty.", fields=["content_base64"])
        if len(data.content) > MAX_FILE_BYTES:
            raise ValidationError("File exceeds the 100 MB limit.", fields=["content_base64"])

        category = (data.category or "").strip() or DEFAULT_CATEGORY
        try:
            key = self.storage.upload(
                data.content, data.file_name, data.mime_type, f"projects/{project.id}/{category}"
            )
        except OSError as exc:
            raise DependencyFailure("object storage", cause=exc) from exc

        now = datetime.utcnow()
        record = ProjectFile(
            project_id=project.id,
            file_name=data.file_name.strip(),
            size=len(data.content),
            mime_type=data.mime_type,
            category=category,
            description=data.description,
            storage_key=key,
            uploaded_by_uid=context.uid,
            uploaded_by_name=context.name,
            uploaded_by_role=context.role.value,
            created_at=now,
            updated_at=now,
        )
        try:
            self.repository.add(record)
            self._log_activity(
                context,
                "file_uploaded",
                f"File '{record.file_name}' uploaded to {project.project_code}",
                record_id=record.id,
                project_id=project.id,
            )
            return self._commit(record)
        except Exception:
            self._discard(key)
            raise

    def list_files(
        self, *, context: RequestUserContext, project_id: UUID | None = None, category: str | None = None
    ) -> list[ProjectFile]:
        if project_id is None:
            self._authorize(context, "list_all")
        else:
            self._authorize(context, "list_project", project=self._project_or_404(project_id))
        return list(self.repository.list_project_files(project_id=project_id, category=category))

    def get_file(self, *, context: RequestUserContext, file_id: UUID) -> ProjectFile:
        record = self._live_or_404(file_id)
        self._authorize(context, "read", record, project=self._project_or_404(record.project_id))
        return record

    def download_link(
        self, *, context: RequestUserContext, file_id: UUID, expires_in: int | None = None
    ) -> dict[str, Any]:
        record = self.get_file(context=context, file_id=file_id)
        ttl = expires_in or self.settings.storage_url_ttl_seconds
        try:
            url = self.storage.signed_url(record.storage_key, ttl)
        except OSError as exc:
            raise DependencyFailure("object storage", cause=exc) from exc

        self._log_activity(
            context,
            "file_downloaded",
            f"File '{record.file_name}' downloaded by {context.name}",
            record_id=record.id,
            project_id=record.project_id,
        )
        self._commit(record)
        return {"file_name": record.file_name, "url": url, "expires_in": ttl}

    def delete_file(self, *, context: RequestUserContext, file_id: UUID) -> None:
        record = self._live_or_404(file_id)
        self._authorize(context, "delete", record)
        try:
            self.storage.delete(record.storage_key)
        except OSError as exc:
            raise DependencyFailure("object storage", cause=exc) from exc

        now = datetime.utcnow()
        record.deleted_at = now
        record.deleted_by_uid = context.uid
        record.updated_at = now
        self._log_activity(
            context,
            "file_deleted",
            f"File '{record.file_name}' deleted",
            record_id=record.id,
            project_id=record.project_id,
        )
        self._commit(record)

    def _live_or_404(self, file_id: UUID) -> ProjectFile:
        record = self.repository.get(ProjectFile, file_id)
        if record is None or record.deleted_at is not None:
            raise NotFound("File not found.")
        return record

    def _discard(self, key: str) -> None:
        try:
            self.storage.delete(key)
        except OSError:
            logger.warning("Could not delete stored file %s", key, exc_info=True)

    @staticmethod
    def serialize_file(record: ProjectFile, storage: ObjectStorage | None = None) -> dict[str, Any]:
        payload = {
            "id": str(record.id),
            "project_id": str(record.project_id),
            "file_name": record.file_name,
            "size": record.size,
            "mime_type": record.mime_type,
            "category": record.category,
            "description": record.description,
            "storage_key": record.storage_key,
            "uploaded_by_uid": record.uploaded_by_uid,
            "uploaded_by_name": record.uploaded_by_name,
            "uploaded_by_role": record.uploaded_by_role,
            "created_at": iso(record.created_at),
            "updated_at": iso(record.updated_at),
        }
        if storage is not None:
            payload["url"] = storage.signed_url(record.storage_key)
        return payload
