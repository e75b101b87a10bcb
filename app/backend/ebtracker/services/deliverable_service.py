"""Project deliverables and their stored files."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ebtracker.core.auth import RequestUserContext
from ebtracker.core.config import Settings
from ebtracker.core.errors import DependencyFailure, InvalidStateTransition
from ebtracker.integrations.email import NotificationSender
from ebtracker.integrations.storage import ObjectStorage, get_object_storage
from ebtracker.models.entities import Deliverable, DeliverableStatus
from ebtracker.policy.machine import DELIVERABLE_TRANSITIONS
from ebtracker.policy.oracle import Entity, ensure_can_perform
from ebtracker.services.base import EntityService, iso

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DeliverableCreateData:
    project_id: UUID
    name: str
    description: str | None = None
    deliverable_type: str | None = None
    due_date: date | None = None


@dataclass(slots=True)
class DeliverableFileData:
    file_name: str
    mime_type: str
    content: bytes


@dataclass(slots=True)
class DeliverableSubmitData:
    files: list[DeliverableFileData] = field(default_factory=list)


class DeliverableService(EntityService):
    entity = Entity.DELIVERABLE

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

    def create_deliverable(self, *, context: RequestUserContext, data: DeliverableCreateData) -> Deliverable:
        project = self._project_or_404(data.project_id)
        self._authorize(context, "create", project=project)

        now = datetime.utcnow()
        deliverable = Deliverable(
            project_id=project.id,
            name=data.name.strip(),
            description=data.description,
            deliverable_type=data.deliverable_type,
            due_date=data.due_date,
            status=DeliverableStatus.PENDING,
            files=[],
            created_by_uid=context.uid,
            created_by_name=context.name,
            created_by_email=context.email,
            created_at=now,
            updated_at=now,
        )
        self.repository.add(deliverable)
        self._log_activity(
            context,
            "deliverable_created",
            f"Deliverable '{deliverable.name}' added to {project.project_code}",
            record_id=deliverable.id,
            project_id=project.id,
        )
        return self._commit(deliverable)

    def list_deliverables(self, *, context: RequestUserContext, project_id: UUID) -> list[Deliverable]:
        project = self._project_or_404(project_id)
        self._authorize(context, "list_project", project=project)
        return list(self.repository.list_by_project(Deliverable, project.id))

    def get_deliverable(self, *, context: RequestUserContext, deliverable_id: UUID) -> Deliverable:
        deliverable = self._get_or_404(Deliverable, deliverable_id, "Deliverable")
        self._authorize(context, "read", deliverable, project=self._project_or_404(deliverable.project_id))
        return deliverable

    def submit_deliverable(
        self, *, context: RequestUserContext, deliverable_id: UUID, data: DeliverableSubmitData
    ) -> Deliverable:
        """Upload the attached files, then move the deliverable to ``submitted``.

        Permission and source status are checked before anything is written
        to storage; uploaded objects are removed again if the transition fails.
        """

        deliverable = self._get_or_404(Deliverable, deliverable_id, "Deliverable")
        project = self._project_or_404(deliverable.project_id)
        ensure_can_perform(context, self.entity, "submit", deliverable, project=project)
        if deliverable.status.value not in DELIVERABLE_TRANSITIONS["submit"].sources:
            raise InvalidStateTransition(
                entity=self.entity.value, current_status=deliverable.status.value, action="submit"
            )

        stored = self._upload_files(deliverable, data.files)
        try:
            self.engine.apply(
                self.entity,
                deliverable,
                "submit",
                {"files": stored},
                context=context,
                project=project,
            )
        except Exception:
            self._delete_files(stored)
            raise
        return self._get_or_404(Deliverable, deliverable_id, "Deliverable")

    def review_deliverable(
        self, *, context: RequestUserContext, deliverable_id: UUID, action: str, payload: dict[str, Any]
    ) -> Deliverable:
        deliverable = self._get_or_404(Deliverable, deliverable_id, "Deliverable")
        project = self._project_or_404(deliverable.project_id)
        self.engine.apply(self.entity, deliverable, action, payload, context=context, project=project)
        return self._get_or_404(Deliverable, deliverable_id, "Deliverable")

    def delete_deliverable(self, *, context: RequestUserContext, deliverable_id: UUID) -> None:
        deliverable = self._get_or_404(Deliverable, deliverable_id, "Deliverable")
        self._authorize(context, "delete", deliverable)
        stored = list(deliverable.files or [])
        self._log_activity(
            context,
            "deliverable_deleted",
            f"Deliverable '{deliverable.name}' deleted",
            record_id=deliverable.id,
            project_id=deliverable.project_id,
        )
        self.repository.delete(deliverable)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self._delete_files(stored)

    def _upload_files(self, deliverable: Deliverable, files: list[DeliverableFileData]) -> list[dict[str, Any]]:
        stored: list[dict[str, Any]] = []
        folder = f"deliverables-{deliverable.id}"
        for item in files:
            try:
                key = self.storage.upload(item.content, item.file_name, item.mime_type, folder)
            except OSError as exc:
                self._delete_files(stored)
                raise DependencyFailure("object storage", cause=exc) from exc
            stored.append(
                {
                    "file_name": item.file_name,
                    "storage_key": key,
                    "mime_type": item.mime_type,
                    "size": len(item.content),
                }
            )
        return stored

    def _delete_files(self, files: list[dict[str, Any]]) -> None:
        for item in files:
            try:
                self.storage.delete(item["storage_key"])
            except OSError:
                logger.warning("Could not delete stored file %s", item["storage_key"], exc_info=True)

    @staticmethod
    def serialize_deliverable(deliverable: Deliverable, storage: ObjectStorage | None = None) -> dict[str, Any]:
        files = []
        for item in deliverable.files or []:
            entry = dict(item)
            if storage is not None:
                entry["url"] = storage.signed_url(item["storage_key"])
            files.append(entry)

        return {
            "id": str(deliverable.id),
            "project_id": str(deliverable.project_id),
            "name": deliverable.name,
            "description": deliverable.description,
            "deliverable_type": deliverable.deliverable_type,
            "due_date": iso(deliverable.due_date),
            "status": deliverable.status.value,
            "files": files,
            "submitted_by_uid": deliverable.submitted_by_uid,
            "submitted_by_name": deliverable.submitted_by_name,
            "submitted_at": iso(deliverable.submitted_at),
            "reviewed_by_uid": deliverable.reviewed_by_uid,
            "reviewed_by_name": deliverable.reviewed_by_name,
            "reviewed_at": iso(deliverable.reviewed_at),
            "review_notes": deliverable.review_notes,
            "created_by_uid": deliverable.created_by_uid,
            "created_by_name": deliverable.created_by_name,
            "created_at": iso(deliverable.created_at),
            "updated_at": iso(deliverable.updated_at),
        }
