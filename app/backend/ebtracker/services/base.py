"""Shared plumbing for entity services."""

from __future__ import annotations

import enum
from dataclasses import asdict
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from ebtracker.core.auth import RequestUserContext
from ebtracker.core.config import Settings, get_settings
from ebtracker.core.errors import NotFound, ValidationError
from ebtracker.integrations.email import NotificationSender, get_notification_sender
from ebtracker.models.entities import Project
from ebtracker.policy.effects import ActivityEntry, Notification
from ebtracker.policy.oracle import Entity, ensure_can_perform
from ebtracker.repositories.workflow_repository import WorkflowRepository
from ebtracker.services.workflow import WorkflowEngine

ModelT = TypeVar("ModelT")

Q2 = Decimal("0.01")


def q2(value: Decimal) -> Decimal:
    return Decimal(value).quantize(Q2, rounding=ROUND_HALF_UP)


def iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def as_str(value: Any) -> str | None:
    """Render ids, decimals and enums as strings, keeping None."""

    if value is None:
        return None
    if isinstance(value, enum.Enum):
        return value.value
    return str(value)


def provided_fields(data: Any) -> dict[str, Any]:
    """Non-None fields of an update dataclass. An empty update is rejected."""

    changes = {key: value for key, value in asdict(data).items() if value is not None}
    if not changes:
        raise ValidationError("No fields to update.")
    return changes


class EntityService:
    """Base class wiring the repository, workflow engine and settings."""

    entity: Entity

    def __init__(
        self,
        db: Session,
        *,
        sender: NotificationSender | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.repository = WorkflowRepository(db)
        self.engine = WorkflowEngine(db, sender=sender or get_notification_sender())

    def _get_or_404(self, model: type[ModelT], record_id: UUID, label: str) -> ModelT:
        record = self.repository.get(model, record_id)
        if record is None:
            raise NotFound(f"{label} not found.")
        return record

    def _project_or_404(self, project_id: UUID) -> Project:
        return self._get_or_404(Project, project_id, "Project")

    def _authorize(
        self,
        context: RequestUserContext,
        action: str,
        record: Any | None = None,
        *,
        project: Any | None = None,
    ) -> None:
        ensure_can_perform(context, self.entity, action, record, project=project)

    def _log_activity(
        self,
        context: RequestUserContext,
        activity_type: str,
        details: str,
        *,
        record_id: UUID | None = None,
        project_id: UUID | None = None,
    ) -> None:
        self.engine.dispatcher.record_activity(
            ActivityEntry(
                activity_type=activity_type,
                details=details,
                entity_type=self.entity.value,
                entity_id=as_str(record_id),
                project_id=project_id,
            ),
            actor=context,
        )

    def _queue(self, notifications: list[Notification]) -> list[UUID]:
        queued: list[UUID] = []
        for notification in notifications:
            row = self.engine.dispatcher.enqueue(notification)
            if row is not None:
                queued.append(row.id)
        return queued

    def _commit(self, record: ModelT, *, outbox_ids: list[UUID] | None = None) -> ModelT:
        """Commit, refresh ``record`` and deliver any notifications queued with it."""

        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(record)
        if outbox_ids:
            self.engine.dispatcher.deliver(outbox_ids)
        return record
