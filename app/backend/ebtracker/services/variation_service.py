"""Scope variations that extend a project's hour budget."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from ebtracker.core.auth import RequestUserContext
from ebtracker.core.errors import InvalidStateTransition, ValidationError
from ebtracker.models.entities import Project, ReviewStatus, Role, Variation
from ebtracker.policy.effects import notify
from ebtracker.policy.oracle import Entity, can_perform
from ebtracker.services.base import EntityService, iso, q2


@dataclass(slots=True)
class VariationCreateData:
    project_id: UUID
    scope_description: str
    estimated_hours: Decimal
    justification: str | None = None


class VariationService(EntityService):
    entity = Entity.VARIATION

    def submit_variation(self, *, context: RequestUserContext, data: VariationCreateData) -> Variation:
        project = self._project_or_404(data.project_id)
        self._authorize(context, "create", project=project)
        if data.estimated_hours <= 0:
            raise ValidationError("Estimated hours must be greater than zero.", fields=["estimated_hours"])

        now = datetime.utcnow()
        variation = Variation(
            project_id=project.id,
            variation_code=self._next_code(project, now),
            scope_description=data.scope_description.strip(),
            estimated_hours=q2(data.estimated_hours),
            justification=data.justification,
            status=ReviewStatus.PENDING,
            submitted_by_uid=context.uid,
            submitted_by_name=context.name,
            submitted_by_email=context.email,
            submitted_at=now,
            created_at=now,
            updated_at=now,
        )
        self.repository.add(variation)
        self._log_activity(
            context,
            "variation_submitted",
            f"Variation {variation.variation_code} submitted for {variation.estimated_hours}h",
            record_id=variation.id,
            project_id=project.id,
        )
        outbox_ids = self._queue(
            notify(
                "variationSubmitted",
                self.repository.user_emails_for_roles([Role.COO]),
                idempotency_key=f"{self.entity.value}:{variation.id}:submit",
                data={
                    "variation_code": variation.variation_code,
                    "project_code": project.project_code,
                    "estimated_hours": str(variation.estimated_hours),
                    "submitted_by": context.name,
                },
            )
        )
        return self._commit(variation, outbox_ids=outbox_ids)

    def list_variations(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID | None = None,
        status: ReviewStatus | None = None,
    ) -> list[Variation]:
        if can_perform(context, self.entity, "list_all"):
            return list(self.repository.list_variations(project_id=project_id, status=status))
        if project_id is not None:
            project = self._project_or_404(project_id)
            if can_perform(context, self.entity, "list_project", project=project):
                return list(self.repository.list_variations(project_id=project_id, status=status))
        return list(
            self.repository.list_variations(project_id=project_id, submitted_by_uid=context.uid, status=status)
        )

    def get_variation(self, *, context: RequestUserContext, variation_id: UUID) -> Variation:
        variation = self._get_or_404(Variation, variation_id, "Variation")
        self._authorize(context, "read", variation, project=self._project_or_404(variation.project_id))
        return variation

    def delete_variation(self, *, context: RequestUserContext, variation_id: UUID) -> None:
        variation = self._get_or_404(Variation, variation_id, "Variation")
        self._authorize(context, "delete", variation)
        if variation.status == ReviewStatus.APPROVED:
            raise InvalidStateTransition(entity=self.entity.value, current_status=variation.status.value, action="delete")
        self.repository.delete(variation)
        self.db.commit()

    def review_variation(
        self, *, context: RequestUserContext, variation_id: UUID, action: str, payload: dict[str, Any]
    ) -> Variation:
        variation = self._get_or_404(Variation, variation_id, "Variation")
        project = self._project_or_404(variation.project_id)
        self.engine.apply(self.entity, variation, action, payload, context=context, project=project)
        return self._get_or_404(Variation, variation_id, "Variation")

    def _next_code(self, project: Project, now: datetime) -> str:
        """``VAR-<project code>-<6 digits>`` taken from the submission time."""

        sequence = int(now.timestamp() * 1000) % 1_000_000
        while True:
            code = f"VAR-{project.project_code}-{sequence:06d}"
            if not self.repository.variation_code_exists(code):
                return code
            sequence = (sequence + 1) % 1_000_000

    @staticmethod
    def serialize_variation(variation: Variation) -> dict[str, Any]:
        return {
            "id": str(variation.id),
            "project_id": str(variation.project_id),
            "variation_code": variation.variation_code,
            "scope_description": variation.scope_description,
            "estimated_hours": str(variation.estimated_hours),
            "justification": variation.justification,
            "approved_hours": str(variation.approved_hours) if variation.approved_hours is not None else None,
            "status": variation.status.value,
            "submitted_by_uid": variation.submitted_by_uid,
            "submitted_by_name": variation.submitted_by_name,
            "submitted_at": iso(variation.submitted_at),
            "reviewed_by_uid": variation.reviewed_by_uid,
            "reviewed_by_name": variation.reviewed_by_name,
            "reviewed_at": iso(variation.reviewed_at),
            "review_notes": variation.review_notes,
            "created_at": iso(variation.created_at),
            "updated_at": iso(variation.updated_at),
        }
