"""Proposal intake and review."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from ebtracker.core.auth import RequestUserContext
from ebtracker.core.errors import InvalidStateTransition
from ebtracker.models.entities import Proposal, ReviewStatus
from ebtracker.policy.oracle import Entity, can_perform
from ebtracker.services.base import EntityService, iso, provided_fields, q2


@dataclass(slots=True)
class ProposalCreateData:
    project_name: str
    client_company: str
    client_email: str | None
    description: str | None
    estimated_value: Decimal
    currency: str


@dataclass(slots=True)
class ProposalUpdateData:
    project_name: str | None = None
    client_company: str | None = None
    client_email: str | None = None
    description: str | None = None
    estimated_value: Decimal | None = None
    currency: str | None = None


class ProposalService(EntityService):
    entity = Entity.PROPOSAL

    def create_proposal(self, *, context: RequestUserContext, data: ProposalCreateData) -> Proposal:
        self._authorize(context, "create")
        now = datetime.utcnow()
        proposal = Proposal(
            project_name=data.project_name.strip(),
            client_company=data.client_company.strip(),
            client_email=data.client_email,
            description=data.description,
            estimated_value=q2(data.estimated_value),
            currency=data.currency.upper(),
            status=ReviewStatus.PENDING,
            submitted_by_uid=context.uid,
            submitted_by_name=context.name,
            submitted_by_email=context.email,
            submitted_at=now,
            created_at=now,
            updated_at=now,
        )
        self.repository.add(proposal)
        self._log_activity(
            context, "proposal_submitted", f"Proposal '{proposal.project_name}' submitted", record_id=proposal.id
        )
        return self._commit(proposal)

    def list_proposals(
        self, *, context: RequestUserContext, status: ReviewStatus | None = None
    ) -> list[Proposal]:
        if can_perform(context, self.entity, "list_all"):
            return list(self.repository.list_proposals(status=status))
        # Everyone else sees only what they submitted.
        return list(self.repository.list_proposals(submitted_by_uid=context.uid, status=status))

    def get_proposal(self, *, context: RequestUserContext, proposal_id: UUID) -> Proposal:
        proposal = self._get_or_404(Proposal, proposal_id, "Proposal")
        self._authorize(context, "read", proposal)
        return proposal

    def update_proposal(
        self, *, context: RequestUserContext, proposal_id: UUID, data: ProposalUpdateData
    ) -> Proposal:
        proposal = self._get_or_404(Proposal, proposal_id, "Proposal")
        self._authorize(context, "update", proposal)
        if proposal.status != ReviewStatus.PENDING:
            raise InvalidStateTransition(entity=self.entity.value, current_status=proposal.status.value, action="update")

        changes = provided_fields(data)
        if "estimated_value" in changes:
            changes["estimated_value"] = q2(changes["estimated_value"])
        if "currency" in changes:
            changes["currency"] = changes["currency"].upper()
        for key, value in changes.items():
            setattr(proposal, key, value)
        proposal.updated_at = datetime.utcnow()
        return self._commit(proposal)

    def delete_proposal(self, *, context: RequestUserContext, proposal_id: UUID) -> None:
        proposal = self._get_or_404(Proposal, proposal_id, "Proposal")
        self._authorize(context, "delete", proposal)
        if proposal.status == ReviewStatus.APPROVED:
            raise InvalidStateTransition(entity=self.entity.value, current_status=proposal.status.value, action="delete")
        self.repository.delete(proposal)
        self.db.commit()

    def review_proposal(
        self,
        *,
        context: RequestUserContext,
        proposal_id: UUID,
        decision: ReviewStatus,
        notes: str | None = None,
        reason: str | None = None,
    ) -> Proposal:
        """Approve or reject a pending proposal.

        Rejections need a reason; ``notes`` is accepted as the reason when
        ``reason`` is omitted.
        """

        proposal = self._get_or_404(Proposal, proposal_id, "Proposal")
        if decision == ReviewStatus.APPROVED:
            self.engine.apply(self.entity, proposal, "approve", {"notes": notes}, context=context)
        elif decision == ReviewStatus.REJECTED:
            self.engine.apply(self.entity, proposal, "reject", {"reason": reason or notes}, context=context)
        else:
            self.engine.apply(self.entity, proposal, decision.value, {}, context=context)
        return self._get_or_404(Proposal, proposal_id, "Proposal")

    @staticmethod
    def serialize_proposal(proposal: Proposal) -> dict[str, Any]:
        return {
            "id": str(proposal.id),
            "project_name": proposal.project_name,
            "client_company": proposal.client_company,
            "client_email": proposal.client_email,
            "description": proposal.description,
            "estimated_value": str(proposal.estimated_value),
            "currency": proposal.currency,
            "status": proposal.status.value,
            "submitted_by_uid": proposal.submitted_by_uid,
            "submitted_by_name": proposal.submitted_by_name,
            "submitted_at": iso(proposal.submitted_at),
            "reviewed_by_uid": proposal.reviewed_by_uid,
            "reviewed_by_name": proposal.reviewed_by_name,
            "reviewed_at": iso(proposal.reviewed_at),
            "review_notes": proposal.review_notes,
            "created_at": iso(proposal.created_at),
            "updated_at": iso(proposal.updated_at),
        }

