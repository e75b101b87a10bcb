"""Proposal endpoints."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ebtracker.core.auth import RequestUserContext, get_current_user_context
from ebtracker.core.errors import success_response
from ebtracker.db.dependencies import get_db_session
from ebtracker.integrations.email import NotificationSender, get_notification_sender
from ebtracker.models.entities import ReviewStatus
from ebtracker.services.proposal_service import ProposalCreateData, ProposalService, ProposalUpdateData

router = APIRouter(prefix="/proposals", tags=["proposals"])


class ProposalCreatePayload(BaseModel):
    project_name: str = Field(min_length=1, max_length=255)
    client_company: str = Field(min_length=1, max_length=255)
    client_email: str | None = Field(default=None, max_length=320)
    description: str | None = Field(default=None, max_length=5000)
    estimated_value: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)


class ProposalUpdatePayload(BaseModel):
    project_name: str | None = Field(default=None, min_length=1, max_length=255)
    client_company: str | None = Field(default=None, min_length=1, max_length=255)
    client_email: str | None = Field(default=None, max_length=320)
    description: str | None = Field(default=None, max_length=5000)
    estimated_value: Decimal | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)


class ProposalReviewPayload(BaseModel):
    status: ReviewStatus
    notes: str | None = Field(default=None, max_length=2000)
    reason: str | None = Field(default=None, max_length=2000)


def _service(
    db: Session = Depends(get_db_session),
    sender: NotificationSender = Depends(get_notification_sender),
) -> ProposalService:
    return ProposalService(db, sender=sender)


@router.get("")
def list_proposals(
    status_filter: ReviewStatus | None = Query(default=None, alias="status"),
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProposalService = Depends(_service),
) -> dict[str, object]:
    rows = service.list_proposals(context=context, status=status_filter)
    return success_response([service.serialize_proposal(proposal) for proposal in rows])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_proposal(
    payload: ProposalCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProposalService = Depends(_service),
) -> dict[str, object]:
    proposal = service.create_proposal(
        context=context,
        data=ProposalCreateData(
            project_name=payload.project_name,
            client_company=payload.client_company,
            client_email=payload.client_email,
            description=payload.description,
            estimated_value=payload.estimated_value,
            currency=payload.currency,
        ),
    )
    return success_response(service.serialize_proposal(proposal), message="Proposal submitted.")


@router.get("/{proposal_id}")
def get_proposal(
    proposal_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProposalService = Depends(_service),
) -> dict[str, object]:
    proposal = service.get_proposal(context=context, proposal_id=proposal_id)
    return success_response(service.serialize_proposal(proposal))


@router.patch("/{proposal_id}")
def update_proposal(
    proposal_id: UUID,
    payload: ProposalUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProposalService = Depends(_service),
) -> dict[str, object]:
    proposal = service.update_proposal(
        context=context,
        proposal_id=proposal_id,
        data=ProposalUpdateData(
            project_name=payload.project_name,
            client_company=payload.client_company,
            client_email=payload.client_email,
            description=payload.description,
            estimated_value=payload.estimated_value,
            currency=payload.currency,
        ),
    )
    return success_response(service.serialize_proposal(proposal))


@router.delete("/{proposal_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_proposal(
    proposal_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProposalService = Depends(_service),
) -> Response:
    service.delete_proposal(context=context, proposal_id=proposal_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{proposal_id}/review")
def review_proposal(
    proposal_id: UUID,
    payload: ProposalReviewPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: ProposalService = Depends(_service),
) -> dict[str, object]:
    proposal = service.review_proposal(
        context=context,
        proposal_id=proposal_id,
        decision=payload.status,
        notes=payload.notes,
        reason=payload.reason,
    )
    return success_response(service.serialize_proposal(proposal), message=f"Proposal {proposal.status.value}.")
