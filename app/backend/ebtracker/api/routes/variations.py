"""Scope variation endpoints."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ebtracker.api.payloads import ReviewPayload
from ebtracker.core.auth import RequestUserContext, get_current_user_context
from ebtracker.core.errors import success_response
from ebtracker.db.dependencies import get_db_session
from ebtracker.integrations.email import NotificationSender, get_notification_sender
from ebtracker.models.entities import ReviewStatus
from ebtracker.services.variation_service import VariationCreateData, VariationService

router = APIRouter(prefix="/variations", tags=["variations"])


class VariationCreatePayload(BaseModel):
    project_id: UUID
    scope_description: str = Field(min_length=1, max_length=5000)
    estimated_hours: Decimal = Field(gt=0)
    justification: str | None = Field(default=None, max_length=5000)


class VariationApprovePayload(BaseModel):
    # Validated by the approve transition.
    approved_hours: Decimal | None = None
    notes: str | None = Field(default=None, max_length=2000)


def _service(
    db: Session = Depends(get_db_session),
    sender: NotificationSender = Depends(get_notification_sender),
) -> VariationService:
    return VariationService(db, sender=sender)


@router.get("")
def list_variations(
    project_id: UUID | None = None,
    status_filter: ReviewStatus | None = Query(default=None, alias="status"),
    context: RequestUserContext = Depends(get_current_user_context),
    service: VariationService = Depends(_service),
) -> dict[str, object]:
    rows = service.list_variations(context=context, project_id=project_id, status=status_filter)
    return success_response([service.serialize_variation(variation) for variation in rows])


@router.post("", status_code=status.HTTP_201_CREATED)
def submit_variation(
    payload: VariationCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: VariationService = Depends(_service),
) -> dict[str, object]:
    variation = service.submit_variation(
        context=context,
        data=VariationCreateData(
            project_id=payload.project_id,
            scope_description=payload.scope_description,
            estimated_hours=payload.estimated_hours,
            justification=payload.justification,
        ),
    )
    return success_response(service.serialize_variation(variation), message="Variation submitted.")


@router.get("/{variation_id}")
def get_variation(
    variation_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: VariationService = Depends(_service),
) -> dict[str, object]:
    variation = service.get_variation(context=context, variation_id=variation_id)
    return success_response(service.serialize_variation(variation))


@router.delete("/{variation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_variation(
    variation_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: VariationService = Depends(_service),
) -> Response:
    service.delete_variation(context=context, variation_id=variation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{variation_id}/approve")
def approve_variation(
    variation_id: UUID,
    payload: VariationApprovePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: VariationService = Depends(_service),
) -> dict[str, object]:
    variation = service.review_variation(
        context=context,
        variation_id=variation_id,
        action="approve",
        payload=payload.model_dump(exclude_none=True),
    )
    return success_response(service.serialize_variation(variation), message="Variation approved.")


@router.post("/{variation_id}/reject")
def reject_variation(
    variation_id: UUID,
    payload: ReviewPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: VariationService = Depends(_service),
) -> dict[str, object]:
    variation = service.review_variation(
        context=context, variation_id=variation_id, action="reject", payload=payload.transition_values()
    )
    return success_response(service.serialize_variation(variation), message="Variation rejected.")
