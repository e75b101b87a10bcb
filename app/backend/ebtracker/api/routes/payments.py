"""Payment endpoints."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ebtracker.core.auth import RequestUserContext, get_current_user_context
from ebtracker.core.errors import success_response
from ebtracker.db.dependencies import get_db_session
from ebtracker.integrations.email import NotificationSender, get_notification_sender
from ebtracker.services.billing_service import PaymentCreateData, PaymentService, PaymentUpdateData

router = APIRouter(prefix="/payments", tags=["payments"])


class PaymentCreatePayload(BaseModel):
    project_id: UUID
    amount: Decimal = Field(gt=0)
    payment_date: date | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    invoice_id: UUID | None = None
    payment_method: str | None = Field(default=None, max_length=64)
    reference: str | None = Field(default=None, max_length=128)
    notes: str | None = Field(default=None, max_length=2000)


class PaymentUpdatePayload(BaseModel):
    payment_date: date | None = None
    payment_method: str | None = Field(default=None, max_length=64)
    reference: str | None = Field(default=None, max_length=128)
    notes: str | None = Field(default=None, max_length=2000)


def _service(
    db: Session = Depends(get_db_session),
    sender: NotificationSender = Depends(get_notification_sender),
) -> PaymentService:
    return PaymentService(db, sender=sender)


@router.get("")
def list_payments(
    project_id: UUID | None = None,
    context: RequestUserContext = Depends(get_current_user_context),
    service: PaymentService = Depends(_service),
) -> dict[str, object]:
    rows = service.list_payments(context=context, project_id=project_id)
    return success_response([service.serialize_payment(payment) for payment in rows])


@router.post("", status_code=status.HTTP_201_CREATED)
def record_payment(
    payload: PaymentCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: PaymentService = Depends(_service),
) -> dict[str, object]:
    payment = service.record_payment(
        context=context,
        data=PaymentCreateData(
            project_id=payload.project_id,
            amount=payload.amount,
            payment_date=payload.payment_date,
            currency=payload.currency,
            invoice_id=payload.invoice_id,
            payment_method=payload.payment_method,
            reference=payload.reference,
            notes=payload.notes,
        ),
    )
    return success_response(service.serialize_payment(payment), message="Payment recorded.")


@router.get("/{payment_id}")
def get_payment(
    payment_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: PaymentService = Depends(_service),
) -> dict[str, object]:
    payment = service.get_payment(context=context, payment_id=payment_id)
    return success_response(service.serialize_payment(payment))


@router.patch("/{payment_id}")
def update_payment(
    payment_id: UUID,
    payload: PaymentUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: PaymentService = Depends(_service),
) -> dict[str, object]:
    payment = service.update_payment(
        context=context,
        payment_id=payment_id,
        data=PaymentUpdateData(
            payment_date=payload.payment_date,
            payment_method=payload.payment_method,
            reference=payload.reference,
            notes=payload.notes,
        ),
    )
    return success_response(service.serialize_payment(payment))


@router.delete("/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_payment(
    payment_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: PaymentService = Depends(_service),
) -> Response:
    service.delete_payment(context=context, payment_id=payment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
