"""Invoice endpoints."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ebtracker.core.auth import RequestUserContext, get_current_user_context
from ebtracker.core.errors import success_response
from ebtracker.db.dependencies import get_db_session
from ebtracker.integrations.email import NotificationSender, get_notification_sender
from ebtracker.models.entities import InvoiceStatus
from ebtracker.services.billing_service import InvoiceCreateData, InvoiceService, InvoiceUpdateData

router = APIRouter(prefix="/invoices", tags=["invoices"])


class InvoiceCreatePayload(BaseModel):
    project_id: UUID
    amount: Decimal = Field(gt=0)
    due_date: date
    issue_date: date | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    client_name: str | None = Field(default=None, max_length=255)
    client_email: str | None = Field(default=None, max_length=320)
    notes: str | None = Field(default=None, max_length=2000)


class InvoiceUpdatePayload(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0)
    due_date: date | None = None
    client_name: str | None = Field(default=None, max_length=255)
    client_email: str | None = Field(default=None, max_length=320)
    notes: str | None = Field(default=None, max_length=2000)


class InvoicePaidPayload(BaseModel):
    paid_amount: Decimal | None = None
    payment_method: str | None = Field(default=None, max_length=64)


class ReconcilePayload(BaseModel):
    as_of: date | None = None


def _service(
    db: Session = Depends(get_db_session),
    sender: NotificationSender = Depends(get_notification_sender),
) -> InvoiceService:
    return InvoiceService(db, sender=sender)


@router.get("")
def list_invoices(
    project_id: UUID | None = None,
    status_filter: InvoiceStatus | None = Query(default=None, alias="status"),
    context: RequestUserContext = Depends(get_current_user_context),
    service: InvoiceService = Depends(_service),
) -> dict[str, object]:
    rows = service.list_invoices(context=context, status=status_filter, project_id=project_id)
    return success_response([service.serialize_invoice(invoice) for invoice in rows])


@router.get("/overdue")
def overdue_invoices(
    as_of: date | None = None,
    context: RequestUserContext = Depends(get_current_user_context),
    service: InvoiceService = Depends(_service),
) -> dict[str, object]:
    """Unpaid invoices past their due date. Does not change any status."""

    return success_response(service.overdue_report(context=context, as_of=as_of))


@router.post("/reconcile-overdue")
def reconcile_overdue_invoices(
    payload: ReconcilePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: InvoiceService = Depends(_service),
) -> dict[str, object]:
    rows = service.reconcile_overdue(context=context, as_of=payload.as_of)
    return success_response(
        [service.serialize_invoice(invoice) for invoice in rows],
        message=f"{len(rows)} invoice(s) marked overdue.",
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_invoice(
    payload: InvoiceCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: InvoiceService = Depends(_service),
) -> dict[str, object]:
    invoice = service.create_invoice(
        context=context,
        data=InvoiceCreateData(
            project_id=payload.project_id,
            amount=payload.amount,
            due_date=payload.due_date,
            issue_date=payload.issue_date,
            currency=payload.currency,
            client_name=payload.client_name,
            client_email=payload.client_email,
            notes=payload.notes,
        ),
    )
    return success_response(service.serialize_invoice(invoice), message="Invoice created.")


@router.get("/{invoice_id}")
def get_invoice(
    invoice_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: InvoiceService = Depends(_service),
) -> dict[str, object]:
    invoice = service.get_invoice(context=context, invoice_id=invoice_id)
    return success_response(service.serialize_invoice(invoice))


@router.patch("/{invoice_id}")
def update_invoice(
    invoice_id: UUID,
    payload: InvoiceUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: InvoiceService = Depends(_service),
) -> dict[str, object]:
    invoice = service.update_invoice(
        context=context,
        invoice_id=invoice_id,
        data=InvoiceUpdateData(
            amount=payload.amount,
            due_date=payload.due_date,
            client_name=payload.client_name,
            client_email=payload.client_email,
            notes=payload.notes,
        ),
    )
    return success_response(service.serialize_invoice(invoice))


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(
    invoice_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: InvoiceService = Depends(_service),
) -> Response:
    service.delete_invoice(context=context, invoice_id=invoice_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{invoice_id}/send")
def send_invoice(
    invoice_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: InvoiceService = Depends(_service),
) -> dict[str, object]:
    invoice = service.transition_invoice(context=context, invoice_id=invoice_id, action="send")
    return success_response(service.serialize_invoice(invoice), message="Invoice sent.")


@router.post("/{invoice_id}/mark-paid")
def mark_invoice_paid(
    invoice_id: UUID,
    payload: InvoicePaidPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    service: InvoiceService = Depends(_service),
) -> dict[str, object]:
    invoice = service.transition_invoice(
        context=context,
        invoice_id=invoice_id,
        action="mark_paid",
        payload=payload.model_dump(exclude_none=True),
    )
    return success_response(service.serialize_invoice(invoice), message="Invoice marked paid.")


@router.post("/{invoice_id}/cancel")
def cancel_invoice(
    invoice_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    service: InvoiceService = Depends(_service),
) -> dict[str, object]:
    invoice = service.transition_invoice(context=context, invoice_id=invoice_id, action="cancel")
    return success_response(service.serialize_invoice(invoice), message="Invoice cancelled.")
