"""Invoices and payments, and the ``total_received`` ledger they drive."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from ebtracker.core.auth import RequestUserContext
from ebtracker.core.errors import Conflict, InvalidStateTransition, ValidationError
from ebtracker.models.entities import Invoice, InvoiceStatus, Payment, Project
from ebtracker.policy.effects import ActivityEntry, notify
from ebtracker.policy.machine import outstanding_balance
from ebtracker.policy.oracle import Entity, ensure_can_perform
from ebtracker.services.base import EntityService, iso, provided_fields, q2

logger = logging.getLogger(__name__)

EDITABLE_INVOICE_STATUSES = {InvoiceStatus.DRAFT, InvoiceStatus.SENT}
PAYABLE_INVOICE_STATUSES = {InvoiceStatus.SENT, InvoiceStatus.OVERDUE}


@dataclass(slots=True)
class InvoiceCreateData:
    project_id: UUID
    amount: Decimal
    due_date: date
    issue_date: date | None = None
    currency: str | None = None
    client_name: str | None = None
    client_email: str | None = None
    notes: str | None = None


@dataclass(slots=True)
class InvoiceUpdateData:
    amount: Decimal | None = None
    due_date: date | None = None
    client_name: str | None = None
    client_email: str | None = None
    notes: str | None = None


@dataclass(slots=True)
class PaymentCreateData:
    project_id: UUID
    amount: Decimal
    payment_date: date | None = None
    currency: str | None = None
    invoice_id: UUID | None = None
    payment_method: str | None = None
    reference: str | None = None
    notes: str | None = None


@dataclass(slots=True)
class PaymentUpdateData:
    payment_date: date | None = None
    payment_method: str | None = None
    reference: str | None = None
    notes: str | None = None


def _positive_amount(amount: Decimal, field: str = "amount") -> Decimal:
    rounded = q2(amount)
    if rounded <= 0:
        raise ValidationError("Amount must be greater than zero.", fields=[field])
    return rounded


class InvoiceService(EntityService):
    entity = Entity.INVOICE

    def create_invoice(self, *, context: RequestUserContext, data: InvoiceCreateData) -> Invoice:
        self._authorize(context, "create")
        project = self._project_or_404(data.project_id)
        amount = _positive_amount(data.amount)

        now = datetime.utcnow()
        issue_date = data.issue_date or now.date()
        if data.due_date < issue_date:
            raise ValidationError("Due date cannot be before the issue date.", fields=["due_date"])

        invoice = Invoice(
            project_id=project.id,
            invoice_no=self._next_invoice_no(now),
            amount=amount,
            currency=(data.currency or project.currency).upper(),
            issue_date=issue_date,
            due_date=data.due_date,
            client_name=data.client_name or project.client_company,
            client_email=data.client_email or project.client_email,
            notes=data.notes,
            status=InvoiceStatus.DRAFT,
            paid_amount=Decimal("0.00"),
            created_by_uid=context.uid,
            created_by_name=context.name,
            created_at=now,
            updated_at=now,
        )
        self.repository.add(invoice)
        self._log_activity(
            context,
            "invoice_created",
            f"Invoice {invoice.invoice_no} created for {amount} {invoice.currency}",
            record_id=invoice.id,
            project_id=project.id,
        )
        return self._commit(invoice)

    def list_invoices(
        self,
        *,
        context: RequestUserContext,
        status: InvoiceStatus | None = None,
        project_id: UUID | None = None,
    ) -> list[Invoice]:
        self._authorize(context, "list_all")
        return list(self.repository.list_invoices(project_id=project_id, status=status))

    def get_invoice(self, *, context: RequestUserContext, invoice_id: UUID) -> Invoice:
        invoice = self._get_or_404(Invoice, invoice_id, "Invoice")
        self._authorize(context, "read", invoice)
        return invoice

    def update_invoice(self, *, context: RequestUserContext, invoice_id: UUID, data: InvoiceUpdateData) -> Invoice:
        invoice = self._get_or_404(Invoice, invoice_id, "Invoice")
        self._authorize(context, "update", invoice)
        if invoice.status not in EDITABLE_INVOICE_STATUSES:
            raise InvalidStateTransition(entity=self.entity.value, current_status=invoice.status.value, action="update")

        changes = provided_fields(data)
        if "amount" in changes:
            changes["amount"] = _positive_amount(changes["amount"])
            if changes["amount"] < invoice.paid_amount:
                raise ValidationError("Amount cannot be less than the amount already paid.", fields=["amount"])
        if changes.get("due_date") is not None and changes["due_date"] < invoice.issue_date:
            raise ValidationError("Due date cannot be before the issue date.", fields=["due_date"])
        for key, value in changes.items():
            setattr(invoice, key, value)
        invoice.updated_at = datetime.utcnow()
        return self._commit(invoice)

    def delete_invoice(self, *, context: RequestUserContext, invoice_id: UUID) -> None:
        invoice = self._get_or_404(Invoice, invoice_id, "Invoice")
        self._authorize(context, "delete", invoice)
        if invoice.status == InvoiceStatus.PAID:
            raise InvalidStateTransition(entity=self.entity.value, current_status=invoice.status.value, action="delete")
        if invoice.paid_amount > 0:
            raise Conflict("Invoice has recorded payments; delete them first.")
        self.repository.delete(invoice)
        self.db.commit()

    def transition_invoice(
        self, *, context: RequestUserContext, invoice_id: UUID, action: str, payload: dict[str, Any] | None = None
    ) -> Invoice:
        invoice = self._get_or_404(Invoice, invoice_id, "Invoice")
        project = self._project_or_404(invoice.project_id)
        self.engine.apply(self.entity, invoice, action, payload, context=context, project=project)
        return self._get_or_404(Invoice, invoice_id, "Invoice")

    def overdue_report(self, *, context: RequestUserContext, as_of: date | None = None) -> list[dict[str, Any]]:
        """Unpaid invoices past their due date. Reads only; statuses are left untouched."""

        self._authorize(context, "list_all")
        as_of = as_of or datetime.utcnow().date()
        return [
            {**self.serialize_invoice(invoice), "days_overdue": (as_of - invoice.due_date).days}
            for invoice in self.repository.list_overdue_invoices(as_of=as_of)
        ]

    def reconcile_overdue(self, *, context: RequestUserContext, as_of: date | None = None) -> list[Invoice]:
        """Move every sent invoice past its due date to ``overdue``."""

        ensure_can_perform(context, self.entity, "mark_overdue")
        as_of = as_of or datetime.utcnow().date()

        reconciled: list[Invoice] = []
        for invoice in self.repository.list_overdue_invoices(as_of=as_of):
            if invoice.status != InvoiceStatus.SENT:
                continue
            invoice_id = invoice.id
            try:
                self.engine.apply(self.entity, invoice, "mark_overdue", {}, context=context)
            except InvalidStateTransition:
                logger.info("Invoice %s changed status during reconciliation; skipped", invoice_id)
                continue
            reconciled.append(self._get_or_404(Invoice, invoice_id, "Invoice"))

        logger.info("Marked %d invoice(s) overdue as of %s", len(reconciled), as_of.isoformat())
        return reconciled

    def _next_invoice_no(self, now: datetime) -> str:
        """``<prefix>-<8 digits>`` taken from the creation time."""

        sequence = int(now.timestamp() * 1000) % 100_000_000
        while True:
            invoice_no = f"{self.settings.invoice_number_prefix}-{sequence:08d}"
            if not self.repository.invoice_number_exists(invoice_no):
                return invoice_no
            sequence = (sequence + 1) % 100_000_000

    @staticmethod
    def serialize_invoice(invoice: Invoice) -> dict[str, Any]:
        return {
            "id": str(invoice.id),
            "project_id": str(invoice.project_id),
            "invoice_no": invoice.invoice_no,
            "amount": str(invoice.amount),
            "currency": invoice.currency,
            "issue_date": iso(invoice.issue_date),
            "due_date": iso(invoice.due_date),
            "client_name": invoice.client_name,
            "client_email": invoice.client_email,
            "notes": invoice.notes,
            "status": invoice.status.value,
            "sent_at": iso(invoice.sent_at),
            "paid_amount": str(q2(invoice.paid_amount)),
            "balance_outstanding": str(q2(outstanding_balance(invoice))),
            "paid_at": iso(invoice.paid_at),
            "payment_method": invoice.payment_method,
            "created_by_uid": invoice.created_by_uid,
            "created_by_name": invoice.created_by_name,
            "created_at": iso(invoice.created_at),
            "updated_at": iso(invoice.updated_at),
        }


class PaymentService(EntityService):
    entity = Entity.PAYMENT

    def record_payment(self, *, context: RequestUserContext, data: PaymentCreateData) -> Payment:
        """Insert a payment and raise the project's ``total_received`` in one transaction.

        A payment against an invoice also credits the invoice's ``paid_amount``;
        the payment that covers the remaining balance settles the invoice.
        """

        self._authorize(context, "create")
        project = self._project_or_404(data.project_id)
        amount = _positive_amount(data.amount)
        invoice: Invoice | None = None
        if data.invoice_id is not None:
            invoice = self._get_or_404(Invoice, data.invoice_id, "Invoice")
            if invoice.project_id != project.id:
                raise ValidationError("Invoice belongs to a different project.", fields=["invoice_id"])
            self._ensure_payable(invoice, amount)

        now = datetime.utcnow()
        payment = Payment(
            project_id=project.id,
            invoice_id=data.invoice_id,
            amount=amount,
            currency=(data.currency or project.currency).upper(),
            payment_date=data.payment_date or now.date(),
            payment_method=data.payment_method,
            reference=data.reference,
            notes=data.notes,
            recorded_by_uid=context.uid,
            recorded_by_name=context.name,
            created_at=now,
            updated_at=now,
        )
        try:
            self.repository.add(payment)
            self.repository.adjust_project_ledger(project.id, field="total_received", delta=amount)
            if invoice is not None:
                invoice = self._credit(invoice.id, amount)
            self._log_activity(
                context,
                "payment_recorded",
                f"Payment of {amount} {payment.currency} recorded for {project.project_code}",
                record_id=payment.id,
                project_id=project.id,
            )
            outbox_ids = self._queue(
                notify(
                    "paymentReceived",
                    [project.client_email],
                    idempotency_key=f"{self.entity.value}:{payment.id}:create",
                    data={
                        "project_name": project.project_name,
                        "amount": str(amount),
                        "currency": payment.currency,
                    },
                )
            )
            if invoice is not None and outstanding_balance(invoice) <= 0:
                self.engine.apply(Entity.INVOICE, invoice, "settle", {}, context=context, project=project)
        except Exception:
            self.db.rollback()
            raise
        return self._commit(payment, outbox_ids=outbox_ids)

    def list_payments(self, *, context: RequestUserContext, project_id: UUID | None = None) -> list[Payment]:
        self._authorize(context, "list_all")
        return list(self.repository.list_payments(project_id=project_id))

    def get_payment(self, *, context: RequestUserContext, payment_id: UUID) -> Payment:
        payment = self._get_or_404(Payment, payment_id, "Payment")
        self._authorize(context, "read", payment)
        return payment

    def update_payment(self, *, context: RequestUserContext, payment_id: UUID, data: PaymentUpdateData) -> Payment:
        payment = self._get_or_404(Payment, payment_id, "Payment")
        self._authorize(context, "update", payment)
        for key, value in provided_fields(data).items():
            setattr(payment, key, value)
        payment.updated_at = datetime.utcnow()
        return self._commit(payment)

    def delete_payment(self, *, context: RequestUserContext, payment_id: UUID) -> Project:
        """Delete a payment and take its amount back off ``total_received``."""

        payment = self._get_or_404(Payment, payment_id, "Payment")
        self._authorize(context, "delete", payment)
        invoice_id = payment.invoice_id
        if invoice_id is not None:
            invoice = self._get_or_404(Invoice, invoice_id, "Invoice")
            if invoice.status == InvoiceStatus.PAID:
                raise InvalidStateTransition(
                    entity=Entity.INVOICE.value, current_status=invoice.status.value, action="delete_payment"
                )
        project_id = payment.project_id
        amount = Decimal(payment.amount)

        try:
            self.repository.delete(payment)
            if invoice_id is not None:
                self._credit(invoice_id, -amount)
            project = self.repository.adjust_project_ledger(project_id, field="total_received", delta=-amount)
            self.engine.dispatcher.record_activity(
                ActivityEntry(
                    activity_type="payment_deleted",
                    details=f"Payment of {amount} removed from {project.project_code}",
                    entity_type=self.entity.value,
                    entity_id=str(payment_id),
                    project_id=project_id,
                ),
                actor=context,
            )
        except Exception:
            self.db.rollback()
            raise
        return self._commit(project)

    def _ensure_payable(self, invoice: Invoice, amount: Decimal) -> None:
        if invoice.status not in PAYABLE_INVOICE_STATUSES:
            raise InvalidStateTransition(
                entity=Entity.INVOICE.value, current_status=invoice.status.value, action="record_payment"
            )
        outstanding = q2(outstanding_balance(invoice))
        if amount > outstanding:
            raise ValidationError(
                f"Amount exceeds the invoice's outstanding balance of {outstanding}.", fields=["amount"]
            )

    def _credit(self, invoice_id: UUID, delta: Decimal) -> Invoice:
        invoice = self.repository.credit_invoice(invoice_id, delta=delta)
        if invoice is None:
            raise Conflict("Invoice balance changed concurrently; reload and try again.")
        return invoice

    @staticmethod
    def serialize_payment(payment: Payment) -> dict[str, Any]:
        return {
            "id": str(payment.id),
            "project_id": str(payment.project_id),
            "invoice_id": str(payment.invoice_id) if payment.invoice_id else None,
            "amount": str(payment.amount),
            "currency": payment.currency,
            "payment_date": iso(payment.payment_date),
            "payment_method": payment.payment_method,
            "reference": payment.reference,
            "notes": payment.notes,
            "recorded_by_uid": payment.recorded_by_uid,
            "recorded_by_name": payment.recorded_by_name,
            "created_at": iso(payment.created_at),
            "updated_at": iso(payment.updated_at),
        }
