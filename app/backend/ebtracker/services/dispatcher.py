"""Effect dispatcher and notification outbox.

``apply`` runs inside the caller's transaction: ledger increments, activity
rows, payment rows and outbox rows commit or roll back together with the
status change that produced them. ``deliver`` runs after commit and hands
outbox rows to the notification sender; a failed delivery is logged,
recorded on the outbox row and never raised.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ebtracker.core.auth import RequestUserContext
from ebtracker.core.errors import Conflict
from ebtracker.integrations.email import NotificationSender, render
from ebtracker.models.entities import (
    Activity,
    InboxNotification,
    NotificationKind,
    NotificationOutbox,
    NotificationStatus,
    Payment,
)
from ebtracker.policy.effects import (
    ActivityEntry,
    Effect,
    InvoiceCredit,
    LedgerAdjustment,
    Notification,
    RecordPayment,
)
from ebtracker.repositories.workflow_repository import WorkflowRepository

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


def _inbox_kind(template: str) -> NotificationKind:
    if template.endswith("Rejected"):
        return NotificationKind.WARNING
    if template.endswith(("Approved", "Received")):
        return NotificationKind.SUCCESS
    return NotificationKind.INFO


@dataclass(frozen=True, slots=True)
class DeliveryOutcome:
    idempotency_key: str
    status: NotificationStatus
    error: str | None = None


class EffectDispatcher:
    def __init__(self, db: Session, *, sender: NotificationSender, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        self.db = db
        self.sender = sender
        self.max_attempts = max_attempts
        self.repository = WorkflowRepository(db)

    # ---------- In-transaction effects ----------
    def apply(self, effects: Iterable[Effect], *, actor: RequestUserContext) -> list[UUID]:
        """Execute effects in the current transaction and return queued outbox ids."""

        queued: list[UUID] = []
        for effect in effects:
            if isinstance(effect, LedgerAdjustment):
                self.repository.adjust_project_ledger(effect.project_id, field=effect.field, delta=effect.delta)
            elif isinstance(effect, ActivityEntry):
                self.record_activity(effect, actor=actor)
            elif isinstance(effect, RecordPayment):
                self._record_payment(effect, actor=actor)
            elif isinstance(effect, InvoiceCredit):
                self.credit_invoice(effect)
            elif isinstance(effect, Notification):
                row = self.enqueue(effect)
                if row is not None:
                    queued.append(row.id)
            else:
                raise TypeError(f"Unsupported effect: {effect!r}")
        return queued

    def record_activity(self, entry: ActivityEntry, *, actor: RequestUserContext) -> Activity:
        return self.repository.add(
            Activity(
                activity_type=entry.activity_type,
                details=entry.details,
                actor_uid=actor.uid,
                actor_name=actor.name,
                actor_role=actor.role.value,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                project_id=entry.project_id,
                created_at=datetime.utcnow(),
            )
        )

    def _record_payment(self, effect: RecordPayment, *, actor: RequestUserContext) -> Payment:
        now = datetime.utcnow()
        return self.repository.add(
            Payment(
                project_id=effect.project_id,
                invoice_id=effect.invoice_id,
                amount=effect.amount,
                currency=effect.currency,
                payment_date=effect.payment_date,
                payment_method=effect.payment_method,
                reference=effect.reference,
                recorded_by_uid=actor.uid,
                recorded_by_name=actor.name,
                created_at=now,
                updated_at=now,
            )
        )

    def credit_invoice(self, effect: InvoiceCredit) -> None:
        if self.repository.credit_invoice(effect.invoice_id, delta=effect.delta) is None:
            raise Conflict("Invoice balance changed concurrently; reload and try again.")

    def enqueue(self, notification: Notification) -> NotificationOutbox | None:
        """Queue a notification once per idempotency key.

        Recipients who are active users also get an in-app inbox entry.
        """

        if self.repository.get_outbox_by_key(notification.idempotency_key) is not None:
            logger.info("Notification %s already queued", notification.idempotency_key)
            return None

        now = datetime.utcnow()
        self._add_inbox_entries(notification, now=now)
        return self.repository.add(
            NotificationOutbox(
                idempotency_key=notification.idempotency_key,
                template=notification.template,
                recipients=list(notification.recipients),
                payload=dict(notification.data),
                status=NotificationStatus.PENDING,
                attempts=0,
                created_at=now,
                updated_at=now,
            )
        )

    def _add_inbox_entries(self, notification: Notification, *, now: datetime) -> None:
        user_uids = self.repository.active_user_uids_for_emails(notification.recipients)
        if not user_uids:
            return
        title, message = render(notification.template, dict(notification.data))
        for user_uid in user_uids:
            self.db.add(
                InboxNotification(
                    user_uid=user_uid,
                    title=title,
                    message=message,
                    kind=_inbox_kind(notification.template),
                    source_key=notification.idempotency_key,
                    read=False,
                    created_at=now,
                )
            )
        self.db.flush()

    # ---------- After-commit delivery ----------
    def deliver(self, outbox_ids: Iterable[UUID]) -> list[DeliveryOutcome]:
        outcomes: list[DeliveryOutcome] = []
        for outbox_id in outbox_ids:
            row = self.repository.get(NotificationOutbox, outbox_id)
            if row is None or row.status == NotificationStatus.SENT:
                continue
            outcomes.append(self._deliver_row(row))
        return outcomes

    def retry_pending(self) -> list[DeliveryOutcome]:
        rows = self.repository.list_undelivered_notifications(max_attempts=self.max_attempts)
        return [self._deliver_row(row) for row in rows]

    def _deliver_row(self, row: NotificationOutbox) -> DeliveryOutcome:
        key = row.idempotency_key
        row.attempts += 1
        row.updated_at = datetime.utcnow()
        try:
            self.sender.send(list(row.recipients), row.template, dict(row.payload))
        except Exception as exc:
            logger.warning("Notification %s failed (attempt %d)", key, row.attempts, exc_info=True)
            row.status = NotificationStatus.FAILED
            row.last_error = str(exc)[:2000]
        else:
            row.status = NotificationStatus.SENT
            row.sent_at = datetime.utcnow()
            row.last_error = None

        outcome = DeliveryOutcome(idempotency_key=key, status=row.status, error=row.last_error)
        try:
            self.db.commit()
        except SQLAlchemyError:
            logger.error("Could not record delivery state for notification %s", key, exc_info=True)
            self.db.rollback()
        return outcome
