"""Persistence operations shared by the workflow services."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from ebtracker.core.errors import InvalidStateTransition
from ebtracker.models.entities import (
    Activity,
    Deliverable,
    InboxNotification,
    Invoice,
    InvoiceStatus,
    NotificationOutbox,
    NotificationStatus,
    Payment,
    Project,
    ProjectFile,
    Proposal,
    Role,
    Task,
    TimeOffRequest,
    Timesheet,
    User,
    Variation,
)
from ebtracker.policy.ledger import progress_percentage, remaining_hours
from ebtracker.policy.oracle import Entity

ModelT = TypeVar("ModelT")

ENTITY_MODELS: dict[Entity, type] = {
    Entity.PROPOSAL: Proposal,
    Entity.PROJECT: Project,
    Entity.TIMESHEET: Timesheet,
    Entity.TIME_OFF: TimeOffRequest,
    Entity.VARIATION: Variation,
    Entity.INVOICE: Invoice,
    Entity.PAYMENT: Payment,
    Entity.DELIVERABLE: Deliverable,
    Entity.TASK: Task,
}


class WorkflowRepository:
    """Queries, conditional status writes and atomic ledger increments."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Generic record access ----------
    def get(self, model: type[ModelT], record_id: UUID) -> ModelT | None:
        return self.db.scalar(select(model).where(model.id == record_id))

    def add(self, record: ModelT) -> ModelT:
        self.db.add(record)
        self.db.flush()
        return record

    def delete(self, record: Any) -> None:
        self.db.delete(record)
        self.db.flush()

    # ---------- Conditional writes ----------
    def compare_and_set_status(
        self,
        entity: Entity,
        record_id: UUID,
        *,
        action: str,
        expected_status: str,
        changes: dict[str, Any],
    ) -> None:
        """Apply ``changes`` only if the row still holds ``expected_status``.

        A zero row count means another writer moved the record first.
        """

        model = ENTITY_MODELS[entity]
        status_type = model.__table__.c.status.type
        expected = next(member for member in status_type.enum_class if member.value == expected_status)

        result = self.db.execute(
            update(model)
            .where(model.id == record_id, model.status == expected)
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = self.db.scalar(select(model.status).where(model.id == record_id))
            raise InvalidStateTransition(
                entity=entity.value,
                current_status=current.value if current is not None else "missing",
                action=action,
            )

    def adjust_project_ledger(self, project_id: UUID, *, field: str, delta: Decimal) -> Project:
        """Increment one ledger column in SQL, then refresh the derived columns."""

        column = getattr(Project, field)
        now = datetime.utcnow()
        self.db.execute(
            update(Project)
            .where(Project.id == project_id)
            .values({column: column + delta, Project.updated_at: now})
            .execution_options(synchronize_session=False)
        )

        project = self.db.scalar(
            select(Project)
            .where(Project.id == project_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if project is None:
            raise LookupError(f"Project {project_id} does not exist")

        self.db.execute(
            update(Project)
            .where(Project.id == project_id)
            .values(
                remaining_hours=remaining_hours(project.allocated_hours, project.used_hours),
                progress_percentage=progress_percentage(project.allocated_hours, project.used_hours),
            )
            .execution_options(synchronize_session=False)
        )
        return project

    def credit_invoice(self, invoice_id: UUID, *, delta: Decimal) -> Invoice | None:
        """Move ``paid_amount`` by ``delta`` in SQL unless it would leave ``0..amount``.

        Returns the refreshed invoice, or None when the guard rejected the write.
        """

        paid = Invoice.paid_amount + delta
        result = self.db.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id, paid >= 0, paid <= Invoice.amount)
            .values({Invoice.paid_amount: paid, Invoice.updated_at: datetime.utcnow()})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return self.db.scalar(
            select(Invoice).where(Invoice.id == invoice_id).execution_options(populate_existing=True)
        )

    # ---------- Projects ----------
    def get_project_by_code(self, project_code: str) -> Project | None:
        return self.db.scalar(select(Project).where(Project.project_code == project_code))

    def list_projects(
        self,
        *,
        lead_uid: str | None = None,
        designer_uid: str | None = None,
        status: str | None = None,
    ) -> Sequence[Project]:
        query = select(Project)
        if status is not None:
            query = query.where(Project.status == status)
        if lead_uid is not None:
            query = query.where(Project.design_lead_uid == lead_uid)
        projects = self.db.scalars(query.order_by(Project.created_at.desc())).all()
        if designer_uid is not None:
            # JSON membership is not portable across dialects.
            projects = [project for project in projects if designer_uid in (project.assigned_designer_uids or [])]
        return projects

    def project_has_children(self, project_id: UUID) -> bool:
        for model in (Timesheet, Variation, Invoice, Payment, Deliverable, Task, ProjectFile):
            if self.db.scalar(select(model.id).where(model.project_id == project_id).limit(1)) is not None:
                return True
        return False

    # ---------- Users ----------
    def get_user_by_uid(self, uid: str) -> User | None:
        return self.db.scalar(select(User).where(User.uid == uid))

    def list_users(self, *, role: Role | None = None) -> Sequence[User]:
        query = select(User).where(User.active.is_(True))
        if role is not None:
            query = query.where(User.role == role)
        return self.db.scalars(query.order_by(User.name.asc())).all()

    def user_emails_for_roles(self, roles: Sequence[Role]) -> list[str]:
        return [
            email
            for email in self.db.scalars(
                select(User.email).where(User.role.in_(roles), User.active.is_(True), User.email.is_not(None))
            ).all()
            if email
        ]

    def active_user_uids_for_emails(self, emails: Sequence[str]) -> list[str]:
        if not emails:
            return []
        lowered = [email.lower() for email in emails]
        return list(
            self.db.scalars(
                select(User.uid).where(User.email.in_(lowered), User.active.is_(True)).order_by(User.uid.asc())
            ).all()
        )

    # ---------- In-app notifications ----------
    def list_inbox(self, user_uid: str, *, read: bool | None = None, limit: int) -> Sequence[InboxNotification]:
        query = select(InboxNotification).where(InboxNotification.user_uid == user_uid)
        if read is not None:
            query = query.where(InboxNotification.read.is_(read))
        return self.db.scalars(query.order_by(InboxNotification.created_at.desc()).limit(limit)).all()

    def count_unread(self, user_uid: str) -> int:
        return self.db.scalar(
            select(func.count())
            .select_from(InboxNotification)
            .where(InboxNotification.user_uid == user_uid, InboxNotification.read.is_(False))
        ) or 0

    def mark_inbox_read(self, user_uid: str, *, now: datetime) -> int:
        result = self.db.execute(
            update(InboxNotification)
            .where(InboxNotification.user_uid == user_uid, InboxNotification.read.is_(False))
            .values(read=True, read_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def delete_read_inbox(self, user_uid: str) -> int:
        result = self.db.execute(
            delete(InboxNotification)
            .where(InboxNotification.user_uid == user_uid, InboxNotification.read.is_(True))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # ---------- Project files ----------
    def list_project_files(
        self, *, project_id: UUID | None = None, category: str | None = None
    ) -> Sequence[ProjectFile]:
        query = select(ProjectFile).where(ProjectFile.deleted_at.is_(None))
        if project_id is not None:
            query = query.where(ProjectFile.project_id == project_id)
        if category is not None:
            query = query.where(ProjectFile.category == category)
        return self.db.scalars(query.order_by(ProjectFile.created_at.desc())).all()

    # ---------- Child listings ----------
    def list_by_project(self, model: type[ModelT], project_id: UUID) -> Sequence[ModelT]:
        return self.db.scalars(
            select(model).where(model.project_id == project_id).order_by(model.created_at.desc())
        ).all()

    def list_proposals(self, *, submitted_by_uid: str | None = None, status: str | None = None) -> Sequence[Proposal]:
        query = select(Proposal)
        if submitted_by_uid is not None:
            query = query.where(Proposal.submitted_by_uid == submitted_by_uid)
        if status is not None:
            query = query.where(Proposal.status == status)
        return self.db.scalars(query.order_by(Proposal.submitted_at.desc())).all()

    def list_timesheets(
        self,
        *,
        project_id: UUID | None = None,
        user_uid: str | None = None,
        status: str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> Sequence[Timesheet]:
        query = select(Timesheet)
        if project_id is not None:
            query = query.where(Timesheet.project_id == project_id)
        if user_uid is not None:
            query = query.where(Timesheet.user_uid == user_uid)
        if status is not None:
            query = query.where(Timesheet.status == status)
        if date_from is not None:
            query = query.where(Timesheet.work_date >= date_from)
        if date_to is not None:
            query = query.where(Timesheet.work_date <= date_to)
        return self.db.scalars(query.order_by(Timesheet.work_date.desc(), Timesheet.created_at.desc())).all()

    def list_time_off_requests(
        self, *, user_uid: str | None = None, status: str | None = None
    ) -> Sequence[TimeOffRequest]:
        query = select(TimeOffRequest)
        if user_uid is not None:
            query = query.where(TimeOffRequest.user_uid == user_uid)
        if status is not None:
            query = query.where(TimeOffRequest.status == status)
        return self.db.scalars(query.order_by(TimeOffRequest.start_date.desc())).all()

    def list_variations(
        self,
        *,
        project_id: UUID | None = None,
        submitted_by_uid: str | None = None,
        status: str | None = None,
    ) -> Sequence[Variation]:
        query = select(Variation)
        if project_id is not None:
            query = query.where(Variation.project_id == project_id)
        if submitted_by_uid is not None:
            query = query.where(Variation.submitted_by_uid == submitted_by_uid)
        if status is not None:
            query = query.where(Variation.status == status)
        return self.db.scalars(query.order_by(Variation.submitted_at.desc())).all()

    def variation_code_exists(self, code: str) -> bool:
        return self.db.scalar(select(Variation.id).where(Variation.variation_code == code)) is not None

    def invoice_number_exists(self, invoice_no: str) -> bool:
        return self.db.scalar(select(Invoice.id).where(Invoice.invoice_no == invoice_no)) is not None

    def list_invoices(self, *, project_id: UUID | None = None, status: str | None = None) -> Sequence[Invoice]:
        query = select(Invoice)
        if project_id is not None:
            query = query.where(Invoice.project_id == project_id)
        if status is not None:
            query = query.where(Invoice.status == status)
        return self.db.scalars(query.order_by(Invoice.issue_date.desc(), Invoice.created_at.desc())).all()

    def list_overdue_invoices(self, *, as_of: date) -> Sequence[Invoice]:
        return self.db.scalars(
            select(Invoice)
            .where(
                Invoice.status.in_([InvoiceStatus.SENT, InvoiceStatus.OVERDUE]),
                Invoice.due_date < as_of,
            )
            .order_by(Invoice.due_date.asc())
        ).all()

    def list_payments(self, *, project_id: UUID | None = None) -> Sequence[Payment]:
        query = select(Payment)
        if project_id is not None:
            query = query.where(Payment.project_id == project_id)
        return self.db.scalars(query.order_by(Payment.payment_date.desc(), Payment.created_at.desc())).all()

    def list_tasks(
        self,
        *,
        project_id: UUID | None = None,
        assigned_to_uid: str | None = None,
        status: str | None = None,
    ) -> Sequence[Task]:
        query = select(Task)
        if project_id is not None:
            query = query.where(Task.project_id == project_id)
        if assigned_to_uid is not None:
            query = query.where(Task.assigned_to_uid == assigned_to_uid)
        if status is not None:
            query = query.where(Task.status == status)
        return self.db.scalars(query.order_by(Task.created_at.desc())).all()

    # ---------- Activities and outbox ----------
    def list_activities(
        self,
        *,
        limit: int,
        project_id: UUID | None = None,
        entity_type: str | None = None,
        actor_uid: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> Sequence[Activity]:
        query = select(Activity)
        if project_id is not None:
            query = query.where(Activity.project_id == project_id)
        if entity_type is not None:
            query = query.where(Activity.entity_type == entity_type)
        if actor_uid is not None:
            query = query.where(Activity.actor_uid == actor_uid)
        if since is not None:
            query = query.where(Activity.created_at >= since)
        if until is not None:
            query = query.where(Activity.created_at <= until)
        return self.db.scalars(query.order_by(Activity.created_at.desc()).limit(limit)).all()

    def get_outbox_by_key(self, idempotency_key: str) -> NotificationOutbox | None:
        return self.db.scalar(
            select(NotificationOutbox).where(NotificationOutbox.idempotency_key == idempotency_key)
        )

    def list_undelivered_notifications(self, *, max_attempts: int) -> Sequence[NotificationOutbox]:
        return self.db.scalars(
            select(NotificationOutbox)
            .where(
                or_(
                    NotificationOutbox.status == NotificationStatus.PENDING,
                    NotificationOutbox.status == NotificationStatus.FAILED,
                ),
                NotificationOutbox.attempts < max_attempts,
            )
            .order_by(NotificationOutbox.created_at.asc())
        ).all()
