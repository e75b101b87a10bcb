from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from ebtracker.core.auth import RequestUserContext
from ebtracker.core.errors import Forbidden, InvalidStateTransition, ValidationError
from ebtracker.models.entities import (
    DeliverableStatus,
    InvoiceStatus,
    ProjectStatus,
    ReviewStatus,
    Role,
    TaskStatus,
)
from ebtracker.policy.effects import ActivityEntry, InvoiceCredit, LedgerAdjustment, Notification, RecordPayment
from ebtracker.policy.machine import transition
from ebtracker.policy.oracle import Entity

COO = RequestUserContext(uid="coo-1", role=Role.COO, name="Carol COO", email="coo@test.local")
DIRECTOR = RequestUserContext(uid="director-1", role=Role.DIRECTOR, name="Dan Director", email=None)
LEAD = RequestUserContext(uid="lead-1", role=Role.DESIGN_MANAGER, name="Lee Lead", email=None)
DESIGNER = RequestUserContext(uid="designer-1", role=Role.DESIGNER, name="Dee Designer", email=None)

NOW = datetime(2026, 10, 18, 9, 30)


def _project(**overrides: object) -> SimpleNamespace:
    values = {
        "id": uuid.uuid4(),
        "status": ProjectStatus.ACTIVE,
        "project_code": "PRJ-1",
        "design_lead_uid": "lead-1",
        "assigned_designer_uids": ["designer-1"],
        "client_email": "client@test.local",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _timesheet(project: SimpleNamespace, status: ReviewStatus = ReviewStatus.PENDING) -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid.uuid4(),
        project_id=project.id,
        status=status,
        hours=Decimal("7.50"),
        user_uid="designer-1",
        user_name="Dee Designer",
    )


def _proposal(status: ReviewStatus = ReviewStatus.PENDING, email: str | None = "bdm@test.local") -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid.uuid4(),
        status=status,
        project_name="Harbour Bridge",
        client_company="Harbour Authority",
        submitted_by_uid="bdm-1",
        submitted_by_email=email,
    )


def _variation(project: SimpleNamespace) -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid.uuid4(),
        project_id=project.id,
        status=ReviewStatus.PENDING,
        variation_code="VAR-PRJ-1-000001",
        submitted_by_uid="lead-1",
        submitted_by_email="lead@test.local",
    )


def _invoice(project: SimpleNamespace, status: InvoiceStatus = InvoiceStatus.SENT) -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid.uuid4(),
        project_id=project.id,
        status=status,
        invoice_no="INV-00000001",
        amount=Decimal("1200.00"),
        paid_amount=Decimal("200.00"),
        currency="USD",
        due_date=date(2026, 11, 1),
        client_name="Harbour Authority",
        client_email=None,
    )


def test_timesheet_approval_describes_ledger_increment() -> None:
    project = _project()
    timesheet = _timesheet(project)

    result = transition(Entity.TIMESHEET, timesheet, "approve", {}, COO, project=project, now=NOW)

    assert result.source_status == "pending"
    assert result.target_status == ReviewStatus.APPROVED
    assert result.changes["status"] == ReviewStatus.APPROVED
    assert result.changes["reviewed_by_uid"] == "coo-1"
    assert result.changes["reviewed_at"] == NOW
    ledger = [effect for effect in result.effects if isinstance(effect, LedgerAdjustment)]
    assert ledger == [LedgerAdjustment(project_id=project.id, field="used_hours", delta=Decimal("7.50"))]
    assert any(isinstance(effect, ActivityEntry) for effect in result.effects)


def test_transition_does_not_touch_the_record() -> None:
    project = _project()
    timesheet = _timesheet(project)

    transition(Entity.TIMESHEET, timesheet, "approve", {}, COO, project=project)

    assert timesheet.status == ReviewStatus.PENDING


def test_project_lead_may_approve_timesheets_on_their_project() -> None:
    project = _project()

    result = transition(Entity.TIMESHEET, _timesheet(project), "approve", {}, LEAD, project=project)

    assert result.changes["reviewed_by_name"] == "Lee Lead"


@pytest.mark.parametrize(
    ("entity", "record_factory", "action", "payload"),
    [
        (Entity.PROPOSAL, lambda project: _proposal(status=ReviewStatus.APPROVED), "approve", {}),
        (Entity.TIMESHEET, lambda project: _timesheet(project, ReviewStatus.REJECTED), "approve", {}),
        (Entity.INVOICE, lambda project: _invoice(project, InvoiceStatus.DRAFT), "mark_paid", {}),
        (Entity.INVOICE, lambda project: _invoice(project, InvoiceStatus.PAID), "cancel", {}),
        (Entity.PROJECT, lambda project: project, "resume", {}),
        (
            Entity.TASK,
            lambda project: SimpleNamespace(id=uuid.uuid4(), project_id=project.id, status=TaskStatus.TODO),
            "complete",
            {},
        ),
        (
            Entity.DELIVERABLE,
            lambda project: SimpleNamespace(id=uuid.uuid4(), project_id=project.id, status=DeliverableStatus.PENDING),
            "approve",
            {},
        ),
    ],
)
def test_ineligible_source_status_is_rejected(entity, record_factory, action, payload) -> None:
    project = _project()
    record = record_factory(project)

    with pytest.raises(InvalidStateTransition) as exc_info:
        transition(entity, record, action, payload, COO, project=project)

    assert exc_info.value.action == action
    assert exc_info.value.current_status == record.status.value


@pytest.mark.parametrize(
    ("entity", "actor", "record_factory", "action"),
    [
        (Entity.PROPOSAL, DESIGNER, lambda project: _proposal(), "approve"),
        (Entity.VARIATION, DIRECTOR, _variation, "approve"),
        (Entity.TIMESHEET, DESIGNER, _timesheet, "approve"),
        (Entity.INVOICE, LEAD, _invoice, "mark_paid"),
        (Entity.PROJECT, LEAD, lambda project: project, "cancel"),
    ],
)
def test_actor_outside_approver_set_is_forbidden(entity, actor, record_factory, action) -> None:
    project = _project()

    with pytest.raises(Forbidden):
        transition(entity, record_factory(project), action, {"approved_hours": "5"}, actor, project=project)


def test_forbidden_takes_precedence_over_status() -> None:
    project = _project()
    already_approved = _timesheet(project, ReviewStatus.APPROVED)

    with pytest.raises(Forbidden):
        transition(Entity.TIMESHEET, already_approved, "approve", {}, DESIGNER, project=project)


@pytest.mark.parametrize(
    ("entity", "record_factory"),
    [
        (Entity.PROPOSAL, lambda project: _proposal()),
        (Entity.TIMESHEET, _timesheet),
        (
            Entity.TIME_OFF,
            lambda project: SimpleNamespace(id=uuid.uuid4(), status=ReviewStatus.PENDING, user_uid="designer-1"),
        ),
        (Entity.VARIATION, _variation),
        (
            Entity.DELIVERABLE,
            lambda project: SimpleNamespace(id=uuid.uuid4(), project_id=project.id, status=DeliverableStatus.SUBMITTED),
        ),
    ],
)
@pytest.mark.parametrize("payload", [{}, {"reason": "   "}, {"notes": "looks fine"}])
def test_rejection_requires_reason(entity, record_factory, payload) -> None:
    project = _project()

    with pytest.raises(ValidationError) as exc_info:
        transition(entity, record_factory(project), "reject", payload, COO, project=project)

    assert exc_info.value.fields == ["reason"]


def test_rejection_reason_is_stored_as_review_notes() -> None:
    project = _project()

    result = transition(Entity.TIMESHEET, _timesheet(project), "reject", {"reason": " Wrong project "}, COO, project=project)

    assert result.changes["review_notes"] == "Wrong project"
    assert not any(isinstance(effect, LedgerAdjustment) for effect in result.effects)


@pytest.mark.parametrize("approved_hours", [None, "0", "-3", "abc", True, "0.004"])
def test_variation_approval_needs_positive_hours(approved_hours) -> None:
    project = _project()

    with pytest.raises(ValidationError) as exc_info:
        transition(Entity.VARIATION, _variation(project), "approve", {"approved_hours": approved_hours}, COO, project=project)

    assert exc_info.value.fields == ["approved_hours"]


def test_variation_approval_extends_allocation() -> None:
    project = _project()

    result = transition(Entity.VARIATION, _variation(project), "approve", {"approved_hours": "15"}, COO, project=project)

    assert result.changes["approved_hours"] == Decimal("15")
    assert LedgerAdjustment(project_id=project.id, field="allocated_hours", delta=Decimal("15")) in result.effects
    notifications = [effect for effect in result.effects if isinstance(effect, Notification)]
    assert [item.template for item in notifications] == ["variationApproved"]
    assert notifications[0].recipients == ("lead@test.local",)


def test_proposal_notification_is_keyed_by_transition() -> None:
    proposal = _proposal()

    result = transition(Entity.PROPOSAL, proposal, "approve", {}, DIRECTOR)

    notification = next(effect for effect in result.effects if isinstance(effect, Notification))
    assert notification.idempotency_key == f"proposal:{proposal.id}:approve"
    assert notification.template == "proposalApproved"


def test_notification_is_skipped_without_recipient_address() -> None:
    result = transition(Entity.PROPOSAL, _proposal(email=None), "approve", {}, COO)

    assert not any(isinstance(effect, Notification) for effect in result.effects)


def test_mark_paid_defaults_to_outstanding_balance() -> None:
    project = _project()
    invoice = _invoice(project, InvoiceStatus.OVERDUE)

    result = transition(Entity.INVOICE, invoice, "mark_paid", {"payment_method": "wire"}, DIRECTOR, project=project, now=NOW)

    assert "paid_amount" not in result.changes
    assert result.changes["payment_method"] == "wire"
    assert result.changes["paid_at"] == NOW
    payment = next(effect for effect in result.effects if isinstance(effect, RecordPayment))
    assert payment.amount == Decimal("1000.00")
    assert payment.payment_method == "wire"
    assert payment.payment_date == NOW.date()
    assert InvoiceCredit(invoice_id=invoice.id, delta=Decimal("1000.00")) in result.effects
    assert LedgerAdjustment(project_id=project.id, field="total_received", delta=Decimal("1000.00")) in result.effects


def test_mark_paid_rejects_more_than_the_outstanding_balance() -> None:
    project = _project()

    with pytest.raises(ValidationError) as exc_info:
        transition(Entity.INVOICE, _invoice(project), "mark_paid", {"paid_amount": "1000.01"}, COO, project=project)

    assert exc_info.value.fields == ["paid_amount"]


def test_settle_closes_invoice_without_another_payment() -> None:
    project = _project()

    result = transition(Entity.INVOICE, _invoice(project), "settle", {}, COO, project=project, now=NOW)

    assert result.target_status == InvoiceStatus.PAID
    assert result.changes["paid_at"] == NOW
    assert not any(isinstance(effect, (RecordPayment, InvoiceCredit, LedgerAdjustment)) for effect in result.effects)


@pytest.mark.parametrize("raw", ["0.001", "0.004", 0.0049])
def test_amounts_that_round_to_zero_cents_are_rejected(raw: object) -> None:
    project = _project()

    with pytest.raises(ValidationError) as exc_info:
        transition(Entity.INVOICE, _invoice(project), "mark_paid", {"paid_amount": raw}, COO, project=project)

    assert exc_info.value.fields == ["paid_amount"]


def test_positive_amounts_are_rounded_half_up_to_cents() -> None:
    project = _project()

    result = transition(Entity.INVOICE, _invoice(project), "mark_paid", {"paid_amount": "10.005"}, COO, project=project)

    payment = next(effect for effect in result.effects if isinstance(effect, RecordPayment))
    assert payment.amount == Decimal("10.01")


def test_invoice_send_notifies_project_client_when_invoice_has_no_email() -> None:
    project = _project()

    result = transition(Entity.INVOICE, _invoice(project, InvoiceStatus.DRAFT), "send", {}, COO, project=project)

    notification = next(effect for effect in result.effects if isinstance(effect, Notification))
    assert notification.recipients == ("client@test.local",)
    assert "sent_at" in result.changes


def test_project_completion_stamps_completed_at() -> None:
    project = _project(status=ProjectStatus.ON_HOLD)

    result = transition(Entity.PROJECT, project, "complete", {}, LEAD, now=NOW)

    assert result.changes["completed_at"] == NOW
    activity = next(effect for effect in result.effects if isinstance(effect, ActivityEntry))
    assert activity.project_id == project.id


def test_task_assignee_may_start_but_not_complete() -> None:
    project = _project(design_lead_uid="lead-9")
    task = SimpleNamespace(
        id=uuid.uuid4(), project_id=project.id, status=TaskStatus.TODO, assigned_to_uid="designer-1", created_by_uid="coo-1"
    )

    result = transition(Entity.TASK, task, "start", {}, DESIGNER, project=project)
    assert result.target_status == TaskStatus.IN_PROGRESS
    assert result.effects == []

    task.status = TaskStatus.REVIEW
    with pytest.raises(Forbidden):
        transition(Entity.TASK, task, "complete", {}, DESIGNER, project=project)


def test_unknown_action_is_a_validation_error() -> None:
    with pytest.raises(ValidationError) as exc_info:
        transition(Entity.PROPOSAL, _proposal(), "archive", {}, COO)

    assert exc_info.value.fields == ["action"]
