"""Per-entity state machines.

``transition`` is a pure function: it validates a requested action against
the entity's transition table, consults the authorization oracle and
returns the column changes plus the effects to dispatch. Persisting the
changes (with a compare-and-swap on the source status) is the caller's job.
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from ebtracker.core.errors import InvalidStateTransition, ValidationError
from ebtracker.models.entities import (
    DeliverableStatus,
    InvoiceStatus,
    ProjectStatus,
    ReviewStatus,
    TaskStatus,
)
from ebtracker.policy.effects import (
    ActivityEntry,
    Effect,
    InvoiceCredit,
    LedgerAdjustment,
    RecordPayment,
    notify,
)
from ebtracker.policy.oracle import Entity, Principal, ensure_can_perform


class FieldKind(str, enum.Enum):
    TEXT = "text"
    POSITIVE_DECIMAL = "positive_decimal"
    LIST = "list"


@dataclass(frozen=True)
class PayloadField:
    name: str
    kind: FieldKind = FieldKind.TEXT
    required: bool = True


@dataclass(frozen=True)
class TransitionContext:
    entity: Entity
    action: str
    record: Any
    project: Any | None
    actor: Principal
    actor_name: str
    values: dict[str, Any]
    now: datetime

    @property
    def idempotency_key(self) -> str:
        return f"{self.entity.value}:{self.record.id}:{self.action}"


ChangeBuilder = Callable[[TransitionContext], dict[str, Any]]
EffectBuilder = Callable[[TransitionContext], list[Effect]]


@dataclass(frozen=True)
class TransitionRule:
    action: str
    sources: frozenset[str]
    target: enum.Enum
    payload: tuple[PayloadField, ...] = ()
    stamp: str | None = None
    review: bool = False
    changes: ChangeBuilder | None = None
    effects: EffectBuilder | None = None


@dataclass(frozen=True)
class TransitionResult:
    entity: Entity
    action: str
    record_id: Any
    source_status: str
    target_status: enum.Enum
    changes: dict[str, Any]
    effects: list[Effect] = field(default_factory=list)


CENTS = Decimal("0.01")
REASON = PayloadField("reason")
NOTES = PayloadField("notes", required=False)


def _status_value(status: Any) -> str:
    return status.value if isinstance(status, enum.Enum) else str(status)


def _to_positive_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = Decimal(str(value))
        if not number.is_finite():
            return None
        number = number.quantize(CENTS, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        return None
    if number <= 0:
        return None
    return number


def validate_payload(fields: tuple[PayloadField, ...], payload: Mapping[str, Any]) -> dict[str, Any]:
    """Validate transition payload fields, reporting every bad field at once."""

    values: dict[str, Any] = {}
    invalid: list[str] = []

    for expected in fields:
        raw = payload.get(expected.name)
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            if expected.required:
                invalid.append(expected.name)
            continue

        if expected.kind == FieldKind.TEXT:
            if not isinstance(raw, str):
                invalid.append(expected.name)
                continue
            values[expected.name] = raw.strip()
        elif expected.kind == FieldKind.POSITIVE_DECIMAL:
            number = _to_positive_decimal(raw)
            if number is None:
                invalid.append(expected.name)
                continue
            values[expected.name] = number
        elif expected.kind == FieldKind.LIST:
            if not isinstance(raw, (list, tuple)):
                invalid.append(expected.name)
                continue
            values[expected.name] = list(raw)

    if invalid:
        raise ValidationError(f"Missing or invalid fields: {', '.join(invalid)}.", fields=invalid)
    return values


def _activity(ctx: TransitionContext, activity_type: str, details: str) -> ActivityEntry:
    project_id = getattr(ctx.record, "project_id", None)
    if ctx.entity == Entity.PROJECT:
        project_id = ctx.record.id
    return ActivityEntry(
        activity_type=activity_type,
        details=details,
        entity_type=ctx.entity.value,
        entity_id=str(ctx.record.id),
        project_id=project_id,
    )


# Proposals


def _proposal_effects(ctx: TransitionContext) -> list[Effect]:
    proposal = ctx.record
    verb = "approved" if ctx.action == "approve" else "rejected"
    template = "proposalApproved" if ctx.action == "approve" else "proposalRejected"
    return [
        _activity(ctx, f"proposal_{verb}", f"Proposal '{proposal.project_name}' {verb} by {ctx.actor_name}"),
        *notify(
            template,
            [proposal.submitted_by_email],
            idempotency_key=ctx.idempotency_key,
            data={
                "project_name": proposal.project_name,
                "client_company": proposal.client_company,
                "reviewer": ctx.actor_name,
                "notes": ctx.values.get("reason") or ctx.values.get("notes") or "",
            },
        ),
    ]


# Projects


def _project_effects(ctx: TransitionContext) -> list[Effect]:
    project = ctx.record
    return [
        _activity(
            ctx,
            f"project_{ctx.action}",
            f"Project {project.project_code} set to {PROJECT_TRANSITIONS[ctx.action].target.value} by {ctx.actor_name}",
        )
    ]


# Timesheets


def _timesheet_approve_effects(ctx: TransitionContext) -> list[Effect]:
    timesheet = ctx.record
    return [
        LedgerAdjustment(project_id=timesheet.project_id, field="used_hours", delta=Decimal(timesheet.hours)),
        _activity(
            ctx,
            "timesheet_approved",
            f"Timesheet of {timesheet.hours}h by {timesheet.user_name} approved by {ctx.actor_name}",
        ),
    ]


def _timesheet_reject_effects(ctx: TransitionContext) -> list[Effect]:
    timesheet = ctx.record
    return [
        _activity(
            ctx,
            "timesheet_rejected",
            f"Timesheet of {timesheet.hours}h by {timesheet.user_name} rejected by {ctx.actor_name}",
        )
    ]


# Time-off requests


def _time_off_effects(ctx: TransitionContext) -> list[Effect]:
    request = ctx.record
    verb = "approved" if ctx.action == "approve" else "rejected"
    template = "timeRequestApproved" if ctx.action == "approve" else "timeRequestRejected"
    return [
        _activity(
            ctx,
            f"time_off_{verb}",
            f"{request.days} day(s) of {_status_value(request.leave_type)} leave for {request.user_name} {verb}",
        ),
        *notify(
            template,
            [request.user_email],
            idempotency_key=ctx.idempotency_key,
            data={
                "user_name": request.user_name,
                "start_date": request.start_date.isoformat(),
                "end_date": request.end_date.isoformat(),
                "days": request.days,
                "reviewer": ctx.actor_name,
                "notes": ctx.values.get("reason") or ctx.values.get("notes") or "",
            },
        ),
    ]


# Variations


def _variation_approve_changes(ctx: TransitionContext) -> dict[str, Any]:
    return {"approved_hours": ctx.values["approved_hours"]}


def _variation_effects(ctx: TransitionContext) -> list[Effect]:
    variation = ctx.record
    effects: list[Effect] = []
    if ctx.action == "approve":
        approved_hours = ctx.values["approved_hours"]
        effects.append(
            LedgerAdjustment(project_id=variation.project_id, field="allocated_hours", delta=approved_hours)
        )
        details = f"Variation {variation.variation_code} approved for {approved_hours}h by {ctx.actor_name}"
        template = "variationApproved"
    else:
        details = f"Variation {variation.variation_code} rejected by {ctx.actor_name}"
        template = "variationRejected"

    verb = "approved" if ctx.action == "approve" else "rejected"
    effects.append(_activity(ctx, f"variation_{verb}", details))
    effects.extend(
        notify(
            template,
            [variation.submitted_by_email],
            idempotency_key=ctx.idempotency_key,
            data={
                "variation_code": variation.variation_code,
                "approved_hours": str(ctx.values.get("approved_hours") or ""),
                "reviewer": ctx.actor_name,
                "notes": ctx.values.get("reason") or ctx.values.get("notes") or "",
            },
        )
    )
    return effects


# Invoices


def _invoice_client_email(ctx: TransitionContext) -> str | None:
    invoice = ctx.record
    if invoice.client_email:
        return invoice.client_email
    return getattr(ctx.project, "client_email", None)


def _invoice_send_effects(ctx: TransitionContext) -> list[Effect]:
    invoice = ctx.record
    return [
        _activity(ctx, "invoice_sent", f"Invoice {invoice.invoice_no} sent by {ctx.actor_name}"),
        *notify(
            "invoiceGenerated",
            [_invoice_client_email(ctx)],
            idempotency_key=ctx.idempotency_key,
            data={
                "invoice_no": invoice.invoice_no,
                "amount": str(invoice.amount),
                "currency": invoice.currency,
                "due_date": invoice.due_date.isoformat(),
                "client_name": invoice.client_name or "",
            },
        ),
    ]


def outstanding_balance(invoice: Any) -> Decimal:
    return Decimal(invoice.amount) - Decimal(invoice.paid_amount or 0)


def _paid_amount(ctx: TransitionContext) -> Decimal:
    """The payment that closes the invoice: the outstanding balance unless given."""

    outstanding = outstanding_balance(ctx.record)
    amount = ctx.values.get("paid_amount") or outstanding
    if amount > outstanding:
        raise ValidationError(
            f"Paid amount exceeds the outstanding balance of {outstanding}.", fields=["paid_amount"]
        )
    return amount


def _invoice_paid_changes(ctx: TransitionContext) -> dict[str, Any]:
    if ctx.values.get("payment_method"):
        return {"payment_method": ctx.values["payment_method"]}
    return {}


def _invoice_paid_effects(ctx: TransitionContext) -> list[Effect]:
    invoice = ctx.record
    amount = _paid_amount(ctx)
    effects: list[Effect] = []
    if amount > 0:
        effects += [
            RecordPayment(
                project_id=invoice.project_id,
                invoice_id=invoice.id,
                amount=amount,
                currency=invoice.currency,
                payment_date=ctx.now.date(),
                payment_method=ctx.values.get("payment_method"),
                reference=invoice.invoice_no,
            ),
            InvoiceCredit(invoice_id=invoice.id, delta=amount),
            LedgerAdjustment(project_id=invoice.project_id, field="total_received", delta=amount),
        ]
    effects.append(_activity(ctx, "invoice_paid", f"Invoice {invoice.invoice_no} paid ({amount} {invoice.currency})"))
    return effects


def _invoice_status_effects(ctx: TransitionContext) -> list[Effect]:
    invoice = ctx.record
    target = INVOICE_TRANSITIONS[ctx.action].target.value
    return [_activity(ctx, f"invoice_{target}", f"Invoice {invoice.invoice_no} marked {target}")]


# Deliverables


def _deliverable_submit_changes(ctx: TransitionContext) -> dict[str, Any]:
    deliverable = ctx.record
    return {
        "submitted_by_uid": ctx.actor.uid,
        "submitted_by_name": ctx.actor_name,
        "files": list(deliverable.files or []) + ctx.values.get("files", []),
    }


def _deliverable_submit_effects(ctx: TransitionContext) -> list[Effect]:
    deliverable = ctx.record
    return [
        _activity(ctx, "deliverable_submitted", f"Deliverable '{deliverable.name}' submitted by {ctx.actor_name}"),
        *notify(
            "deliverableSubmitted",
            [deliverable.created_by_email],
            idempotency_key=ctx.idempotency_key,
            data={"deliverable_name": deliverable.name, "submitted_by": ctx.actor_name},
        ),
    ]


def _deliverable_review_effects(ctx: TransitionContext) -> list[Effect]:
    deliverable = ctx.record
    verb = "approved" if ctx.action == "approve" else "rejected"
    return [_activity(ctx, f"deliverable_{verb}", f"Deliverable '{deliverable.name}' {verb} by {ctx.actor_name}")]


def _review_pair(effects: EffectBuilder | None, *, approve_effects: EffectBuilder | None = None):
    pending = frozenset({ReviewStatus.PENDING.value})
    return {
        "approve": TransitionRule(
            action="approve",
            sources=pending,
            target=ReviewStatus.APPROVED,
            payload=(NOTES,),
            review=True,
            effects=approve_effects or effects,
        ),
        "reject": TransitionRule(
            action="reject",
            sources=pending,
            target=ReviewStatus.REJECTED,
            payload=(REASON,),
            review=True,
            effects=effects,
        ),
    }


PROPOSAL_TRANSITIONS = _review_pair(_proposal_effects)

TIMESHEET_TRANSITIONS = _review_pair(_timesheet_reject_effects, approve_effects=_timesheet_approve_effects)

TIME_OFF_TRANSITIONS = _review_pair(_time_off_effects)

VARIATION_TRANSITIONS = {
    "approve": TransitionRule(
        action="approve",
        sources=frozenset({ReviewStatus.PENDING.value}),
        target=ReviewStatus.APPROVED,
        payload=(PayloadField("approved_hours", FieldKind.POSITIVE_DECIMAL), NOTES),
        review=True,
        changes=_variation_approve_changes,
        effects=_variation_effects,
    ),
    "reject": TransitionRule(
        action="reject",
        sources=frozenset({ReviewStatus.PENDING.value}),
        target=ReviewStatus.REJECTED,
        payload=(REASON,),
        review=True,
        effects=_variation_effects,
    ),
}

_OPEN_PROJECT = frozenset({ProjectStatus.ACTIVE.value, ProjectStatus.ON_HOLD.value})

PROJECT_TRANSITIONS = {
    "hold": TransitionRule(
        action="hold",
        sources=frozenset({ProjectStatus.ACTIVE.value}),
        target=ProjectStatus.ON_HOLD,
        effects=_project_effects,
    ),
    "resume": TransitionRule(
        action="resume",
        sources=frozenset({ProjectStatus.ON_HOLD.value}),
        target=ProjectStatus.ACTIVE,
        effects=_project_effects,
    ),
    "complete": TransitionRule(
        action="complete",
        sources=_OPEN_PROJECT,
        target=ProjectStatus.COMPLETED,
        stamp="completed_at",
        effects=_project_effects,
    ),
    "cancel": TransitionRule(
        action="cancel",
        sources=_OPEN_PROJECT,
        target=ProjectStatus.CANCELLED,
        effects=_project_effects,
    ),
}

INVOICE_TRANSITIONS = {
    "send": TransitionRule(
        action="send",
        sources=frozenset({InvoiceStatus.DRAFT.value}),
        target=InvoiceStatus.SENT,
        stamp="sent_at",
        effects=_invoice_send_effects,
    ),
    "mark_paid": TransitionRule(
        action="mark_paid",
        sources=frozenset({InvoiceStatus.SENT.value, InvoiceStatus.OVERDUE.value}),
        target=InvoiceStatus.PAID,
        payload=(
            PayloadField("paid_amount", FieldKind.POSITIVE_DECIMAL, required=False),
            PayloadField("payment_method", required=False),
        ),
        stamp="paid_at",
        changes=_invoice_paid_changes,
        effects=_invoice_paid_effects,
    ),
    # Payments recorded against the invoice covered the whole amount.
    "settle": TransitionRule(
        action="settle",
        sources=frozenset({InvoiceStatus.SENT.value, InvoiceStatus.OVERDUE.value}),
        target=InvoiceStatus.PAID,
        stamp="paid_at",
        effects=_invoice_status_effects,
    ),
    "mark_overdue": TransitionRule(
        action="mark_overdue",
        sources=frozenset({InvoiceStatus.SENT.value}),
        target=InvoiceStatus.OVERDUE,
        effects=_invoice_status_effects,
    ),
    "cancel": TransitionRule(
        action="cancel",
        sources=frozenset({InvoiceStatus.DRAFT.value, InvoiceStatus.SENT.value, InvoiceStatus.OVERDUE.value}),
        target=InvoiceStatus.CANCELLED,
        effects=_invoice_status_effects,
    ),
}

DELIVERABLE_TRANSITIONS = {
    "submit": TransitionRule(
        action="submit",
        sources=frozenset({DeliverableStatus.PENDING.value}),
        target=DeliverableStatus.SUBMITTED,
        payload=(PayloadField("files", FieldKind.LIST, required=False),),
        stamp="submitted_at",
        changes=_deliverable_submit_changes,
        effects=_deliverable_submit_effects,
    ),
    "approve": TransitionRule(
        action="approve",
        sources=frozenset({DeliverableStatus.SUBMITTED.value}),
        target=DeliverableStatus.APPROVED,
        payload=(NOTES,),
        review=True,
        effects=_deliverable_review_effects,
    ),
    "reject": TransitionRule(
        action="reject",
        sources=frozenset({DeliverableStatus.SUBMITTED.value}),
        target=DeliverableStatus.REJECTED,
        payload=(REASON,),
        review=True,
        effects=_deliverable_review_effects,
    ),
}

TASK_TRANSITIONS = {
    "start": TransitionRule(
        action="start",
        sources=frozenset({TaskStatus.TODO.value}),
        target=TaskStatus.IN_PROGRESS,
    ),
    "submit_for_review": TransitionRule(
        action="submit_for_review",
        sources=frozenset({TaskStatus.IN_PROGRESS.value}),
        target=TaskStatus.REVIEW,
    ),
    "request_changes": TransitionRule(
        action="request_changes",
        sources=frozenset({TaskStatus.REVIEW.value}),
        target=TaskStatus.IN_PROGRESS,
    ),
    "complete": TransitionRule(
        action="complete",
        sources=frozenset({TaskStatus.REVIEW.value}),
        target=TaskStatus.COMPLETED,
        stamp="completed_at",
    ),
}

TRANSITIONS: dict[Entity, dict[str, TransitionRule]] = {
    Entity.PROPOSAL: PROPOSAL_TRANSITIONS,
    Entity.PROJECT: PROJECT_TRANSITIONS,
    Entity.TIMESHEET: TIMESHEET_TRANSITIONS,
    Entity.TIME_OFF: TIME_OFF_TRANSITIONS,
    Entity.VARIATION: VARIATION_TRANSITIONS,
    Entity.INVOICE: INVOICE_TRANSITIONS,
    Entity.DELIVERABLE: DELIVERABLE_TRANSITIONS,
    Entity.TASK: TASK_TRANSITIONS,
}


def transition(
    entity: Entity,
    record: Any,
    action: str,
    payload: Mapping[str, Any] | None,
    actor: Principal,
    *,
    actor_name: str | None = None,
    project: Any | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    """Compute the outcome of ``action`` on ``record``.

    Raises ``ValidationError`` for unknown actions or bad payloads,
    ``Forbidden`` when the actor is outside the approver set and
    ``InvalidStateTransition`` when the record is not in an eligible source
    status. Authorization is checked before the status so that callers
    without permission learn nothing about the record's state.
    """

    rule = TRANSITIONS.get(entity, {}).get(action)
    if rule is None:
        raise ValidationError(f"Unknown {entity.value} action '{action}'.", fields=["action"])

    ensure_can_perform(actor, entity, action, record, project=project)

    current_status = _status_value(record.status)
    if current_status not in rule.sources:
        raise InvalidStateTransition(entity=entity.value, current_status=current_status, action=action)

    values = validate_payload(rule.payload, payload or {})
    now = now or datetime.utcnow()
    ctx = TransitionContext(
        entity=entity,
        action=action,
        record=record,
        project=project,
        actor=actor,
        actor_name=actor_name or getattr(actor, "name", actor.uid),
        values=values,
        now=now,
    )

    changes: dict[str, Any] = {"status": rule.target, "updated_at": now}
    if rule.stamp:
        changes[rule.stamp] = now
    if rule.review:
        changes.update(
            reviewed_by_uid=actor.uid,
            reviewed_by_name=ctx.actor_name,
            reviewed_at=now,
            review_notes=values.get("reason") or values.get("notes"),
        )
    if rule.changes is not None:
        changes.update(rule.changes(ctx))

    effects = rule.effects(ctx) if rule.effects is not None else []
    return TransitionResult(
        entity=entity,
        action=action,
        record_id=record.id,
        source_status=current_status,
        target_status=rule.target,
        changes=changes,
        effects=effects,
    )
