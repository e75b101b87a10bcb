"""Side effects produced by a successful transition.

Effects are plain values. The state machine only describes them; the
dispatcher in ``ebtracker.services.dispatcher`` executes them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Union
from uuid import UUID

LEDGER_FIELDS = frozenset({"allocated_hours", "used_hours", "total_received"})


@dataclass(frozen=True, slots=True)
class LedgerAdjustment:
    """Atomic increment of one ledger column on a project."""

    project_id: UUID
    field: str
    delta: Decimal

    def __post_init__(self) -> None:
        if self.field not in LEDGER_FIELDS:
            raise ValueError(f"Unsupported ledger field: {self.field}")


@dataclass(frozen=True, slots=True)
class ActivityEntry:
    activity_type: str
    details: str
    entity_type: str | None = None
    entity_id: str | None = None
    project_id: UUID | None = None


@dataclass(frozen=True, slots=True)
class Notification:
    template: str
    recipients: tuple[str, ...]
    idempotency_key: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class RecordPayment:
    """Insert a payment row. Paired with a ``total_received`` adjustment."""

    project_id: UUID
    amount: Decimal
    currency: str
    payment_date: date
    invoice_id: UUID | None = None
    payment_method: str | None = None
    reference: str | None = None


@dataclass(frozen=True, slots=True)
class InvoiceCredit:
    """Atomic change to an invoice's ``paid_amount``, kept within ``0..amount``."""

    invoice_id: UUID
    delta: Decimal


Effect = Union[LedgerAdjustment, ActivityEntry, Notification, RecordPayment, InvoiceCredit]


def notify(
    template: str,
    recipients: list[str | None] | tuple[str | None, ...],
    *,
    idempotency_key: str,
    data: dict[str, Any] | None = None,
) -> list[Notification]:
    """Build a notification effect, or nothing when no recipient address is known."""

    addresses = tuple(dict.fromkeys(address for address in recipients if address))
    if not addresses:
        return []
    return [Notification(template=template, recipients=addresses, idempotency_key=idempotency_key, data=data or {})]
