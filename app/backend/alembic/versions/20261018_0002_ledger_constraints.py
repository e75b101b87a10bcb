"""ledger and value range checks

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op


# revision identifiers, used by Alembic.
revision = "20261018_0002"
down_revision = "20261018_0001"
branch_labels = None
depends_on = None


CHECKS = (
    ("ck_projects_allocated_hours_non_negative", "projects", "allocated_hours >= 0"),
    (
        "ck_projects_progress_percentage_range",
        "projects",
        "progress_percentage >= 0 AND progress_percentage <= 100",
    ),
    ("ck_timesheets_hours_range", "timesheets", "hours > 0 AND hours <= 24"),
    ("ck_time_off_requests_date_order", "time_off_requests", "end_date >= start_date"),
    ("ck_variations_estimated_hours_positive", "variations", "estimated_hours > 0"),
    ("ck_invoices_amount_positive", "invoices", "amount > 0"),
    ("ck_payments_amount_positive", "payments", "amount > 0"),
)


def upgrade() -> None:
    for name, table, condition in CHECKS:
        op.create_check_constraint(name, table, condition)


def downgrade() -> None:
    for name, table, _ in reversed(CHECKS):
        op.drop_constraint(name, table, type_="check")
