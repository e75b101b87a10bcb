"""initial schema

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


REVIEW_STATES = ("pending", "approved", "rejected")

user_role = postgresql.ENUM(
    "coo",
    "director",
    "bdm",
    "estimator",
    "design_manager",
    "designer",
    "accounts",
    name="user_role",
    create_type=False,
)
proposal_status = postgresql.ENUM(*REVIEW_STATES, name="proposal_status", create_type=False)
timesheet_status = postgresql.ENUM(*REVIEW_STATES, name="timesheet_status", create_type=False)
time_off_status = postgresql.ENUM(*REVIEW_STATES, name="time_off_status", create_type=False)
variation_status = postgresql.ENUM(*REVIEW_STATES, name="variation_status", create_type=False)
project_status = postgresql.ENUM(
    "active", "on_hold", "completed", "cancelled", name="project_status", create_type=False
)
invoice_status = postgresql.ENUM(
    "draft", "sent", "paid", "overdue", "cancelled", name="invoice_status", create_type=False
)
deliverable_status = postgresql.ENUM(
    "pending", "submitted", "approved", "rejected", name="deliverable_status", create_type=False
)
task_status = postgresql.ENUM("todo", "in_progress", "review", "completed", name="task_status", create_type=False)
task_priority = postgresql.ENUM("low", "medium", "high", name="task_priority", create_type=False)
leave_type = postgresql.ENUM("sick", "vacation", "personal", "unpaid", name="leave_type", create_type=False)
notification_status = postgresql.ENUM("pending", "sent", "failed", name="notification_status", create_type=False)

ENUM_TYPES = (
    user_role,
    proposal_status,
    timesheet_status,
    time_off_status,
    variation_status,
    project_status,
    invoice_status,
    deliverable_status,
    task_status,
    task_priority,
    leave_type,
    notification_status,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _review_columns() -> list[sa.Column]:
    return [
        sa.Column("reviewed_by_uid", sa.String(length=128), nullable=True),
        sa.Column("reviewed_by_name", sa.String(length=255), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
    ]


def _project_fk() -> sa.Column:
    return sa.Column("project_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("projects.id"), nullable=False)


def upgrade() -> None:
    for enum_type in ENUM_TYPES:
        enum_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("uid", sa.String(length=128), nullable=False, unique=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "proposals",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("project_name", sa.String(length=255), nullable=False),
        sa.Column("client_company", sa.String(length=255), nullable=False),
        sa.Column("client_email", sa.String(length=320), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("estimated_value", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", proposal_status, nullable=False),
        sa.Column("submitted_by_uid", sa.String(length=128), nullable=False),
        sa.Column("submitted_by_name", sa.String(length=255), nullable=False),
        sa.Column("submitted_by_email", sa.String(length=320), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        *_review_columns(),
        *_timestamps(),
    )
    op.create_index("ix_proposals_submitted_by_uid", "proposals", ["submitted_by_uid"])
    op.create_index("ix_proposals_status", "proposals", ["status"])

    op.create_table(
        "projects",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("project_name", sa.String(length=255), nullable=False),
        sa.Column("project_code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("client_company", sa.String(length=255), nullable=False),
        sa.Column("client_email", sa.String(length=320), nullable=True),
        sa.Column("proposal_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("proposals.id"), nullable=True),
        sa.Column("quote_value", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("allocated_hours", sa.Numeric(12, 2), nullable=False),
        sa.Column("used_hours", sa.Numeric(12, 2), nullable=False),
        sa.Column("remaining_hours", sa.Numeric(12, 2), nullable=False),
        sa.Column("progress_percentage", sa.Integer(), nullable=False),
        sa.Column("total_received", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", project_status, nullable=False),
        sa.Column("design_lead_uid", sa.String(length=128), nullable=True),
        sa.Column("design_lead_name", sa.String(length=255), nullable=True),
        sa.Column("assigned_designer_uids", sa.JSON(), nullable=False),
        sa.Column("deadline", sa.Date(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by_uid", sa.String(length=128), nullable=False),
        sa.Column("created_by_name", sa.String(length=255), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_projects_design_lead_uid", "projects", ["design_lead_uid"])
    op.create_index("ix_projects_status", "projects", ["status"])

    op.create_table(
        "timesheets",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _project_fk(),
        sa.Column("user_uid", sa.String(length=128), nullable=False),
        sa.Column("user_name", sa.String(length=255), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("hours", sa.Numeric(5, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("task_type", sa.String(length=64), nullable=True),
        sa.Column("status", timesheet_status, nullable=False),
        *_review_columns(),
        *_timestamps(),
    )
    op.create_index("ix_timesheets_project_id", "timesheets", ["project_id"])
    op.create_index("ix_timesheets_user_uid", "timesheets", ["user_uid"])

    op.create_table(
        "time_off_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_uid", sa.String(length=128), nullable=False),
        sa.Column("user_name", sa.String(length=255), nullable=False),
        sa.Column("user_email", sa.String(length=320), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("days", sa.Integer(), nullable=False),
        sa.Column("leave_type", leave_type, nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("status", time_off_status, nullable=False),
        *_review_columns(),
        *_timestamps(),
    )
    op.create_index("ix_time_off_requests_user_uid", "time_off_requests", ["user_uid"])

    op.create_table(
        "variations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _project_fk(),
        sa.Column("variation_code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("scope_description", sa.Text(), nullable=False),
        sa.Column("estimated_hours", sa.Numeric(12, 2), nullable=False),
        sa.Column("justification", sa.Text(), nullable=True),
        sa.Column("approved_hours", sa.Numeric(12, 2), nullable=True),
        sa.Column("status", variation_status, nullable=False),
        sa.Column("submitted_by_uid", sa.String(length=128), nullable=False),
        sa.Column("submitted_by_name", sa.String(length=255), nullable=False),
        sa.Column("submitted_by_email", sa.String(length=320), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        *_review_columns(),
        *_timestamps(),
    )
    op.create_index("ix_variations_project_id", "variations", ["project_id"])
    op.create_index("ix_variations_submitted_by_uid", "variations", ["submitted_by_uid"])

    op.create_table(
        "invoices",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _project_fk(),
        sa.Column("invoice_no", sa.String(length=64), nullable=False, unique=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("client_name", sa.String(length=255), nullable=True),
        sa.Column("client_email", sa.String(length=320), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", invoice_status, nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_method", sa.String(length=64), nullable=True),
        sa.Column("created_by_uid", sa.String(length=128), nullable=False),
        sa.Column("created_by_name", sa.String(length=255), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_invoices_project_id", "invoices", ["project_id"])
    op.create_index("ix_invoices_status_due_date", "invoices", ["status", "due_date"])

    op.create_table(
        "payments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _project_fk(),
        sa.Column("invoice_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("invoices.id"), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("payment_method", sa.String(length=64), nullable=True),
        sa.Column("reference", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("recorded_by_uid", sa.String(length=128), nullable=False),
        sa.Column("recorded_by_name", sa.String(length=255), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_payments_project_id", "payments", ["project_id"])
    op.create_index("ix_payments_invoice_id", "payments", ["invoice_id"])

    op.create_table(
        "deliverables",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _project_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("deliverable_type", sa.String(length=64), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("status", deliverable_status, nullable=False),
        sa.Column("files", sa.JSON(), nullable=False),
        sa.Column("submitted_by_uid", sa.String(length=128), nullable=True),
        sa.Column("submitted_by_name", sa.String(length=255), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        *_review_columns(),
        sa.Column("created_by_uid", sa.String(length=128), nullable=False),
        sa.Column("created_by_name", sa.String(length=255), nullable=False),
        sa.Column("created_by_email", sa.String(length=320), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_deliverables_project_id", "deliverables", ["project_id"])

    op.create_table(
        "tasks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _project_fk(),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("assigned_to_uid", sa.String(length=128), nullable=True),
        sa.Column("assigned_to_name", sa.String(length=255), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("priority", task_priority, nullable=False),
        sa.Column("status", task_status, nullable=False),
        sa.Column("created_by_uid", sa.String(length=128), nullable=False),
        sa.Column("created_by_name", sa.String(length=255), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_tasks_project_id", "tasks", ["project_id"])
    op.create_index("ix_tasks_assigned_to_uid", "tasks", ["assigned_to_uid"])

    op.create_table(
        "activities",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("activity_type", sa.String(length=64), nullable=False),
        sa.Column("details", sa.Text(), nullable=False),
        sa.Column("actor_uid", sa.String(length=128), nullable=False),
        sa.Column("actor_name", sa.String(length=255), nullable=False),
        sa.Column("actor_role", sa.String(length=32), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=True),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_activities_project_id", "activities", ["project_id"])
    op.create_index("ix_activities_actor_uid", "activities", ["actor_uid"])
    op.create_index("ix_activities_created_at", "activities", ["created_at"])

    op.create_table(
        "notification_outbox",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("idempotency_key", sa.String(length=255), nullable=False, unique=True),
        sa.Column("template", sa.String(length=64), nullable=False),
        sa.Column("recipients", sa.JSON(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", notification_status, nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_notification_outbox_status", "notification_outbox", ["status"])


def downgrade() -> None:
    op.drop_index("ix_notification_outbox_status", table_name="notification_outbox")
    op.drop_table("notification_outbox")

    op.drop_index("ix_activities_created_at", table_name="activities")
    op.drop_index("ix_activities_actor_uid", table_name="activities")
    op.drop_index("ix_activities_project_id", table_name="activities")
    op.drop_table("activities")

    op.drop_index("ix_tasks_assigned_to_uid", table_name="tasks")
    op.drop_index("ix_tasks_project_id", table_name="tasks")
    op.drop_table("tasks")

    op.drop_index("ix_deliverables_project_id", table_name="deliverables")
    op.drop_table("deliverables")

    op.drop_index("ix_payments_invoice_id", table_name="payments")
    op.drop_index("ix_payments_project_id", table_name="payments")
    op.drop_table("payments")

    op.drop_index("ix_invoices_status_due_date", table_name="invoices")
    op.drop_index("ix_invoices_project_id", table_name="invoices")
    op.drop_table("invoices")

    op.drop_index("ix_variations_submitted_by_uid", table_name="variations")
    op.drop_index("ix_variations_project_id", table_name="variations")
    op.drop_table("variations")

    op.drop_index("ix_time_off_requests_user_uid", table_name="time_off_requests")
    op.drop_table("time_off_requests")

    op.drop_index("ix_timesheets_user_uid", table_name="timesheets")
    op.drop_index("ix_timesheets_project_id", table_name="timesheets")
    op.drop_table("timesheets")

    op.drop_index("ix_projects_status", table_name="projects")
    op.drop_index("ix_projects_design_lead_uid", table_name="projects")
    op.drop_table("projects")

    op.drop_index("ix_proposals_status", table_name="proposals")
    op.drop_index("ix_proposals_submitted_by_uid", table_name="proposals")
    op.drop_table("proposals")

    op.drop_index("ix_users_role", table_name="users")
    op.drop_table("users")

    for enum_type in reversed(ENUM_TYPES):
        enum_type.drop(op.get_bind(), checkfirst=True)
