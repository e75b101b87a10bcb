"""in-app notifications, project files, invoice balance, user administration

Revision ID: 20261018_0003
Revises: 20261018_0002
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261018_0003"
down_revision = "20261018_0002"
branch_labels = None
depends_on = None


notification_kind = postgresql.ENUM("info", "success", "warning", "error", name="notification_kind", create_type=False)


def upgrade() -> None:
    notification_kind.create(op.get_bind(), checkfirst=True)

    op.add_column("users", sa.Column("role_assigned_by_uid", sa.String(length=128), nullable=True))
    op.add_column("users", sa.Column("department", sa.String(length=128), nullable=True))

    op.execute("UPDATE invoices SET paid_amount = 0 WHERE paid_amount IS NULL")
    op.alter_column(
        "invoices",
        "paid_amount",
        existing_type=sa.Numeric(14, 2),
        nullable=False,
        server_default=sa.text("0"),
    )
    op.create_check_constraint(
        "ck_invoices_paid_within_amount", "invoices", "paid_amount >= 0 AND paid_amount <= amount"
    )

    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_uid", sa.String(length=128), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("kind", notification_kind, nullable=False),
        sa.Column("link", sa.String(length=512), nullable=True),
        sa.Column("source_key", sa.String(length=255), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_notifications_user_uid_read", "notifications", ["user_uid", "read"])

    op.create_table(
        "project_files",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("mime_type", sa.String(length=128), nullable=False),
        sa.Column("category", sa.String(length=64), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("storage_key", sa.String(length=512), nullable=False),
        sa.Column("uploaded_by_uid", sa.String(length=128), nullable=False),
        sa.Column("uploaded_by_name", sa.String(length=255), nullable=False),
        sa.Column("uploaded_by_role", sa.String(length=32), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by_uid", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_project_files_project_id", "project_files", ["project_id"])


def downgrade() -> None:
    op.drop_index("ix_project_files_project_id", table_name="project_files")
    op.drop_table("project_files")

    op.drop_index("ix_notifications_user_uid_read", table_name="notifications")
    op.drop_table("notifications")

    op.drop_constraint("ck_invoices_paid_within_amount", "invoices", type_="check")
    op.alter_column(
        "invoices",
        "paid_amount",
        existing_type=sa.Numeric(14, 2),
        nullable=True,
        server_default=None,
    )

    op.drop_column("users", "department")
    op.drop_column("users", "role_assigned_by_uid")

    notification_kind.drop(op.get_bind(), checkfirst=True)
