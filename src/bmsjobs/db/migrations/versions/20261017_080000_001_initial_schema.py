"""Initial schema: notification queue and monitored entities.

Revision ID: 001
Revises:
Create Date: 2026-10-17 08:00:00.000000+00:00

Creates:
- notifications (queue with retry bookkeeping)
- leases, post_dated_cheques, compliance_schedules, documents, assets
  (each with reminder_ledger JSONB and an optimistic-lock version)
- staff_members (manager reminder recipients)
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _common_columns() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def _tracking_columns() -> list[sa.Column]:
    return [
        sa.Column(
            "reminder_ledger",
            postgresql.JSONB(),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column("version", sa.Integer(), server_default="1", nullable=False),
    ]


def upgrade() -> None:
    """Apply migration: create all tables."""
    op.create_table(
        "notifications",
        *_common_columns(),
        sa.Column("recipient", sa.String(255), nullable=False),
        sa.Column("recipient_name", sa.String(255), nullable=True),
        sa.Column("template_kind", sa.String(50), nullable=False),
        sa.Column("subject", sa.String(500), nullable=True),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("entity_type", sa.String(50), nullable=True),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_notifications"),
    )
    op.create_index(
        "ix_notifications_status_next_retry_at",
        "notifications",
        ["status", "next_retry_at", "created_at"],
    )
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])
    op.create_index("ix_notifications_entity", "notifications", ["entity_type", "entity_id"])

    op.create_table(
        "leases",
        *_common_columns(),
        sa.Column("lease_number", sa.String(50), nullable=False),
        sa.Column("tenant_name", sa.String(255), nullable=False),
        sa.Column("tenant_email", sa.String(255), nullable=True),
        sa.Column("property_name", sa.String(255), nullable=False),
        sa.Column("unit_number", sa.String(50), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        *_tracking_columns(),
        sa.PrimaryKeyConstraint("id", name="pk_leases"),
        sa.UniqueConstraint("lease_number", name="uq_leases_lease_number"),
    )
    op.create_index("ix_leases_status_end_date", "leases", ["status", "end_date"])

    op.create_table(
        "post_dated_cheques",
        *_common_columns(),
        sa.Column("cheque_number", sa.String(50), nullable=False),
        sa.Column("bank_name", sa.String(255), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("tenant_name", sa.String(255), nullable=False),
        sa.Column("tenant_email", sa.String(255), nullable=True),
        sa.Column("cheque_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        *_tracking_columns(),
        sa.PrimaryKeyConstraint("id", name="pk_post_dated_cheques"),
    )
    op.create_index(
        "ix_post_dated_cheques_status_cheque_date",
        "post_dated_cheques",
        ["status", "cheque_date"],
    )

    op.create_table(
        "compliance_schedules",
        *_common_columns(),
        sa.Column("schedule_number", sa.String(50), nullable=False),
        sa.Column("requirement_name", sa.String(255), nullable=False),
        sa.Column("property_name", sa.String(255), nullable=False),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        *_tracking_columns(),
        sa.PrimaryKeyConstraint("id", name="pk_compliance_schedules"),
        sa.UniqueConstraint("schedule_number", name="uq_compliance_schedules_schedule_number"),
    )
    op.create_index(
        "ix_compliance_schedules_status_due_date",
        "compliance_schedules",
        ["status", "due_date"],
    )

    op.create_table(
        "documents",
        *_common_columns(),
        sa.Column("document_number", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("document_type", sa.String(100), nullable=False),
        sa.Column("owner_label", sa.String(255), nullable=True),
        sa.Column("contact_name", sa.String(255), nullable=True),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        *_tracking_columns(),
        sa.PrimaryKeyConstraint("id", name="pk_documents"),
        sa.UniqueConstraint("document_number", name="uq_documents_document_number"),
    )
    op.create_index("ix_documents_status_expiry_date", "documents", ["status", "expiry_date"])

    op.create_table(
        "assets",
        *_common_columns(),
        sa.Column("asset_number", sa.String(50), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("property_name", sa.String(255), nullable=False),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("warranty_expiry_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        *_tracking_columns(),
        sa.PrimaryKeyConstraint("id", name="pk_assets"),
        sa.UniqueConstraint("asset_number", name="uq_assets_asset_number"),
    )
    op.create_index(
        "ix_assets_status_warranty_expiry_date",
        "assets",
        ["status", "warranty_expiry_date"],
    )

    op.create_table(
        "staff_members",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_staff_members"),
        sa.UniqueConstraint("email", name="uq_staff_members_email"),
    )
    op.create_index("ix_staff_members_role_active", "staff_members", ["role", "is_active"])


def downgrade() -> None:
    """Revert migration: drop all tables."""
    op.drop_index("ix_staff_members_role_active", table_name="staff_members")
    op.drop_table("staff_members")
    op.drop_index("ix_assets_status_warranty_expiry_date", table_name="assets")
    op.drop_table("assets")
    op.drop_index("ix_documents_status_expiry_date", table_name="documents")
    op.drop_table("documents")
    op.drop_index("ix_compliance_schedules_status_due_date", table_name="compliance_schedules")
    op.drop_table("compliance_schedules")
    op.drop_index("ix_post_dated_cheques_status_cheque_date", table_name="post_dated_cheques")
    op.drop_table("post_dated_cheques")
    op.drop_index("ix_leases_status_end_date", table_name="leases")
    op.drop_table("leases")
    op.drop_index("ix_notifications_entity", table_name="notifications")
    op.drop_index("ix_notifications_created_at", table_name="notifications")
    op.drop_index("ix_notifications_status_next_retry_at", table_name="notifications")
    op.drop_table("notifications")
