"""add per-user notification settings

Revision ID: 0002_notification_settings
Revises: 0001_notifications
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0002_notification_settings"
down_revision = "0001_notifications"
branch_labels = None
depends_on = None

_TOGGLES = (
    "email_notifications",
    "portfolio_notifications",
    "report_notifications",
    "investor_activity_notifications",
    "system_update_notifications",
    "marketing_email_notifications",
    "push_notifications",
    "sms_notifications",
    "document_uploads",
    "general_announcements",
    "capital_call_notices",
    "distribution_notices",
    "k1_tax_forms",
    "payment_confirmations",
    "quarterly_reports",
    "security_alerts",
    "urgent_capital_calls",
    "new_structure_notifications",
)


def upgrade() -> None:
    # One preferences row per tenant user; toggles default off until the user opts in.
    op.create_table(
        "notification_settings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        *[sa.Column(name, sa.Boolean(), nullable=False, server_default=sa.false()) for name in _TOGGLES],
        sa.Column("notification_frequency", sa.String(length=20), nullable=False, server_default="immediate"),
        sa.Column("preferred_contact_method", sa.String(length=20), nullable=False, server_default="email"),
        sa.Column("report_delivery_format", sa.String(length=20), nullable=False, server_default="both"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "user_id", name="uq_notification_settings_tenant_user"),
    )
    op.create_index("ix_notification_settings_tenant_id", "notification_settings", ["tenant_id"])
    op.create_index("ix_notification_settings_user_id", "notification_settings", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_notification_settings_user_id", table_name="notification_settings")
    op.drop_index("ix_notification_settings_tenant_id", table_name="notification_settings")
    op.drop_table("notification_settings")
