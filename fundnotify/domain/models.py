from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from fundnotify.domain.enums import (
    ContactMethod,
    NotificationFrequency,
    NotificationPriority,
    NotificationStatus,
    ReportDeliveryFormat,
)


# Use JSONB on Postgres while keeping a portable JSON column for SQLite test databases.
JsonColumn = JSON().with_variant(JSONB(), "postgresql")
# SQLite stores BIGINT without rowid aliasing, so autoincrement keys fall back to INTEGER there.
BigIntPk = BigInteger().with_variant(Integer(), "sqlite")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_tenant_user_created", "tenant_id", "user_id", "created_at"),
        Index("ix_notifications_user_unread", "user_id", "read_at", "expires_at"),
        Index("ix_notifications_status_next_retry", "status", "next_retry_at"),
        Index("ix_notifications_expires_at", "expires_at"),
        CheckConstraint("retry_count >= 0 AND retry_count <= max_retries", name="ck_notifications_retry_bounds"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    user_id: Mapped[str] = mapped_column(String, index=True)
    notification_type: Mapped[str] = mapped_column(String, index=True)
    channel: Mapped[str] = mapped_column(String, index=True)
    priority: Mapped[str] = mapped_column(String, default=NotificationPriority.NORMAL.value)
    status: Mapped[str] = mapped_column(String, default=NotificationStatus.PENDING.value, index=True)

    title: Mapped[str] = mapped_column(String)
    message: Mapped[str] = mapped_column(Text)
    # "metadata" is reserved on declarative classes, so the attribute carries a suffix.
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", JsonColumn, nullable=True)
    action_url: Mapped[str | None] = mapped_column(String, nullable=True)
    email_subject: Mapped[str | None] = mapped_column(String, nullable=True)
    email_template: Mapped[str | None] = mapped_column(String, nullable=True)
    sms_phone_number: Mapped[str | None] = mapped_column(String, nullable=True)

    related_entity_type: Mapped[str | None] = mapped_column(String, nullable=True)
    related_entity_id: Mapped[str | None] = mapped_column(String, nullable=True)
    sender_id: Mapped[str | None] = mapped_column(String, nullable=True)
    sender_name: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now(), onupdate=_utc_now
    )
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    next_retry_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    max_retries: Mapped[int] = mapped_column(Integer, default=3, server_default="3")


class NotificationAttempt(Base):
    __tablename__ = "notification_attempts"
    __table_args__ = (
        Index("ix_notification_attempts_notification_started", "notification_id", "started_at"),
    )

    # Immutable per-attempt history so operators can reconstruct each retry.
    id: Mapped[int] = mapped_column(BigIntPk, primary_key=True, autoincrement=True)
    notification_id: Mapped[str] = mapped_column(
        String, ForeignKey("notifications.id", ondelete="CASCADE"), index=True
    )
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    attempt_no: Mapped[int] = mapped_column(Integer)
    channel: Mapped[str] = mapped_column(String)
    outcome: Mapped[str] = mapped_column(String, index=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class NotificationSettings(Base):
    __tablename__ = "notification_settings"
    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", name="uq_notification_settings_tenant_user"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String, index=True)
    user_id: Mapped[str] = mapped_column(String, index=True)

    # Channel toggles.
    email_notifications: Mapped[bool] = mapped_column(Boolean, default=False)
    portfolio_notifications: Mapped[bool] = mapped_column(Boolean, default=False)
    report_notifications: Mapped[bool] = mapped_column(Boolean, default=False)
    investor_activity_notifications: Mapped[bool] = mapped_column(Boolean, default=False)
    system_update_notifications: Mapped[bool] = mapped_column(Boolean, default=False)
    marketing_email_notifications: Mapped[bool] = mapped_column(Boolean, default=False)
    push_notifications: Mapped[bool] = mapped_column(Boolean, default=False)
    sms_notifications: Mapped[bool] = mapped_column(Boolean, default=False)

    # Topic toggles.
    document_uploads: Mapped[bool] = mapped_column(Boolean, default=False)
    general_announcements: Mapped[bool] = mapped_column(Boolean, default=False)
    capital_call_notices: Mapped[bool] = mapped_column(Boolean, default=False)
    distribution_notices: Mapped[bool] = mapped_column(Boolean, default=False)
    k1_tax_forms: Mapped[bool] = mapped_column(Boolean, default=False)
    payment_confirmations: Mapped[bool] = mapped_column(Boolean, default=False)
    quarterly_reports: Mapped[bool] = mapped_column(Boolean, default=False)
    security_alerts: Mapped[bool] = mapped_column(Boolean, default=False)
    urgent_capital_calls: Mapped[bool] = mapped_column(Boolean, default=False)
    new_structure_notifications: Mapped[bool] = mapped_column(Boolean, default=False)

    notification_frequency: Mapped[str] = mapped_column(
        String(20), default=NotificationFrequency.IMMEDIATE.value
    )
    preferred_contact_method: Mapped[str] = mapped_column(String(20), default=ContactMethod.EMAIL.value)
    report_delivery_format: Mapped[str] = mapped_column(String(20), default=ReportDeliveryFormat.BOTH.value)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now(), onupdate=_utc_now
    )
