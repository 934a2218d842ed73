from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Sequence
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from fundnotify.core.config import get_settings
from fundnotify.core.errors import NotificationValidationError
from fundnotify.domain.enums import (
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
)
from fundnotify.domain.models import Notification
from fundnotify.domain.state import as_utc, utc_now
from fundnotify.persistence.guards import require_tenant_id, store_errors
from fundnotify.persistence.repos import notifications as notifications_repo
from fundnotify.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


class NotificationCreate(BaseModel):
    # Unknown fields and enum values are rejected rather than coerced.
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(min_length=1)
    notification_type: NotificationType
    channel: NotificationChannel
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    priority: NotificationPriority = NotificationPriority.NORMAL
    status: NotificationStatus = NotificationStatus.PENDING
    metadata: dict[str, Any] | None = None
    action_url: str | None = None
    email_subject: str | None = None
    email_template: str | None = None
    sms_phone_number: str | None = None
    related_entity_type: str | None = None
    related_entity_id: str | None = None
    sender_id: str | None = None
    sender_name: str | None = None
    expires_at: datetime | None = None
    max_retries: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_lifecycle_fields(self) -> "NotificationCreate":
        if self.status != NotificationStatus.PENDING:
            raise ValueError("status must be pending on creation")
        if self.channel == NotificationChannel.SMS and not (self.sms_phone_number or "").strip():
            raise ValueError("sms_phone_number is required for the sms channel")
        return self


def parse_request(payload: NotificationCreate | Mapping[str, Any], *, index: int | None = None) -> NotificationCreate:
    if isinstance(payload, NotificationCreate):
        return payload
    try:
        return NotificationCreate.model_validate(dict(payload))
    except ValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False, include_input=False)
        where = f"notification[{index}]" if index is not None else "notification"
        raise NotificationValidationError(f"Invalid {where}", index=index, errors=errors) from exc


def _build_row(*, tenant_id: str, request: NotificationCreate, now: datetime) -> Notification:
    settings = get_settings()
    max_retries = request.max_retries
    if max_retries is None:
        max_retries = max(0, int(settings.notify_default_max_retries))
    return Notification(
        id=uuid4().hex,
        tenant_id=tenant_id,
        user_id=request.user_id,
        notification_type=request.notification_type.value,
        channel=request.channel.value,
        priority=request.priority.value,
        status=NotificationStatus.PENDING.value,
        title=request.title,
        message=request.message,
        metadata_json=request.metadata,
        action_url=request.action_url,
        email_subject=request.email_subject,
        email_template=request.email_template,
        sms_phone_number=request.sms_phone_number,
        related_entity_type=request.related_entity_type,
        related_entity_id=request.related_entity_id,
        sender_id=request.sender_id,
        sender_name=request.sender_name,
        expires_at=as_utc(request.expires_at),
        next_retry_at=None,
        retry_count=0,
        max_retries=max_retries,
        created_at=now,
        updated_at=now,
    )


async def create(
    *,
    session: AsyncSession,
    tenant_id: str,
    notification: NotificationCreate | Mapping[str, Any],
) -> Notification:
    tenant_id = require_tenant_id(tenant_id)
    request = parse_request(notification)
    row = _build_row(tenant_id=tenant_id, request=request, now=utc_now())
    async with store_errors(session, "creating notification"):
        notifications_repo.add_notifications(session, [row])
        await session.commit()
        await session.refresh(row)
    increment_counter("notifications.created")
    logger.info(
        "notification created",
        extra={"tenant_id": tenant_id, "notification_id": row.id, "channel": row.channel},
    )
    return row


async def create_many(
    *,
    session: AsyncSession,
    tenant_id: str,
    notifications: Sequence[NotificationCreate | Mapping[str, Any]],
) -> list[Notification]:
    tenant_id = require_tenant_id(tenant_id)
    if not notifications:
        return []
    # Validate every element before touching the store so a bad element persists nothing.
    requests = [parse_request(item, index=idx) for idx, item in enumerate(notifications)]
    now = utc_now()
    rows = [_build_row(tenant_id=tenant_id, request=request, now=now) for request in requests]
    async with store_errors(session, "creating notifications"):
        notifications_repo.add_notifications(session, rows)
        await session.commit()
        for row in rows:
            await session.refresh(row)
    increment_counter("notifications.created", len(rows))
    logger.info("notifications created in bulk", extra={"tenant_id": tenant_id})
    return rows
