from __future__ import annotations

import logging
from typing import Any, Mapping
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fundnotify.core.errors import NotificationValidationError
from fundnotify.domain.enums import ContactMethod, NotificationFrequency, ReportDeliveryFormat
from fundnotify.domain.models import NotificationSettings
from fundnotify.domain.state import utc_now
from fundnotify.persistence.guards import require_tenant_id, store_errors
from fundnotify.persistence.repos import notification_settings as settings_repo


logger = logging.getLogger(__name__)

CHANNEL_TOGGLES = (
    "email_notifications",
    "portfolio_notifications",
    "report_notifications",
    "investor_activity_notifications",
    "system_update_notifications",
    "marketing_email_notifications",
    "push_notifications",
    "sms_notifications",
)
TOPIC_TOGGLES = (
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
TOGGLE_FIELDS = CHANNEL_TOGGLES + TOPIC_TOGGLES


class NotificationSettingsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email_notifications: bool | None = None
    portfolio_notifications: bool | None = None
    report_notifications: bool | None = None
    investor_activity_notifications: bool | None = None
    system_update_notifications: bool | None = None
    marketing_email_notifications: bool | None = None
    push_notifications: bool | None = None
    sms_notifications: bool | None = None
    document_uploads: bool | None = None
    general_announcements: bool | None = None
    capital_call_notices: bool | None = None
    distribution_notices: bool | None = None
    k1_tax_forms: bool | None = None
    payment_confirmations: bool | None = None
    quarterly_reports: bool | None = None
    security_alerts: bool | None = None
    urgent_capital_calls: bool | None = None
    new_structure_notifications: bool | None = None
    notification_frequency: NotificationFrequency | None = None
    preferred_contact_method: ContactMethod | None = None
    report_delivery_format: ReportDeliveryFormat | None = None


def is_notification_enabled(settings: NotificationSettings | None, field: str) -> bool:
    # Missing preferences mean nothing was opted into.
    if field not in TOGGLE_FIELDS:
        raise NotificationValidationError(f"Unknown notification setting: {field}")
    if settings is None:
        return False
    return bool(getattr(settings, field, False))


def _parse_updates(updates: NotificationSettingsUpdate | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(updates, NotificationSettingsUpdate):
        parsed = updates
    else:
        try:
            parsed = NotificationSettingsUpdate.model_validate(dict(updates))
        except ValidationError as exc:
            errors = exc.errors(include_url=False, include_context=False, include_input=False)
            raise NotificationValidationError("Invalid notification settings", errors=errors) from exc
    values: dict[str, Any] = {}
    for key, value in parsed.model_dump(exclude_unset=True).items():
        # Explicit nulls leave the stored value untouched.
        if value is None:
            continue
        values[key] = value.value if hasattr(value, "value") else value
    return values


async def get_or_create(*, session: AsyncSession, tenant_id: str, user_id: str) -> NotificationSettings:
    tenant_id = require_tenant_id(tenant_id)
    async with store_errors(session, "loading notification settings"):
        row = await settings_repo.get_settings_row(session, tenant_id=tenant_id, user_id=user_id)
        if row is not None:
            return row
        now = utc_now()
        row = NotificationSettings(
            id=uuid4().hex,
            tenant_id=tenant_id,
            user_id=user_id,
            created_at=now,
            updated_at=now,
        )
        session.add(row)
        try:
            await session.commit()
        except IntegrityError:
            # A concurrent request created the row first; use theirs.
            await session.rollback()
            row = await settings_repo.get_settings_row(session, tenant_id=tenant_id, user_id=user_id)
            if row is None:
                raise
            return row
        await session.refresh(row)
    return row


async def update(
    *,
    session: AsyncSession,
    tenant_id: str,
    user_id: str,
    updates: NotificationSettingsUpdate | Mapping[str, Any],
) -> NotificationSettings:
    values = _parse_updates(updates)
    row = await get_or_create(session=session, tenant_id=tenant_id, user_id=user_id)
    if not values:
        return row
    async with store_errors(session, "updating notification settings"):
        for key, value in values.items():
            setattr(row, key, value)
        row.updated_at = utc_now()
        await session.commit()
        await session.refresh(row)
    logger.info("notification settings updated", extra={"tenant_id": tenant_id})
    return row


async def _set_all(*, session: AsyncSession, tenant_id: str, user_id: str, enabled: bool) -> NotificationSettings:
    return await update(
        session=session,
        tenant_id=tenant_id,
        user_id=user_id,
        updates={field: enabled for field in TOGGLE_FIELDS},
    )


async def enable_all(*, session: AsyncSession, tenant_id: str, user_id: str) -> NotificationSettings:
    return await _set_all(session=session, tenant_id=tenant_id, user_id=user_id, enabled=True)


async def disable_all(*, session: AsyncSession, tenant_id: str, user_id: str) -> NotificationSettings:
    return await _set_all(session=session, tenant_id=tenant_id, user_id=user_id, enabled=False)


async def delete(*, session: AsyncSession, tenant_id: str, user_id: str) -> bool:
    # Deleted preferences are recreated with defaults on the next read.
    tenant_id = require_tenant_id(tenant_id)
    async with store_errors(session, "deleting notification settings"):
        deleted = await settings_repo.delete_settings_row(session, tenant_id=tenant_id, user_id=user_id)
        await session.commit()
    return deleted > 0
