from __future__ import annotations

import pytest

from fundnotify.core.errors import NotificationValidationError
from fundnotify.services.notifications import preferences
from fundnotify.services.notifications.preferences import TOGGLE_FIELDS, NotificationSettingsUpdate


@pytest.mark.asyncio
async def test_get_or_create_uses_defaults(session) -> None:
    row = await preferences.get_or_create(session=session, tenant_id="t1", user_id="user-1")
    assert all(getattr(row, field) is False for field in TOGGLE_FIELDS)
    assert row.notification_frequency == "immediate"
    assert row.preferred_contact_method == "email"
    assert row.report_delivery_format == "both"
    again = await preferences.get_or_create(session=session, tenant_id="t1", user_id="user-1")
    assert again.id == row.id


@pytest.mark.asyncio
async def test_update_changes_only_given_fields(session) -> None:
    row = await preferences.update(
        session=session,
        tenant_id="t1",
        user_id="user-1",
        updates={"capital_call_notices": True, "notification_frequency": "weekly", "sms_notifications": None},
    )
    assert row.capital_call_notices is True
    assert row.notification_frequency == "weekly"
    assert row.sms_notifications is False
    assert preferences.is_notification_enabled(row, "capital_call_notices")
    assert not preferences.is_notification_enabled(row, "k1_tax_forms")

    typed = await preferences.update(
        session=session,
        tenant_id="t1",
        user_id="user-1",
        updates=NotificationSettingsUpdate(k1_tax_forms=True),
    )
    assert typed.k1_tax_forms is True
    assert typed.capital_call_notices is True


@pytest.mark.asyncio
async def test_update_rejects_unknown_fields_and_values(session) -> None:
    with pytest.raises(NotificationValidationError):
        await preferences.update(session=session, tenant_id="t1", user_id="user-1", updates={"carrier_pigeon": True})
    with pytest.raises(NotificationValidationError):
        await preferences.update(
            session=session, tenant_id="t1", user_id="user-1", updates={"notification_frequency": "hourly"}
        )


@pytest.mark.asyncio
async def test_enable_and_disable_all(session) -> None:
    enabled = await preferences.enable_all(session=session, tenant_id="t1", user_id="user-1")
    assert all(getattr(enabled, field) is True for field in TOGGLE_FIELDS)
    disabled = await preferences.disable_all(session=session, tenant_id="t1", user_id="user-1")
    assert all(getattr(disabled, field) is False for field in TOGGLE_FIELDS)


@pytest.mark.asyncio
async def test_delete_then_recreate_with_defaults(session) -> None:
    await preferences.enable_all(session=session, tenant_id="t1", user_id="user-1")
    assert await preferences.delete(session=session, tenant_id="t1", user_id="user-1") is True
    assert await preferences.delete(session=session, tenant_id="t1", user_id="user-1") is False
    session.expunge_all()
    row = await preferences.get_or_create(session=session, tenant_id="t1", user_id="user-1")
    assert row.email_notifications is False


@pytest.mark.asyncio
async def test_settings_are_tenant_scoped(session) -> None:
    await preferences.enable_all(session=session, tenant_id="t1", user_id="user-1")
    other = await preferences.get_or_create(session=session, tenant_id="t2", user_id="user-1")
    assert other.email_notifications is False


def test_is_notification_enabled_edges() -> None:
    assert preferences.is_notification_enabled(None, "security_alerts") is False
    with pytest.raises(NotificationValidationError):
        preferences.is_notification_enabled(None, "not_a_toggle")
