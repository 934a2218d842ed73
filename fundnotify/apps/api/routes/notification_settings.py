from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from fundnotify.apps.api.deps import Principal, get_db, require_role
from fundnotify.apps.api.openapi import SETTINGS_ERROR_RESPONSES
from fundnotify.apps.api.response import SuccessEnvelope, success_response
from fundnotify.domain.models import NotificationSettings
from fundnotify.domain.state import as_utc
from fundnotify.services.notifications import preferences
from fundnotify.services.notifications.preferences import TOGGLE_FIELDS, NotificationSettingsUpdate


router = APIRouter(
    prefix="/notifications/settings",
    tags=["notification-settings"],
    responses=SETTINGS_ERROR_RESPONSES,
)


class NotificationSettingsResponse(BaseModel):
    user_id: str
    toggles: dict[str, bool]
    notification_frequency: str
    preferred_contact_method: str
    report_delivery_format: str
    created_at: str | None = None
    updated_at: str | None = None


def _to_response(row: NotificationSettings) -> dict[str, Any]:
    created_at = as_utc(row.created_at)
    updated_at = as_utc(row.updated_at)
    return NotificationSettingsResponse(
        user_id=row.user_id,
        toggles={field: bool(getattr(row, field)) for field in TOGGLE_FIELDS},
        notification_frequency=row.notification_frequency,
        preferred_contact_method=row.preferred_contact_method,
        report_delivery_format=row.report_delivery_format,
        created_at=created_at.isoformat() if created_at else None,
        updated_at=updated_at.isoformat() if updated_at else None,
    ).model_dump()


# Preferences always belong to the calling user; tenant comes from the principal.
@router.get("", response_model=SuccessEnvelope[NotificationSettingsResponse] | NotificationSettingsResponse)
async def get_notification_settings(
    request: Request,
    principal: Principal = Depends(require_role("reader")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    row = await preferences.get_or_create(session=db, tenant_id=principal.tenant_id, user_id=principal.user_id)
    return success_response(request=request, data=_to_response(row))


@router.put("", response_model=SuccessEnvelope[NotificationSettingsResponse] | NotificationSettingsResponse)
async def update_notification_settings(
    request: Request,
    payload: NotificationSettingsUpdate,
    principal: Principal = Depends(require_role("reader")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    row = await preferences.update(
        session=db,
        tenant_id=principal.tenant_id,
        user_id=principal.user_id,
        updates=payload,
    )
    return success_response(request=request, data=_to_response(row))


@router.patch(
    "/enable-all",
    response_model=SuccessEnvelope[NotificationSettingsResponse] | NotificationSettingsResponse,
)
async def enable_all_notification_settings(
    request: Request,
    principal: Principal = Depends(require_role("reader")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    row = await preferences.enable_all(session=db, tenant_id=principal.tenant_id, user_id=principal.user_id)
    return success_response(request=request, data=_to_response(row))


@router.patch(
    "/disable-all",
    response_model=SuccessEnvelope[NotificationSettingsResponse] | NotificationSettingsResponse,
)
async def disable_all_notification_settings(
    request: Request,
    principal: Principal = Depends(require_role("reader")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    row = await preferences.disable_all(session=db, tenant_id=principal.tenant_id, user_id=principal.user_id)
    return success_response(request=request, data=_to_response(row))


@router.delete("", response_model=SuccessEnvelope[dict[str, bool]] | dict[str, bool])
async def delete_notification_settings(
    request: Request,
    principal: Principal = Depends(require_role("reader")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    deleted = await preferences.delete(session=db, tenant_id=principal.tenant_id, user_id=principal.user_id)
    return success_response(request=request, data={"deleted": deleted})
