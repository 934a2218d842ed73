from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fundnotify.apps.api.deps import Principal, get_db, require_role
from fundnotify.apps.api.openapi import NOTIFICATION_ERROR_RESPONSES
from fundnotify.apps.api.response import Page, SuccessEnvelope, page_response, success_response
from fundnotify.core.config import get_settings
from fundnotify.domain.enums import NotificationChannel, NotificationStatus, NotificationType
from fundnotify.domain.models import Notification, NotificationAttempt
from fundnotify.domain.state import as_utc
from fundnotify.persistence.repos import notifications as notifications_repo
from fundnotify.services.notifications import dispatcher, lifecycle, read_tracker, retention
from fundnotify.services.notifications.dispatcher import NotificationCreate
from fundnotify.services.notifications.read_tracker import NotificationFilters


router = APIRouter(
    prefix="/notifications",
    tags=["notifications"],
    responses=NOTIFICATION_ERROR_RESPONSES,
)


class NotificationResponse(BaseModel):
    id: str
    tenant_id: str
    user_id: str
    notification_type: str
    channel: str
    priority: str
    status: str
    title: str
    message: str
    metadata: dict[str, Any] | None = None
    action_url: str | None = None
    email_subject: str | None = None
    email_template: str | None = None
    sms_phone_number: str | None = None
    related_entity_type: str | None = None
    related_entity_id: str | None = None
    sender_id: str | None = None
    sender_name: str | None = None
    error_message: str | None = None
    retry_count: int
    max_retries: int
    created_at: str | None = None
    updated_at: str | None = None
    sent_at: str | None = None
    delivered_at: str | None = None
    read_at: str | None = None
    failed_at: str | None = None
    expires_at: str | None = None
    next_retry_at: str | None = None


class AttemptResponse(BaseModel):
    attempt_no: int
    channel: str
    outcome: str
    error: str | None = None
    started_at: str | None = None
    finished_at: str | None = None


class BulkCreateRequest(BaseModel):
    # Elements are validated one by one so the failing index can be reported.
    notifications: list[dict[str, Any]] = Field(max_length=500)

    model_config = {"extra": "forbid"}


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkAllReadResponse(BaseModel):
    updated: int


class DeletedResponse(BaseModel):
    deleted: bool


def _iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value is not None else None


def _to_response(row: Notification) -> dict[str, Any]:
    # Serialize datetimes as UTC ISO strings while keeping response fields explicit.
    return NotificationResponse(
        id=row.id,
        tenant_id=row.tenant_id,
        user_id=row.user_id,
        notification_type=row.notification_type,
        channel=row.channel,
        priority=row.priority,
        status=row.status,
        title=row.title,
        message=row.message,
        metadata=row.metadata_json,
        action_url=row.action_url,
        email_subject=row.email_subject,
        email_template=row.email_template,
        sms_phone_number=row.sms_phone_number,
        related_entity_type=row.related_entity_type,
        related_entity_id=row.related_entity_id,
        sender_id=row.sender_id,
        sender_name=row.sender_name,
        error_message=row.error_message,
        retry_count=int(row.retry_count or 0),
        max_retries=int(row.max_retries or 0),
        created_at=_iso(row.created_at),
        updated_at=_iso(row.updated_at),
        sent_at=_iso(row.sent_at),
        delivered_at=_iso(row.delivered_at),
        read_at=_iso(row.read_at),
        failed_at=_iso(row.failed_at),
        expires_at=_iso(row.expires_at),
        next_retry_at=_iso(row.next_retry_at),
    ).model_dump()


def _attempt_to_response(row: NotificationAttempt) -> dict[str, Any]:
    return AttemptResponse(
        attempt_no=row.attempt_no,
        channel=row.channel,
        outcome=row.outcome,
        error=row.error,
        started_at=_iso(row.started_at),
        finished_at=_iso(row.finished_at),
    ).model_dump()


def _page_limit(limit: int | None) -> int:
    settings = get_settings()
    if limit is None:
        return settings.notify_default_page_size
    return min(limit, settings.notify_max_page_size)


def _not_found() -> HTTPException:
    # Use 404 for both missing and foreign rows to avoid leaking existence.
    return HTTPException(status_code=404, detail="Notification not found")


def _target_user(principal: Principal, user_id: str | None) -> str:
    # Only admins may act on another user's notifications.
    if user_id and user_id != principal.user_id:
        if not principal.is_admin:
            raise HTTPException(
                status_code=403,
                detail={"code": "AUTH_FORBIDDEN", "message": "Insufficient role for this operation"},
            )
        return user_id
    return principal.user_id


# Allow legacy unwrapped responses; v1 middleware wraps envelopes.
@router.get("", response_model=SuccessEnvelope[Page[NotificationResponse]] | Page[NotificationResponse])
async def list_notifications(
    request: Request,
    status: NotificationStatus | None = Query(default=None),
    channel: NotificationChannel | None = Query(default=None),
    notification_type: NotificationType | None = Query(default=None),
    unread_only: bool = Query(default=False),
    exclude_expired: bool = Query(default=True),
    order_by: Literal["created_at", "updated_at", "sent_at", "read_at", "priority", "status"] = Query(
        default="created_at"
    ),
    ascending: bool = Query(default=False),
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    user_id: str | None = Query(default=None),
    principal: Principal = Depends(require_role("reader")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    page_limit = _page_limit(limit)
    filters = NotificationFilters(
        status=status.value if status else None,
        channel=channel.value if channel else None,
        notification_type=notification_type.value if notification_type else None,
        unread_only=unread_only,
        exclude_expired=exclude_expired,
        order_by=order_by,
        ascending=ascending,
        limit=page_limit,
        offset=offset,
    )
    rows = await read_tracker.list_by_user_id(
        session=db,
        user_id=_target_user(principal, user_id),
        tenant_id=principal.tenant_id,
        filters=filters,
    )
    return page_response(request=request, items=[_to_response(row) for row in rows], limit=page_limit, offset=offset)


@router.get("/unread", response_model=SuccessEnvelope[Page[NotificationResponse]] | Page[NotificationResponse])
async def list_unread_notifications(
    request: Request,
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(require_role("reader")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    page_limit = _page_limit(limit)
    rows = await read_tracker.find_unread_by_user_id(
        session=db,
        user_id=principal.user_id,
        tenant_id=principal.tenant_id,
        limit=page_limit,
        offset=offset,
    )
    return page_response(request=request, items=[_to_response(row) for row in rows], limit=page_limit, offset=offset)


@router.get("/unread-count", response_model=SuccessEnvelope[UnreadCountResponse] | UnreadCountResponse)
async def unread_count(
    request: Request,
    principal: Principal = Depends(require_role("reader")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    count = await read_tracker.get_unread_count(
        session=db, user_id=principal.user_id, tenant_id=principal.tenant_id
    )
    return success_response(request=request, data={"unread_count": count})


@router.patch("/read-all", response_model=SuccessEnvelope[MarkAllReadResponse] | MarkAllReadResponse)
async def mark_all_read(
    request: Request,
    principal: Principal = Depends(require_role("reader")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    updated = await read_tracker.mark_all_as_read(
        session=db, user_id=principal.user_id, tenant_id=principal.tenant_id
    )
    return success_response(request=request, data={"updated": updated})


@router.post(
    "",
    status_code=201,
    response_model=SuccessEnvelope[NotificationResponse] | NotificationResponse,
)
async def create_notification(
    request: Request,
    payload: NotificationCreate,
    principal: Principal = Depends(require_role("editor")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Bind tenant scope from the authenticated principal to prevent spoofing.
    row = await dispatcher.create(session=db, tenant_id=principal.tenant_id, notification=payload)
    return success_response(request=request, data=_to_response(row))


@router.post(
    "/bulk",
    status_code=201,
    response_model=SuccessEnvelope[list[NotificationResponse]] | list[NotificationResponse],
)
async def create_notifications_bulk(
    request: Request,
    payload: BulkCreateRequest,
    principal: Principal = Depends(require_role("editor")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    rows = await dispatcher.create_many(
        session=db, tenant_id=principal.tenant_id, notifications=payload.notifications
    )
    return success_response(request=request, data=[_to_response(row) for row in rows])


@router.get("/{notification_id}", response_model=SuccessEnvelope[NotificationResponse] | NotificationResponse)
async def get_notification(
    notification_id: str,
    request: Request,
    principal: Principal = Depends(require_role("reader")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    row = await lifecycle.get_by_id(
        session=db,
        notification_id=notification_id,
        tenant_id=principal.tenant_id,
        user_id=None if principal.is_admin else principal.user_id,
    )
    if row is None:
        raise _not_found()
    return success_response(request=request, data=_to_response(row))


@router.patch("/{notification_id}/read", response_model=SuccessEnvelope[NotificationResponse] | NotificationResponse)
async def mark_notification_read(
    notification_id: str,
    request: Request,
    principal: Principal = Depends(require_role("reader")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Only the recipient can mark a notification read, admins included.
    row = await lifecycle.mark_as_read(
        session=db,
        notification_id=notification_id,
        user_id=principal.user_id,
        tenant_id=principal.tenant_id,
    )
    if row is None:
        raise _not_found()
    return success_response(request=request, data=_to_response(row))


@router.post("/{notification_id}/cancel", response_model=SuccessEnvelope[NotificationResponse] | NotificationResponse)
async def cancel_notification(
    notification_id: str,
    request: Request,
    principal: Principal = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    row = await lifecycle.cancel(session=db, notification_id=notification_id, tenant_id=principal.tenant_id)
    if row is None:
        raise _not_found()
    return success_response(request=request, data=_to_response(row))


@router.post(
    "/{notification_id}/delivered",
    response_model=SuccessEnvelope[NotificationResponse] | NotificationResponse,
)
async def mark_notification_delivered(
    notification_id: str,
    request: Request,
    principal: Principal = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Delivery receipts arrive from relays after hand-off.
    row = await lifecycle.mark_as_delivered(
        session=db, notification_id=notification_id, tenant_id=principal.tenant_id
    )
    if row is None:
        raise _not_found()
    return success_response(request=request, data=_to_response(row))


@router.delete("/{notification_id}", response_model=SuccessEnvelope[DeletedResponse] | DeletedResponse)
async def delete_notification(
    notification_id: str,
    request: Request,
    principal: Principal = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    deleted = await retention.delete_notification(
        session=db, notification_id=notification_id, tenant_id=principal.tenant_id
    )
    if not deleted:
        raise _not_found()
    return success_response(request=request, data={"deleted": True})


@router.get(
    "/{notification_id}/attempts",
    response_model=SuccessEnvelope[list[AttemptResponse]] | list[AttemptResponse],
)
async def list_notification_attempts(
    notification_id: str,
    request: Request,
    principal: Principal = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    row = await lifecycle.get_by_id(session=db, notification_id=notification_id, tenant_id=principal.tenant_id)
    if row is None:
        raise _not_found()
    try:
        attempts = await notifications_repo.list_attempts(db, notification_id=notification_id)
    except SQLAlchemyError as exc:
        # Return a generic 500 to avoid leaking database details.
        raise HTTPException(status_code=500, detail="Database error while listing attempts") from exc
    return success_response(request=request, data=[_attempt_to_response(item) for item in attempts])
