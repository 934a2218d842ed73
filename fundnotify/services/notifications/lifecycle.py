from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from fundnotify.core.config import get_settings
from fundnotify.core.errors import InvalidTransitionError, NotificationNotFoundError
from fundnotify.domain.enums import NotificationStatus
from fundnotify.domain.models import Notification
from fundnotify.domain.state import (
    ATTEMPTABLE_STATUSES,
    FAILABLE_STATUSES,
    READABLE_STATUSES,
    is_terminal,
    plan_failure,
    utc_now,
)
from fundnotify.persistence.guards import store_errors
from fundnotify.persistence.repos import notifications as notifications_repo
from fundnotify.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


async def get_by_id(
    *,
    session: AsyncSession,
    notification_id: str,
    tenant_id: str | None = None,
    user_id: str | None = None,
) -> Notification | None:
    # Owner filter is applied for non-admin callers so foreign rows look missing.
    async with store_errors(session, "loading notification"):
        return await notifications_repo.get_notification(
            session, notification_id, tenant_id=tenant_id, user_id=user_id
        )


async def _reload(session: AsyncSession, notification_id: str) -> Notification | None:
    return await notifications_repo.get_notification(session, notification_id, refresh=True)


async def mark_as_sent(
    *,
    session: AsyncSession,
    notification_id: str,
    tenant_id: str | None = None,
) -> Notification | None:
    async with store_errors(session, "marking notification sent"):
        row = await notifications_repo.get_notification(session, notification_id, tenant_id=tenant_id)
        if row is None:
            return None
        # Only pending rows may be handed off; anything else is a no-op.
        if row.status not in ATTEMPTABLE_STATUSES:
            return None
        now = utc_now()
        applied = await notifications_repo.compare_and_set(
            session,
            notification_id,
            expected_statuses=[row.status],
            expected_retry_count=row.retry_count,
            values={
                "status": NotificationStatus.SENT.value,
                "sent_at": now,
                "next_retry_at": None,
                "updated_at": now,
            },
        )
        await session.commit()
        if not applied:
            return None
        row = await _reload(session, notification_id)
    increment_counter("notifications.sent")
    logger.info("notification sent", extra={"notification_id": notification_id, "status": "sent"})
    return row


async def mark_as_delivered(
    *,
    session: AsyncSession,
    notification_id: str,
    tenant_id: str | None = None,
) -> Notification | None:
    async with store_errors(session, "marking notification delivered"):
        row = await notifications_repo.get_notification(session, notification_id, tenant_id=tenant_id)
        if row is None:
            return None
        if row.status == NotificationStatus.DELIVERED.value:
            return row
        if row.status != NotificationStatus.SENT.value:
            raise InvalidTransitionError(
                f"Cannot mark a {row.status} notification as delivered", status=row.status
            )
        now = utc_now()
        applied = await notifications_repo.compare_and_set(
            session,
            notification_id,
            expected_statuses=[NotificationStatus.SENT.value],
            values={
                "status": NotificationStatus.DELIVERED.value,
                "delivered_at": now,
                "updated_at": now,
            },
        )
        await session.commit()
        row = await _reload(session, notification_id)
    if not applied:
        # Lost a race; report what the row settled into instead.
        if row is not None and row.status != NotificationStatus.DELIVERED.value:
            raise InvalidTransitionError(
                f"Cannot mark a {row.status} notification as delivered", status=row.status
            )
        return row
    increment_counter("notifications.delivered")
    return row


async def mark_as_read(
    *,
    session: AsyncSession,
    notification_id: str,
    user_id: str,
    tenant_id: str | None = None,
) -> Notification | None:
    async with store_errors(session, "marking notification read"):
        row = await notifications_repo.get_notification(
            session, notification_id, tenant_id=tenant_id, user_id=user_id
        )
        # Unknown id and foreign owner are indistinguishable to the caller.
        if row is None:
            return None
        if row.status == NotificationStatus.READ.value:
            return row
        if row.status not in READABLE_STATUSES:
            raise InvalidTransitionError(f"Cannot mark a {row.status} notification as read", status=row.status)
        now = utc_now()
        applied = await notifications_repo.compare_and_set(
            session,
            notification_id,
            expected_statuses=[row.status],
            user_id=user_id,
            values={
                "status": NotificationStatus.READ.value,
                "read_at": now,
                "next_retry_at": None,
                "updated_at": now,
            },
        )
        await session.commit()
        row = await _reload(session, notification_id)
    if not applied and row is not None and row.status != NotificationStatus.READ.value:
        raise InvalidTransitionError(f"Cannot mark a {row.status} notification as read", status=row.status)
    return row


async def mark_as_failed(
    *,
    session: AsyncSession,
    notification_id: str,
    error_message: str,
    retryable: bool = True,
    tenant_id: str | None = None,
) -> Notification | None:
    """Record a failed delivery attempt.

    Either reschedules the notification as ``pending`` with backoff or settles
    it into terminal ``failed``. Returns None when the row is already absorbing
    or a concurrent transition won the race.
    """
    settings = get_settings()
    async with store_errors(session, "marking notification failed"):
        row = await notifications_repo.get_notification(session, notification_id, tenant_id=tenant_id)
        if row is None:
            raise NotificationNotFoundError(f"Notification {notification_id} not found")
        if row.status not in FAILABLE_STATUSES or is_terminal(row):
            return None
        now = utc_now()
        plan = plan_failure(
            retry_count=int(row.retry_count or 0),
            max_retries=int(row.max_retries or 0),
            now=now,
            retryable=retryable,
            base_minutes=settings.notify_retry_base_minutes,
            factor=settings.notify_retry_factor,
        )
        applied = await notifications_repo.compare_and_set(
            session,
            notification_id,
            expected_statuses=[row.status],
            expected_retry_count=row.retry_count,
            values={
                "status": plan.status,
                "retry_count": plan.retry_count,
                "next_retry_at": plan.next_retry_at,
                "failed_at": plan.failed_at,
                "error_message": error_message,
                "updated_at": now,
            },
        )
        await session.commit()
        if not applied:
            return None
        row = await _reload(session, notification_id)
    if plan.terminal:
        increment_counter("notifications.failed")
        logger.warning(
            "notification failed permanently",
            extra={"notification_id": notification_id, "status": plan.status},
        )
    else:
        increment_counter("notifications.retry_scheduled")
        logger.info(
            "notification retry scheduled",
            extra={"notification_id": notification_id, "status": plan.status},
        )
    return row


async def cancel(
    *,
    session: AsyncSession,
    notification_id: str,
    tenant_id: str | None = None,
) -> Notification | None:
    async with store_errors(session, "cancelling notification"):
        row = await notifications_repo.get_notification(session, notification_id, tenant_id=tenant_id)
        if row is None:
            return None
        if row.status == NotificationStatus.CANCELLED.value:
            return row
        if row.status != NotificationStatus.PENDING.value:
            raise InvalidTransitionError(f"Cannot cancel a {row.status} notification", status=row.status)
        now = utc_now()
        applied = await notifications_repo.compare_and_set(
            session,
            notification_id,
            expected_statuses=[row.status],
            expected_retry_count=row.retry_count,
            values={
                "status": NotificationStatus.CANCELLED.value,
                "next_retry_at": None,
                "updated_at": now,
            },
        )
        await session.commit()
        row = await _reload(session, notification_id)
    if not applied and row is not None and row.status != NotificationStatus.CANCELLED.value:
        raise InvalidTransitionError(f"Cannot cancel a {row.status} notification", status=row.status)
    increment_counter("notifications.cancelled")
    return row
