from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from fundnotify.domain.models import Notification
from fundnotify.domain.state import utc_now
from fundnotify.persistence.guards import store_errors
from fundnotify.persistence.repos import notifications as notifications_repo


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationFilters:
    status: str | None = None
    channel: str | None = None
    notification_type: str | None = None
    unread_only: bool = False
    exclude_expired: bool = True
    order_by: str = "created_at"
    ascending: bool = False
    limit: int | None = 50
    offset: int = 0


async def list_by_user_id(
    *,
    session: AsyncSession,
    user_id: str,
    filters: NotificationFilters | None = None,
    tenant_id: str | None = None,
) -> list[Notification]:
    filters = filters or NotificationFilters()
    async with store_errors(session, "listing notifications"):
        return await notifications_repo.list_for_user(
            session,
            user_id=user_id,
            now=utc_now(),
            tenant_id=tenant_id,
            status=filters.status,
            channel=filters.channel,
            notification_type=filters.notification_type,
            unread_only=filters.unread_only,
            exclude_expired=filters.exclude_expired,
            order_by=filters.order_by,
            ascending=filters.ascending,
            limit=filters.limit,
            offset=filters.offset,
        )


async def find_unread_by_user_id(
    *,
    session: AsyncSession,
    user_id: str,
    limit: int | None = 50,
    offset: int = 0,
    tenant_id: str | None = None,
) -> list[Notification]:
    # Newest first over the same predicate the unread count uses.
    return await list_by_user_id(
        session=session,
        user_id=user_id,
        tenant_id=tenant_id,
        filters=NotificationFilters(unread_only=True, limit=limit, offset=offset),
    )


async def get_unread_count(*, session: AsyncSession, user_id: str, tenant_id: str | None = None) -> int:
    async with store_errors(session, "counting unread notifications"):
        return await notifications_repo.count_unread(
            session, user_id=user_id, now=utc_now(), tenant_id=tenant_id
        )


async def mark_all_as_read(*, session: AsyncSession, user_id: str, tenant_id: str | None = None) -> int:
    async with store_errors(session, "marking notifications read"):
        updated = await notifications_repo.mark_unread_as_read(
            session, user_id=user_id, now=utc_now(), tenant_id=tenant_id
        )
        await session.commit()
    logger.info("marked notifications read", extra={"tenant_id": tenant_id})
    return updated
