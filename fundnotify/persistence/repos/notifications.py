from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from fundnotify.domain.enums import NotificationStatus
from fundnotify.domain.models import Notification, NotificationAttempt
from fundnotify.domain.state import SETTLED_STATUSES, UNREAD_EXCLUDED_STATUSES


# Columns a caller may sort listings by; anything else falls back to created_at.
ORDERABLE_COLUMNS = {
    "created_at": Notification.created_at,
    "updated_at": Notification.updated_at,
    "sent_at": Notification.sent_at,
    "read_at": Notification.read_at,
    "priority": Notification.priority,
    "status": Notification.status,
}


def not_expired(now: datetime) -> ColumnElement[bool]:
    return or_(Notification.expires_at.is_(None), Notification.expires_at > now)


def unread_conditions(*, user_id: str, now: datetime, tenant_id: str | None = None) -> list[ColumnElement[bool]]:
    # Shared by list, count and bulk-read so the unread view stays consistent.
    conditions: list[ColumnElement[bool]] = [
        Notification.user_id == user_id,
        Notification.read_at.is_(None),
        Notification.status.not_in(UNREAD_EXCLUDED_STATUSES),
        not_expired(now),
    ]
    if tenant_id is not None:
        conditions.append(Notification.tenant_id == tenant_id)
    return conditions


def add_notifications(session: AsyncSession, rows: Iterable[Notification]) -> list[Notification]:
    items = list(rows)
    session.add_all(items)
    return items


async def get_notification(
    session: AsyncSession,
    notification_id: str,
    *,
    tenant_id: str | None = None,
    user_id: str | None = None,
    refresh: bool = False,
) -> Notification | None:
    # Return None for tenant or owner mismatch to keep 404 semantics.
    stmt = select(Notification).where(Notification.id == notification_id)
    if tenant_id is not None:
        stmt = stmt.where(Notification.tenant_id == tenant_id)
    if user_id is not None:
        stmt = stmt.where(Notification.user_id == user_id)
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_for_user(
    session: AsyncSession,
    *,
    user_id: str,
    now: datetime,
    tenant_id: str | None = None,
    status: str | None = None,
    channel: str | None = None,
    notification_type: str | None = None,
    unread_only: bool = False,
    exclude_expired: bool = True,
    order_by: str = "created_at",
    ascending: bool = False,
    limit: int | None = 50,
    offset: int = 0,
) -> list[Notification]:
    if unread_only:
        conditions = unread_conditions(user_id=user_id, now=now, tenant_id=tenant_id)
    else:
        conditions = [Notification.user_id == user_id]
        if tenant_id is not None:
            conditions.append(Notification.tenant_id == tenant_id)
        if exclude_expired:
            conditions.append(not_expired(now))
    if status is not None:
        conditions.append(Notification.status == status)
    if channel is not None:
        conditions.append(Notification.channel == channel)
    if notification_type is not None:
        conditions.append(Notification.notification_type == notification_type)
    column = ORDERABLE_COLUMNS.get(order_by, Notification.created_at)
    ordering = column.asc() if ascending else column.desc()
    # Tie-break on id so pagination is stable across equal timestamps.
    stmt = select(Notification).where(*conditions).order_by(ordering, Notification.id.asc()).offset(max(0, offset))
    if limit is not None:
        stmt = stmt.limit(max(1, limit))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_unread(session: AsyncSession, *, user_id: str, now: datetime, tenant_id: str | None = None) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Notification)
        .where(*unread_conditions(user_id=user_id, now=now, tenant_id=tenant_id))
    )
    return int(result.scalar() or 0)


async def mark_unread_as_read(
    session: AsyncSession, *, user_id: str, now: datetime, tenant_id: str | None = None
) -> int:
    # One statement over the unread predicate; rows that change concurrently are simply not matched.
    result = await session.execute(
        update(Notification)
        .where(*unread_conditions(user_id=user_id, now=now, tenant_id=tenant_id))
        .values(
            status=NotificationStatus.READ.value,
            read_at=now,
            next_retry_at=None,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


async def select_due(session: AsyncSession, *, now: datetime, limit: int) -> list[Notification]:
    pending_due = and_(
        Notification.status == NotificationStatus.PENDING.value,
        or_(Notification.next_retry_at.is_(None), Notification.next_retry_at <= now),
    )
    stmt = (
        select(Notification)
        .where(pending_due, not_expired(now))
        .order_by(Notification.next_retry_at.asc().nulls_first(), Notification.created_at.asc())
        .limit(max(1, limit))
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def compare_and_set(
    session: AsyncSession,
    notification_id: str,
    *,
    expected_statuses: Iterable[str],
    values: dict[str, Any],
    expected_retry_count: int | None = None,
    tenant_id: str | None = None,
    user_id: str | None = None,
) -> bool:
    # Apply a transition only if the row still holds the state the caller observed.
    stmt = update(Notification).where(
        Notification.id == notification_id,
        Notification.status.in_(list(expected_statuses)),
    )
    if expected_retry_count is not None:
        stmt = stmt.where(Notification.retry_count == expected_retry_count)
    if tenant_id is not None:
        stmt = stmt.where(Notification.tenant_id == tenant_id)
    if user_id is not None:
        stmt = stmt.where(Notification.user_id == user_id)
    result = await session.execute(stmt.values(**values).execution_options(synchronize_session=False))
    return int(result.rowcount or 0) > 0


async def delete_with_attempts(session: AsyncSession, notification_ids: list[str]) -> int:
    if not notification_ids:
        return 0
    # Remove immutable attempts first so FK constraints hold even without ON DELETE CASCADE.
    await session.execute(
        delete(NotificationAttempt).where(NotificationAttempt.notification_id.in_(notification_ids))
    )
    result = await session.execute(
        delete(Notification)
        .where(Notification.id.in_(notification_ids))
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


async def ids_read_before(session: AsyncSession, *, cutoff: datetime) -> list[str]:
    result = await session.execute(
        select(Notification.id).where(
            Notification.status == NotificationStatus.READ.value,
            Notification.read_at < cutoff,
        )
    )
    return [str(row) for row in result.scalars().all()]


async def ids_expired_unsettled(session: AsyncSession, *, now: datetime) -> list[str]:
    result = await session.execute(
        select(Notification.id).where(
            Notification.expires_at.is_not(None),
            Notification.expires_at < now,
            Notification.status.not_in(SETTLED_STATUSES),
        )
    )
    return [str(row) for row in result.scalars().all()]


def add_attempt(session: AsyncSession, attempt: NotificationAttempt) -> NotificationAttempt:
    session.add(attempt)
    return attempt


async def list_attempts(session: AsyncSession, *, notification_id: str) -> list[NotificationAttempt]:
    result = await session.execute(
        select(NotificationAttempt)
        .where(NotificationAttempt.notification_id == notification_id)
        .order_by(NotificationAttempt.attempt_no.asc(), NotificationAttempt.id.asc())
    )
    return list(result.scalars().all())
