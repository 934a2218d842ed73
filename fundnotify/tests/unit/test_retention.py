from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from fundnotify.domain.models import Notification, NotificationAttempt
from fundnotify.domain.state import utc_now
from fundnotify.services.notifications import retention
from fundnotify.tests.utils.notifications import insert_notification


async def _ids(session) -> set[str]:
    return set((await session.execute(select(Notification.id))).scalars().all())


async def _attempt_count(session) -> int:
    return int((await session.execute(select(func.count()).select_from(NotificationAttempt))).scalar() or 0)


def _attempt(notification_id: str) -> NotificationAttempt:
    now = datetime.now(timezone.utc)
    return NotificationAttempt(
        notification_id=notification_id,
        tenant_id="t1",
        attempt_no=1,
        channel="portal",
        outcome="retrying",
        error="relay returned 503",
        started_at=now,
        finished_at=now,
    )


@pytest.mark.asyncio
async def test_delete_old_read_respects_cutoff(session) -> None:
    now = utc_now()
    old = await insert_notification(session, status="read", read_at=now - timedelta(days=40))
    recent = await insert_notification(session, status="read", read_at=now - timedelta(days=5))
    unread = await insert_notification(session, created_at=now - timedelta(days=90))
    session.add(_attempt(old.id))
    await session.commit()

    deleted = await retention.delete_old_read(session=session, days_old=30)
    assert deleted == 1
    assert await _ids(session) == {recent.id, unread.id}
    assert await _attempt_count(session) == 0


@pytest.mark.asyncio
async def test_delete_expired_keeps_settled_rows(session) -> None:
    past = utc_now() - timedelta(hours=1)
    pending = await insert_notification(session, expires_at=past)
    sent = await insert_notification(session, status="sent", expires_at=past)
    delivered = await insert_notification(session, status="delivered", expires_at=past)
    read = await insert_notification(session, status="read", read_at=past, expires_at=past)
    live = await insert_notification(session, expires_at=utc_now() + timedelta(days=1))
    no_expiry = await insert_notification(session)
    session.add(_attempt(pending.id))
    await session.commit()

    deleted = await retention.delete_expired(session=session)
    assert deleted == 2
    assert await _ids(session) == {delivered.id, read.id, live.id, no_expiry.id}
    assert sent.id not in await _ids(session)
    assert await _attempt_count(session) == 0


@pytest.mark.asyncio
async def test_retention_cycle_reports_both_sweeps(session) -> None:
    now = utc_now()
    await insert_notification(session, status="read", read_at=now - timedelta(days=45))
    await insert_notification(session, status="cancelled", expires_at=now - timedelta(minutes=1))
    await insert_notification(session)

    report = await retention.run_retention_cycle(session=session)
    assert report.as_dict() == {"old_read_deleted": 1, "expired_deleted": 1}
    assert len(await _ids(session)) == 1

    # A second pass finds nothing left to purge.
    again = await retention.run_retention_cycle(session=session)
    assert again.as_dict() == {"old_read_deleted": 0, "expired_deleted": 0}


@pytest.mark.asyncio
async def test_delete_notification_removes_attempts(session) -> None:
    row = await insert_notification(session)
    session.add(_attempt(row.id))
    await session.commit()
    assert await retention.delete_notification(session=session, notification_id=row.id, tenant_id="t2") is False
    assert await retention.delete_notification(session=session, notification_id=row.id, tenant_id="t1") is True
    assert await _ids(session) == set()
    assert await _attempt_count(session) == 0
    assert await retention.delete_notification(session=session, notification_id=row.id) is False
