from __future__ import annotations

from datetime import timedelta

import pytest

from fundnotify.domain.state import utc_now
from fundnotify.services.notifications import read_tracker
from fundnotify.services.notifications.read_tracker import NotificationFilters
from fundnotify.tests.utils.notifications import insert_notification


async def _seed_mixed(session) -> dict[str, str]:
    now = utc_now()
    rows = {
        "pending": await insert_notification(session, created_at=now - timedelta(minutes=6)),
        "sent": await insert_notification(session, status="sent", channel="email", created_at=now - timedelta(minutes=5)),
        "delivered": await insert_notification(session, status="delivered", created_at=now - timedelta(minutes=4)),
        "read": await insert_notification(session, status="read", read_at=now, created_at=now - timedelta(minutes=3)),
        "cancelled": await insert_notification(session, status="cancelled", created_at=now - timedelta(minutes=2)),
        "failed": await insert_notification(
            session, status="failed", retry_count=3, created_at=now - timedelta(minutes=1)
        ),
        "expired": await insert_notification(session, expires_at=now - timedelta(hours=1)),
        "other_user": await insert_notification(session, user_id="user-2"),
        "other_tenant": await insert_notification(session, tenant_id="t2"),
    }
    return {key: row.id for key, row in rows.items()}


@pytest.mark.asyncio
async def test_unread_count_matches_unread_list(session) -> None:
    ids = await _seed_mixed(session)
    count = await read_tracker.get_unread_count(session=session, user_id="user-1", tenant_id="t1")
    unread = await read_tracker.find_unread_by_user_id(session=session, user_id="user-1", limit=None, tenant_id="t1")
    assert count == len(unread) == 3
    # Newest first.
    assert [row.id for row in unread] == [ids["delivered"], ids["sent"], ids["pending"]]


@pytest.mark.asyncio
async def test_unread_count_without_tenant_spans_tenants(session) -> None:
    await _seed_mixed(session)
    assert await read_tracker.get_unread_count(session=session, user_id="user-1") == 4
    assert await read_tracker.get_unread_count(session=session, user_id="nobody") == 0


@pytest.mark.asyncio
async def test_mark_all_as_read_settles_only_unread(session, session_factory) -> None:
    ids = await _seed_mixed(session)
    updated = await read_tracker.mark_all_as_read(session=session, user_id="user-1", tenant_id="t1")
    assert updated == 3
    assert await read_tracker.get_unread_count(session=session, user_id="user-1", tenant_id="t1") == 0
    # Bulk updates bypass the identity map, so read back through a fresh session.
    async with session_factory() as fresh:
        rows = await read_tracker.list_by_user_id(
            session=fresh,
            user_id="user-1",
            tenant_id="t1",
            filters=NotificationFilters(limit=None, exclude_expired=False),
        )
    by_id = {row.id: row for row in rows}
    assert by_id[ids["cancelled"]].status == "cancelled"
    assert by_id[ids["failed"]].status == "failed"
    assert by_id[ids["expired"]].read_at is None
    assert by_id[ids["sent"]].status == "read"
    assert by_id[ids["sent"]].read_at is not None
    # Other users are untouched.
    assert await read_tracker.get_unread_count(session=session, user_id="user-2", tenant_id="t1") == 1


@pytest.mark.asyncio
async def test_list_filters_and_expiry(session) -> None:
    ids = await _seed_mixed(session)
    visible = await read_tracker.list_by_user_id(session=session, user_id="user-1", tenant_id="t1")
    assert ids["expired"] not in {row.id for row in visible}
    assert len(visible) == 6

    everything = await read_tracker.list_by_user_id(
        session=session, user_id="user-1", tenant_id="t1", filters=NotificationFilters(exclude_expired=False)
    )
    assert len(everything) == 7

    emails = await read_tracker.list_by_user_id(
        session=session, user_id="user-1", tenant_id="t1", filters=NotificationFilters(channel="email")
    )
    assert [row.id for row in emails] == [ids["sent"]]

    cancelled = await read_tracker.list_by_user_id(
        session=session, user_id="user-1", tenant_id="t1", filters=NotificationFilters(status="cancelled")
    )
    assert [row.id for row in cancelled] == [ids["cancelled"]]


@pytest.mark.asyncio
async def test_list_paging_is_stable(session) -> None:
    now = utc_now()
    for idx in range(5):
        await insert_notification(session, title=f"n{idx}", created_at=now - timedelta(minutes=idx))
    first = await read_tracker.list_by_user_id(
        session=session, user_id="user-1", filters=NotificationFilters(limit=2, offset=0)
    )
    second = await read_tracker.list_by_user_id(
        session=session, user_id="user-1", filters=NotificationFilters(limit=2, offset=2)
    )
    oldest_first = await read_tracker.list_by_user_id(
        session=session, user_id="user-1", filters=NotificationFilters(ascending=True, limit=1)
    )
    assert [row.title for row in first] == ["n0", "n1"]
    assert [row.title for row in second] == ["n2", "n3"]
    assert [row.title for row in oldest_first] == ["n4"]
