from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from fundnotify.domain.models import Notification
from fundnotify.domain.state import utc_now


def notification_payload(**overrides: Any) -> dict[str, Any]:
    # Minimal valid create request; tests override only what they assert on.
    payload: dict[str, Any] = {
        "user_id": "user-1",
        "notification_type": "capital_call_notice",
        "channel": "email",
        "title": "Capital call",
        "message": "Fund II capital call due in 10 days",
    }
    payload.update(overrides)
    return payload


async def insert_notification(session: AsyncSession, **fields: Any) -> Notification:
    # Seed rows directly when a test needs a state the dispatcher never writes.
    now = utc_now()
    values: dict[str, Any] = {
        "id": uuid4().hex,
        "tenant_id": "t1",
        "user_id": "user-1",
        "notification_type": "general_announcement",
        "channel": "portal",
        "priority": "normal",
        "status": "pending",
        "title": "Announcement",
        "message": "Quarterly update posted",
        "retry_count": 0,
        "max_retries": 3,
        "created_at": now,
        "updated_at": now,
    }
    values.update(fields)
    row = Notification(**values)
    session.add(row)
    await session.commit()
    return row


async def rewind_retry(session: AsyncSession, notification_id: str, *, now: datetime | None = None) -> None:
    # Move a scheduled retry into the past instead of waiting out the backoff.
    due = (now or utc_now()) - timedelta(seconds=1)
    await session.execute(
        update(Notification).where(Notification.id == notification_id).values(next_retry_at=due)
    )
    await session.commit()
