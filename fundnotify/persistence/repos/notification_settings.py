from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from fundnotify.domain.models import NotificationSettings


async def get_settings_row(session: AsyncSession, *, tenant_id: str, user_id: str) -> NotificationSettings | None:
    result = await session.execute(
        select(NotificationSettings).where(
            NotificationSettings.tenant_id == tenant_id,
            NotificationSettings.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def delete_settings_row(session: AsyncSession, *, tenant_id: str, user_id: str) -> int:
    result = await session.execute(
        delete(NotificationSettings)
        .where(
            NotificationSettings.tenant_id == tenant_id,
            NotificationSettings.user_id == user_id,
        )
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)
