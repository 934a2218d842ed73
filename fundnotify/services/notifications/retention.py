from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from fundnotify.core.config import get_settings
from fundnotify.domain.state import utc_now
from fundnotify.persistence.guards import store_errors
from fundnotify.persistence.repos import notifications as notifications_repo
from fundnotify.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionReport:
    old_read_deleted: int
    expired_deleted: int

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


async def delete_old_read(*, session: AsyncSession, days_old: int | None = None) -> int:
    # Read rows older than the cutoff are settled and safe to purge.
    if days_old is None:
        days_old = get_settings().notify_read_retention_days
    cutoff = utc_now() - timedelta(days=max(0, int(days_old)))
    async with store_errors(session, "pruning read notifications"):
        ids = await notifications_repo.ids_read_before(session, cutoff=cutoff)
        deleted = await notifications_repo.delete_with_attempts(session, ids)
        await session.commit()
    increment_counter("retention.old_read_deleted", deleted)
    return deleted


async def delete_expired(*, session: AsyncSession) -> int:
    # Expired rows that never settled are dropped; read and delivered rows wait for the age sweep.
    async with store_errors(session, "pruning expired notifications"):
        ids = await notifications_repo.ids_expired_unsettled(session, now=utc_now())
        deleted = await notifications_repo.delete_with_attempts(session, ids)
        await session.commit()
    increment_counter("retention.expired_deleted", deleted)
    return deleted


async def delete_notification(
    *,
    session: AsyncSession,
    notification_id: str,
    tenant_id: str | None = None,
) -> bool:
    async with store_errors(session, "deleting notification"):
        row = await notifications_repo.get_notification(session, notification_id, tenant_id=tenant_id)
        if row is None:
            return False
        deleted = await notifications_repo.delete_with_attempts(session, [row.id])
        await session.commit()
    logger.info("notification deleted", extra={"tenant_id": tenant_id, "notification_id": notification_id})
    return deleted > 0


async def run_retention_cycle(*, session: AsyncSession, days_old: int | None = None) -> RetentionReport:
    old_read = await delete_old_read(session=session, days_old=days_old)
    expired = await delete_expired(session=session)
    report = RetentionReport(old_read_deleted=old_read, expired_deleted=expired)
    logger.info("retention cycle complete old_read=%s expired=%s", old_read, expired, extra={"cycle": "retention"})
    return report
