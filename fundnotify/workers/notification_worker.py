from __future__ import annotations

import logging

from arq.connections import RedisSettings

from fundnotify.core.config import get_settings
from fundnotify.core.logging import configure_logging
from fundnotify.persistence.db import SessionLocal
from fundnotify.services.notifications.retention import run_retention_cycle
from fundnotify.services.notifications.scheduler import BackgroundSweeps, run_retry_cycle

logger = logging.getLogger(__name__)


async def run_retry_cycle_job(ctx) -> dict:
    # Allow operators to trigger an out-of-band retry sweep through the queue.
    report = await run_retry_cycle(session_factory=SessionLocal)
    return {
        "selected": report.selected,
        "sent": report.sent,
        "retrying": report.retrying,
        "failed": report.failed,
        "skipped": report.skipped,
        "errors": len(report.errors),
    }


async def run_retention_job(ctx) -> dict:
    async with SessionLocal() as session:
        report = await run_retention_cycle(session=session)
    return report.as_dict()


async def _startup(ctx) -> None:
    # Start both sweeps with the worker so retries continue even when API traffic is idle.
    configure_logging()
    sweeps = BackgroundSweeps(session_factory=SessionLocal)
    sweeps.start()
    ctx["sweeps"] = sweeps


async def _shutdown(ctx) -> None:
    # Let the in-flight batch finish so unattempted rows stay eligible for the next worker.
    sweeps = ctx.get("sweeps")
    if sweeps:
        await sweeps.stop()


class WorkerSettings:
    # Keep worker settings as class attributes for ARQ CLI compatibility.
    settings = get_settings()
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    queue_name = settings.notify_queue_name
    functions = [run_retry_cycle_job, run_retention_job]
    on_startup = _startup
    on_shutdown = _shutdown
