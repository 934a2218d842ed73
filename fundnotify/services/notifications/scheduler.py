from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fundnotify.core.config import get_settings
from fundnotify.domain.enums import AttemptOutcome
from fundnotify.domain.models import Notification
from fundnotify.domain.state import utc_now
from fundnotify.persistence.guards import store_errors
from fundnotify.persistence.repos import notifications as notifications_repo
from fundnotify.providers.transports.base import ChannelTransport
from fundnotify.providers.transports.factory import get_transport
from fundnotify.services.notifications.delivery import attempt_delivery
from fundnotify.services.notifications.retention import run_retention_cycle
from fundnotify.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

TransportResolver = Callable[[str], ChannelTransport]


@dataclass
class RetryCycleReport:
    selected: int = 0
    sent: int = 0
    retrying: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)

    def record(self, outcome: str) -> None:
        if outcome == AttemptOutcome.SENT.value:
            self.sent += 1
        elif outcome == AttemptOutcome.RETRYING.value:
            self.retrying += 1
        elif outcome == AttemptOutcome.FAILED.value:
            self.failed += 1
        else:
            self.skipped += 1


async def get_pending_for_retry(
    *,
    session: AsyncSession,
    limit: int | None = None,
) -> list[Notification]:
    if limit is None:
        limit = get_settings().notify_retry_batch_size
    async with store_errors(session, "selecting notifications for retry"):
        return await notifications_repo.select_due(session, now=utc_now(), limit=limit)


class _TransportCache:
    # One transport per channel per cycle so webhook clients are reused across the batch.
    def __init__(self, resolver: TransportResolver) -> None:
        self._resolver = resolver
        self._cache: dict[str, ChannelTransport] = {}

    def get(self, channel: str) -> ChannelTransport:
        if channel not in self._cache:
            self._cache[channel] = self._resolver(channel)
        return self._cache[channel]

    async def aclose(self) -> None:
        for transport in self._cache.values():
            closer = getattr(transport, "aclose", None)
            if closer is not None:
                await closer()


async def run_retry_cycle(
    *,
    session_factory: async_sessionmaker[AsyncSession],
    transport_resolver: TransportResolver | None = None,
    limit: int | None = None,
    concurrency: int | None = None,
    timeout_s: float | None = None,
) -> RetryCycleReport:
    settings = get_settings()
    concurrency = max(1, int(concurrency or settings.notify_delivery_concurrency))
    if timeout_s is None:
        timeout_s = float(settings.notify_attempt_timeout_s)
    report = RetryCycleReport()

    async with session_factory() as session:
        batch = await get_pending_for_retry(session=session, limit=limit)
        due = [(row.id, row.channel) for row in batch]
    report.selected = len(due)
    if not due:
        return report

    transports = _TransportCache(transport_resolver or get_transport)
    semaphore = asyncio.Semaphore(concurrency)

    async def _process(notification_id: str, channel: str) -> None:
        async with semaphore:
            try:
                transport = transports.get(channel)
                # Each attempt owns its session so one record's failure cannot poison the rest.
                async with session_factory() as session:
                    outcome = await attempt_delivery(
                        session=session,
                        notification_id=notification_id,
                        transport=transport,
                        timeout_s=timeout_s,
                    )
                report.record(outcome.outcome)
            except Exception as exc:  # noqa: BLE001 - isolate per-record failures so the batch continues.
                logger.exception(
                    "notification delivery attempt failed",
                    extra={"notification_id": notification_id, "channel": channel},
                )
                increment_counter("retry_cycle.errors")
                report.errors.append({"notification_id": notification_id, "error": f"{type(exc).__name__}: {exc}"})

    try:
        await asyncio.gather(*(_process(notification_id, channel) for notification_id, channel in due))
    finally:
        await transports.aclose()
    increment_counter("retry_cycle.runs")
    logger.info(
        "retry cycle complete selected=%s sent=%s retrying=%s failed=%s skipped=%s errors=%s",
        report.selected,
        report.sent,
        report.retrying,
        report.failed,
        report.skipped,
        len(report.errors),
        extra={"cycle": "retry"},
    )
    return report


async def run_retry_loop(
    *,
    session_factory: async_sessionmaker[AsyncSession],
    stop_event: asyncio.Event,
    interval_s: float | None = None,
    transport_resolver: TransportResolver | None = None,
) -> None:
    # The stop signal is checked between cycles; an in-flight batch always finishes.
    interval = max(0.01, float(interval_s if interval_s is not None else get_settings().notify_retry_interval_s))
    while not stop_event.is_set():
        try:
            await run_retry_cycle(session_factory=session_factory, transport_resolver=transport_resolver)
        except Exception:  # noqa: BLE001 - keep scheduler alive while surfacing failures in worker logs.
            logger.exception("notification retry cycle failed")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            continue


async def run_retention_loop(
    *,
    session_factory: async_sessionmaker[AsyncSession],
    stop_event: asyncio.Event,
    interval_s: float | None = None,
) -> None:
    interval = max(0.01, float(interval_s if interval_s is not None else get_settings().notify_retention_interval_s))
    while not stop_event.is_set():
        try:
            async with session_factory() as session:
                await run_retention_cycle(session=session)
        except Exception:  # noqa: BLE001 - keep sweeper alive while surfacing failures in worker logs.
            logger.exception("notification retention cycle failed")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            continue


class BackgroundSweeps:
    """Own the retry scheduler and retention sweeper tasks for one process."""

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        retry_interval_s: float | None = None,
        retention_interval_s: float | None = None,
        transport_resolver: TransportResolver | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._retry_interval_s = retry_interval_s
        self._retention_interval_s = retention_interval_s
        self._transport_resolver = transport_resolver
        self._stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._tasks = [
            asyncio.create_task(
                run_retry_loop(
                    session_factory=self._session_factory,
                    stop_event=self._stop_event,
                    interval_s=self._retry_interval_s,
                    transport_resolver=self._transport_resolver,
                ),
                name="notification-retry-loop",
            ),
            asyncio.create_task(
                run_retention_loop(
                    session_factory=self._session_factory,
                    stop_event=self._stop_event,
                    interval_s=self._retention_interval_s,
                ),
                name="notification-retention-loop",
            ),
        ]
        logger.info("background sweeps started")

    async def stop(self, timeout_s: float = 30.0) -> None:
        self._stop_event.set()
        if not self._tasks:
            return
        _, pending = await asyncio.wait(self._tasks, timeout=timeout_s)
        # Cancel loops that did not finish their current batch within the grace period.
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks = []
        logger.info("background sweeps stopped")
