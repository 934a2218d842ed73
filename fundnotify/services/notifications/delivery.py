from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from fundnotify.core.errors import TransportError
from fundnotify.domain.enums import AttemptOutcome, NotificationStatus
from fundnotify.domain.models import NotificationAttempt
from fundnotify.domain.state import is_attemptable, utc_now
from fundnotify.persistence.guards import store_errors
from fundnotify.persistence.repos import notifications as notifications_repo
from fundnotify.providers.transports.base import ChannelTransport, DeliveryResult
from fundnotify.services.notifications import lifecycle
from fundnotify.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

SKIPPED = "skipped"


@dataclass(frozen=True)
class DeliveryOutcome:
    notification_id: str
    # One of AttemptOutcome values, or "skipped" when the row was no longer eligible.
    outcome: str
    status: str | None = None
    error: str | None = None


async def _send_with_timeout(transport: ChannelTransport, notification, timeout_s: float | None) -> DeliveryResult:
    try:
        if timeout_s is None:
            return await transport.send(notification)
        return await asyncio.wait_for(transport.send(notification), timeout=timeout_s)
    except asyncio.TimeoutError:
        increment_counter("delivery.timeouts")
        return DeliveryResult.failure(f"delivery timed out after {timeout_s}s", retryable=True)
    except TransportError as exc:
        return DeliveryResult.failure(str(exc), retryable=exc.retryable)
    except Exception as exc:  # noqa: BLE001 - unexpected transport faults still consume a retry slot.
        logger.exception("transport raised unexpectedly", extra={"notification_id": notification.id})
        return DeliveryResult.failure(f"{type(exc).__name__}: {exc}", retryable=True)


async def attempt_delivery(
    *,
    session: AsyncSession,
    notification_id: str,
    transport: ChannelTransport,
    timeout_s: float | None = None,
) -> DeliveryOutcome:
    """Hand one notification to its transport and persist the resulting transition."""
    async with store_errors(session, "loading notification for delivery"):
        notification = await notifications_repo.get_notification(session, notification_id, refresh=True)
    now = utc_now()
    # Re-check eligibility; the row may have changed since the batch was selected.
    if notification is None or not is_attemptable(notification, now):
        return DeliveryOutcome(notification_id=notification_id, outcome=SKIPPED)

    attempt_no = int(notification.retry_count or 0) + 1
    channel = notification.channel
    tenant_id = notification.tenant_id
    increment_counter("delivery.attempts")
    result = await _send_with_timeout(transport, notification, timeout_s)

    if result.ok:
        row = await lifecycle.mark_as_sent(session=session, notification_id=notification_id)
        outcome = AttemptOutcome.SENT.value if row is not None else SKIPPED
    else:
        row = await lifecycle.mark_as_failed(
            session=session,
            notification_id=notification_id,
            error_message=result.error or "delivery failed",
            retryable=result.retryable,
        )
        if row is None:
            outcome = SKIPPED
        elif row.status == NotificationStatus.PENDING.value:
            outcome = AttemptOutcome.RETRYING.value
        else:
            outcome = AttemptOutcome.FAILED.value

    if outcome != SKIPPED:
        async with store_errors(session, "recording delivery attempt"):
            notifications_repo.add_attempt(
                session,
                NotificationAttempt(
                    notification_id=notification_id,
                    tenant_id=tenant_id,
                    attempt_no=attempt_no,
                    channel=channel,
                    outcome=outcome,
                    error=None if result.ok else result.error,
                    started_at=now,
                    finished_at=utc_now(),
                ),
            )
            await session.commit()
        increment_counter(f"delivery.outcome.{outcome}")
    return DeliveryOutcome(
        notification_id=notification_id,
        outcome=outcome,
        status=row.status if row is not None else None,
        error=None if result.ok else result.error,
    )
