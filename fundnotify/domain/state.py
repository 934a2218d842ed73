"""Pure lifecycle rules for notification records.

Everything here operates on plain values (or any object exposing the
notification attributes) and never touches the store, so the state machine
and backoff policy can be exercised without I/O.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from fundnotify.domain.enums import NotificationStatus


# Statuses a delivery attempt may start from; failed is always terminal.
ATTEMPTABLE_STATUSES = (NotificationStatus.PENDING.value,)
# Statuses a failure report is accepted from; bounces may arrive after hand-off.
FAILABLE_STATUSES = (NotificationStatus.PENDING.value, NotificationStatus.SENT.value)
# Statuses a recipient may mark as read.
READABLE_STATUSES = (
    NotificationStatus.PENDING.value,
    NotificationStatus.SENT.value,
    NotificationStatus.DELIVERED.value,
)
# Statuses hidden from the unread view: withdrawn or undeliverable.
UNREAD_EXCLUDED_STATUSES = (NotificationStatus.CANCELLED.value, NotificationStatus.FAILED.value)
# Settled statuses that survive expiry until the age-based sweep.
SETTLED_STATUSES = (NotificationStatus.READ.value, NotificationStatus.DELIVERED.value)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on round-trip; stored values are always UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _status(notification: Any) -> str:
    status = notification.status
    return status.value if isinstance(status, NotificationStatus) else str(status)


def is_read(notification: Any) -> bool:
    return notification.read_at is not None


def is_expired(notification: Any, now: datetime | None = None) -> bool:
    expires_at = as_utc(notification.expires_at)
    if expires_at is None:
        return False
    return expires_at < (now or utc_now())


def is_terminal(notification: Any) -> bool:
    """Return True for absorbing states: cancelled, or failed."""
    return _status(notification) in (NotificationStatus.CANCELLED.value, NotificationStatus.FAILED.value)


def is_attemptable(notification: Any, now: datetime | None = None) -> bool:
    # Mirror the scheduler selection so a stale batch entry is re-checked before sending.
    if is_expired(notification, now):
        return False
    status = _status(notification)
    if status == NotificationStatus.PENDING.value:
        next_retry_at = as_utc(notification.next_retry_at)
        return next_retry_at is None or next_retry_at <= (now or utc_now())
    return False


def retry_backoff(retry_count: int, *, base_minutes: int = 5, factor: int = 3) -> timedelta:
    """Delay before the next attempt after the ``retry_count``-th failure.

    ``retry_count`` is 1-indexed: 5, 15 and 45 minutes for the first three
    failures under the default policy.
    """
    if retry_count < 1:
        raise ValueError("retry_count must be >= 1")
    return timedelta(minutes=base_minutes * (factor ** (retry_count - 1)))


@dataclass(frozen=True)
class FailurePlan:
    status: str
    retry_count: int
    next_retry_at: datetime | None
    failed_at: datetime

    @property
    def terminal(self) -> bool:
        return self.status == NotificationStatus.FAILED.value


def plan_failure(
    *,
    retry_count: int,
    max_retries: int,
    now: datetime,
    retryable: bool = True,
    base_minutes: int = 5,
    factor: int = 3,
) -> FailurePlan:
    """Compute the transition a failed attempt produces.

    The count never exceeds ``max_retries``; once the ceiling is reached, or the
    failure is permanent, the record settles into terminal ``failed``.
    """
    ceiling = max(0, int(max_retries))
    new_count = min(int(retry_count) + 1, ceiling)
    if retryable and new_count < ceiling:
        return FailurePlan(
            status=NotificationStatus.PENDING.value,
            retry_count=new_count,
            next_retry_at=now + retry_backoff(new_count, base_minutes=base_minutes, factor=factor),
            failed_at=now,
        )
    return FailurePlan(
        status=NotificationStatus.FAILED.value,
        retry_count=new_count,
        next_retry_at=None,
        failed_at=now,
    )
