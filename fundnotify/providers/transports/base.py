from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from fundnotify.domain.models import Notification


@dataclass(frozen=True)
class DeliveryResult:
    ok: bool
    error: str | None = None
    # Permanent failures settle the notification without consuming further retries.
    retryable: bool = True

    @classmethod
    def success(cls) -> "DeliveryResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, error: str, *, retryable: bool = True) -> "DeliveryResult":
        return cls(ok=False, error=error, retryable=retryable)


class ChannelTransport(Protocol):
    name: str

    async def send(self, notification: Notification) -> DeliveryResult:
        ...


def notification_payload(notification: Notification) -> dict:
    # Wire shape handed to relays; timestamps are ISO strings.
    return {
        "id": notification.id,
        "tenant_id": notification.tenant_id,
        "user_id": notification.user_id,
        "notification_type": notification.notification_type,
        "channel": notification.channel,
        "priority": notification.priority,
        "title": notification.title,
        "message": notification.message,
        "metadata": notification.metadata_json or {},
        "action_url": notification.action_url,
        "email_subject": notification.email_subject,
        "email_template": notification.email_template,
        "sms_phone_number": notification.sms_phone_number,
        "attempt": int(notification.retry_count or 0) + 1,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }
