from __future__ import annotations

from fundnotify.core.config import get_settings
from fundnotify.core.errors import TransportConfigError
from fundnotify.domain.enums import NotificationChannel
from fundnotify.providers.transports.base import ChannelTransport
from fundnotify.providers.transports.fake import FakeTransport
from fundnotify.providers.transports.portal import PortalTransport
from fundnotify.providers.transports.webhook import WebhookTransport


def get_transport(channel: str) -> ChannelTransport:
    settings = get_settings()
    try:
        resolved = NotificationChannel(channel)
    except ValueError as exc:
        raise TransportConfigError(f"Unsupported channel: {channel}") from exc

    if resolved == NotificationChannel.PORTAL:
        return PortalTransport()
    if resolved == NotificationChannel.EMAIL:
        kind, relay_url = settings.notify_email_transport, settings.notify_email_relay_url
    else:
        kind, relay_url = settings.notify_sms_transport, settings.notify_sms_relay_url

    kind = (kind or "webhook").lower()
    if kind == "fake":
        return FakeTransport()
    if kind == "webhook":
        return WebhookTransport(name=resolved.value, relay_url=relay_url, token=settings.notify_relay_token)

    raise TransportConfigError(f"Unsupported transport for {resolved.value}: {kind}")
