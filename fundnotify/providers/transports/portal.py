from __future__ import annotations

from fundnotify.domain.models import Notification
from fundnotify.providers.transports.base import DeliveryResult


class PortalTransport:
    name = "portal"

    async def send(self, notification: Notification) -> DeliveryResult:
        # The stored row is the in-app feed entry, so hand-off always succeeds.
        _ = notification
        return DeliveryResult.success()
