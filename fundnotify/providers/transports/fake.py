from __future__ import annotations

import asyncio
from typing import Iterable

from fundnotify.domain.models import Notification
from fundnotify.providers.transports.base import DeliveryResult


class FakeTransport:
    """Scripted transport for tests and local runs.

    Outcomes are consumed in order; once the script is exhausted every call
    uses ``default``. ``delay_s`` simulates a slow gateway.
    """

    name = "fake"

    def __init__(
        self,
        outcomes: Iterable[DeliveryResult | Exception] | None = None,
        *,
        default: DeliveryResult | None = None,
        delay_s: float = 0.0,
    ) -> None:
        self._outcomes = list(outcomes or [])
        self._default = default or DeliveryResult.success()
        self._delay_s = delay_s
        self.sent: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, notification: Notification) -> DeliveryResult:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._delay_s:
                await asyncio.sleep(self._delay_s)
            self.sent.append(notification.id)
            outcome = self._outcomes.pop(0) if self._outcomes else self._default
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            self.in_flight -= 1
