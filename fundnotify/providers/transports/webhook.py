from __future__ import annotations

import time

import httpx

from fundnotify.core.config import get_settings
from fundnotify.core.errors import TransportConfigError
from fundnotify.domain.models import Notification
from fundnotify.providers.transports.base import DeliveryResult, notification_payload
from fundnotify.services.telemetry import record_external_call


# Client errors that still indicate a transient receiver condition.
_RETRYABLE_HTTP_4XX = {408, 429}


def classify_status(status_code: int) -> DeliveryResult:
    if 200 <= status_code < 300:
        return DeliveryResult.success()
    if status_code in _RETRYABLE_HTTP_4XX or status_code >= 500:
        return DeliveryResult.failure(f"relay returned {status_code}", retryable=True)
    return DeliveryResult.failure(f"relay rejected notification ({status_code})", retryable=False)


class WebhookTransport:
    """POST notifications to a channel relay (mail relay, SMS gateway)."""

    def __init__(
        self,
        *,
        name: str,
        relay_url: str,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not relay_url:
            raise TransportConfigError(f"Relay URL is required for the {name} transport")
        if not relay_url.startswith(("http://", "https://", "noop://")):
            raise TransportConfigError(f"Unsupported relay URL scheme for the {name} transport")
        self.name = name
        self._relay_url = relay_url
        self._token = token
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        # Reuse a single client per transport for connection pooling.
        timeout_s = max(0.2, float(get_settings().notify_attempt_timeout_s))
        self._client = httpx.AsyncClient(timeout=timeout_s)
        return self._client

    async def send(self, notification: Notification) -> DeliveryResult:
        # noop relays let local and dev environments run the full lifecycle without a gateway.
        if self._relay_url.startswith("noop://"):
            return DeliveryResult.success()
        headers = {
            "Content-Type": "application/json",
            "X-Notification-Id": notification.id,
            "X-Notification-Tenant-Id": notification.tenant_id,
            "X-Notification-Attempt": str(int(notification.retry_count or 0) + 1),
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        start = time.monotonic()
        try:
            response = await self._get_client().post(
                self._relay_url,
                json=notification_payload(notification),
                headers=headers,
            )
        except httpx.HTTPError as exc:
            record_external_call(
                integration=f"transport.{self.name}",
                latency_ms=(time.monotonic() - start) * 1000.0,
                success=False,
            )
            return DeliveryResult.failure(f"{type(exc).__name__}: {exc}", retryable=True)
        result = classify_status(int(response.status_code))
        record_external_call(
            integration=f"transport.{self.name}",
            latency_ms=(time.monotonic() - start) * 1000.0,
            success=result.ok,
        )
        return result

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
