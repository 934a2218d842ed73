from __future__ import annotations

import json

import httpx
import pytest

from fundnotify.core.config import get_settings
from fundnotify.core.errors import TransportConfigError
from fundnotify.domain.models import Notification
from fundnotify.domain.state import utc_now
from fundnotify.providers.transports.factory import get_transport
from fundnotify.providers.transports.fake import FakeTransport
from fundnotify.providers.transports.portal import PortalTransport
from fundnotify.providers.transports.webhook import WebhookTransport, classify_status
from fundnotify.services.telemetry import external_call_stats


def _notification() -> Notification:
    return Notification(
        id="n-1",
        tenant_id="t1",
        user_id="user-1",
        notification_type="capital_call_notice",
        channel="email",
        priority="high",
        status="pending",
        title="Capital call",
        message="Due in 10 days",
        retry_count=1,
        max_retries=3,
        created_at=utc_now(),
    )


def _transport(handler) -> WebhookTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebhookTransport(name="email", relay_url="https://relay.test/send", token="secret", client=client)


@pytest.mark.parametrize(
    ("status_code", "ok", "retryable"),
    [
        (200, True, True),
        (202, True, True),
        (503, False, True),
        (429, False, True),
        (408, False, True),
        (400, False, False),
        (404, False, False),
    ],
)
def test_classify_status(status_code: int, ok: bool, retryable: bool) -> None:
    result = classify_status(status_code)
    assert result.ok is ok
    assert result.retryable is retryable


@pytest.mark.asyncio
async def test_webhook_posts_payload_with_headers() -> None:
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(202)

    transport = _transport(handler)
    result = await transport.send(_notification())
    await transport.aclose()
    assert result.ok
    assert captured["headers"]["X-Notification-Id"] == "n-1"
    assert captured["headers"]["X-Notification-Attempt"] == "2"
    assert captured["headers"]["Authorization"] == "Bearer secret"
    assert captured["body"]["title"] == "Capital call"
    assert captured["body"]["attempt"] == 2
    assert external_call_stats(60)["transport.email"]["failures"] == 0


@pytest.mark.asyncio
async def test_webhook_maps_failures() -> None:
    unavailable = await _transport(lambda request: httpx.Response(503)).send(_notification())
    assert not unavailable.ok and unavailable.retryable

    rejected = await _transport(lambda request: httpx.Response(400)).send(_notification())
    assert not rejected.ok and not rejected.retryable

    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    unreachable = await _transport(refuse).send(_notification())
    assert not unreachable.ok and unreachable.retryable
    assert "ConnectError" in unreachable.error
    assert external_call_stats(60)["transport.email"]["failures"] == 3


@pytest.mark.asyncio
async def test_noop_relay_succeeds_without_network() -> None:
    transport = WebhookTransport(name="sms", relay_url="noop://sms")
    assert (await transport.send(_notification())).ok


def test_webhook_rejects_bad_relay_urls() -> None:
    with pytest.raises(TransportConfigError):
        WebhookTransport(name="email", relay_url="")
    with pytest.raises(TransportConfigError):
        WebhookTransport(name="email", relay_url="ftp://relay.test")


@pytest.mark.asyncio
async def test_portal_transport_always_succeeds() -> None:
    assert (await PortalTransport().send(_notification())).ok


def test_factory_resolves_by_channel(monkeypatch) -> None:
    assert isinstance(get_transport("portal"), PortalTransport)
    assert isinstance(get_transport("email"), WebhookTransport)

    monkeypatch.setenv("NOTIFY_SMS_TRANSPORT", "fake")
    get_settings.cache_clear()
    assert isinstance(get_transport("sms"), FakeTransport)

    monkeypatch.setenv("NOTIFY_EMAIL_TRANSPORT", "carrier-pigeon")
    get_settings.cache_clear()
    with pytest.raises(TransportConfigError):
        get_transport("email")
    with pytest.raises(TransportConfigError):
        get_transport("fax")
