from __future__ import annotations

import pytest

from fundnotify.tests.utils.api import api_client, identity_headers


READER = identity_headers()


@pytest.mark.asyncio
async def test_settings_lifecycle(session_factory) -> None:
    async with api_client(session_factory) as client:
        initial = await client.get("/v1/notifications/settings", headers=READER)
        updated = await client.put(
            "/v1/notifications/settings",
            headers=READER,
            json={"capital_call_notices": True, "notification_frequency": "daily"},
        )
        enabled = await client.patch("/v1/notifications/settings/enable-all", headers=READER)
        disabled = await client.patch("/v1/notifications/settings/disable-all", headers=READER)
        deleted = await client.delete("/v1/notifications/settings", headers=READER)
        recreated = await client.get("/v1/notifications/settings", headers=READER)

    assert initial.status_code == 200
    data = initial.json()["data"]
    assert data["user_id"] == "user-1"
    assert len(data["toggles"]) == 18
    assert not any(data["toggles"].values())
    assert data["notification_frequency"] == "immediate"

    assert updated.json()["data"]["toggles"]["capital_call_notices"] is True
    assert updated.json()["data"]["notification_frequency"] == "daily"
    assert all(enabled.json()["data"]["toggles"].values())
    assert not any(disabled.json()["data"]["toggles"].values())
    assert deleted.json()["data"] == {"deleted": True}
    assert recreated.json()["data"]["notification_frequency"] == "immediate"


@pytest.mark.asyncio
async def test_settings_reject_unknown_fields(session_factory) -> None:
    async with api_client(session_factory) as client:
        response = await client.put(
            "/v1/notifications/settings",
            headers=READER,
            json={"carrier_pigeon_notifications": True},
        )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "REQUEST_VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_settings_are_per_user(session_factory) -> None:
    async with api_client(session_factory) as client:
        await client.patch("/v1/notifications/settings/enable-all", headers=READER)
        other = await client.get("/v1/notifications/settings", headers=identity_headers(user_id="user-2"))
        anonymous = await client.get("/v1/notifications/settings", headers={"X-Tenant-Id": "t1"})
    assert not any(other.json()["data"]["toggles"].values())
    assert anonymous.status_code == 401
