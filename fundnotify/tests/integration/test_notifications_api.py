from __future__ import annotations

import pytest
from sqlalchemy import func, select

from fundnotify.domain.models import Notification
from fundnotify.tests.utils.api import api_client, identity_headers
from fundnotify.tests.utils.notifications import insert_notification, notification_payload


READER = identity_headers()
EDITOR = identity_headers(user_id="ops-1", role="editor")
ADMIN = identity_headers(user_id="admin-1", role="admin")


@pytest.mark.asyncio
async def test_health_reports_database_and_envelope(session_factory) -> None:
    async with api_client(session_factory) as client:
        await client.get("/v1/notifications/unread-count", headers=READER)
        response = await client.get("/v1/health")
    assert response.status_code == 200
    body = response.json()
    assert body["data"]["status"] == "ok"
    assert body["data"]["database"] == "ok"
    assert body["data"]["p95_latency_ms"] is not None
    assert body["data"]["transports"] == {}
    assert set(body["data"]["database_pool"]) == {"size", "checked_out", "checked_in", "overflow"}
    assert body["meta"]["api_version"] == "v1"
    assert response.headers["X-Request-Id"] == body["meta"]["request_id"]


@pytest.mark.asyncio
async def test_create_requires_editor_and_identity(session_factory) -> None:
    async with api_client(session_factory) as client:
        created = await client.post("/v1/notifications", headers=EDITOR, json=notification_payload())
        forbidden = await client.post("/v1/notifications", headers=READER, json=notification_payload())
        anonymous = await client.post(
            "/v1/notifications", headers={"X-User-Id": "user-1"}, json=notification_payload()
        )
        bad_role = await client.get("/v1/notifications", headers=identity_headers(role="root"))

    assert created.status_code == 201
    data = created.json()["data"]
    assert data["tenant_id"] == "t1"
    assert data["user_id"] == "user-1"
    assert data["status"] == "pending"
    assert data["retry_count"] == 0
    assert forbidden.status_code == 403
    assert forbidden.json()["error"]["code"] == "AUTH_FORBIDDEN"
    assert anonymous.status_code == 401
    assert anonymous.json()["error"]["code"] == "AUTH_UNAUTHORIZED"
    assert bad_role.status_code == 400
    assert bad_role.json()["error"]["code"] == "AUTH_INVALID_ROLE"


@pytest.mark.asyncio
async def test_create_rejects_invalid_payloads(session_factory) -> None:
    async with api_client(session_factory) as client:
        bad_channel = await client.post("/v1/notifications", headers=EDITOR, json=notification_payload(channel="fax"))
        bad_status = await client.post("/v1/notifications", headers=EDITOR, json=notification_payload(status="read"))
    assert bad_channel.status_code == 422
    assert bad_channel.json()["error"]["code"] == "REQUEST_VALIDATION_ERROR"
    assert bad_status.status_code == 422


@pytest.mark.asyncio
async def test_bulk_create_reports_failing_index_and_persists_nothing(session_factory) -> None:
    batch = [notification_payload(user_id=f"user-{idx}") for idx in range(5)]
    batch[2]["channel"] = "fax"
    async with api_client(session_factory) as client:
        rejected = await client.post("/v1/notifications/bulk", headers=EDITOR, json={"notifications": batch})
        batch[2]["channel"] = "portal"
        accepted = await client.post("/v1/notifications/bulk", headers=EDITOR, json={"notifications": batch})

    assert rejected.status_code == 422
    error = rejected.json()["error"]
    assert error["code"] == "NOTIFICATION_VALIDATION_ERROR"
    assert error["details"]["index"] == 2
    assert accepted.status_code == 201
    assert [row["user_id"] for row in accepted.json()["data"]] == [f"user-{idx}" for idx in range(5)]
    async with session_factory() as session:
        total = (await session.execute(select(func.count()).select_from(Notification))).scalar()
    assert total == 5


@pytest.mark.asyncio
async def test_reader_inbox_flow(session_factory) -> None:
    async with session_factory() as session:
        first = await insert_notification(session, title="first")
        second = await insert_notification(session, title="second", status="sent")
        await insert_notification(session, title="cancelled", status="cancelled")
        await insert_notification(session, title="someone else", user_id="user-2")

    async with api_client(session_factory) as client:
        listing = await client.get("/v1/notifications", headers=READER)
        unread = await client.get("/v1/notifications/unread", headers=READER)
        count = await client.get("/v1/notifications/unread-count", headers=READER)
        read = await client.patch(f"/v1/notifications/{first.id}/read", headers=READER)
        count_after_read = await client.get("/v1/notifications/unread-count", headers=READER)
        read_all = await client.patch("/v1/notifications/read-all", headers=READER)
        count_after_all = await client.get("/v1/notifications/unread-count", headers=READER)
        fetched = await client.get(f"/v1/notifications/{second.id}", headers=READER)

    page = listing.json()["data"]
    assert page["count"] == 3
    assert page["limit"] == 50
    assert {item["title"] for item in page["items"]} == {"first", "second", "cancelled"}
    assert unread.json()["data"]["count"] == 2
    assert count.json()["data"] == {"unread_count": 2}
    assert read.status_code == 200
    assert read.json()["data"]["status"] == "read"
    assert read.json()["data"]["read_at"] is not None
    assert count_after_read.json()["data"]["unread_count"] == 1
    assert read_all.json()["data"] == {"updated": 1}
    assert count_after_all.json()["data"]["unread_count"] == 0
    assert fetched.json()["data"]["status"] == "read"


@pytest.mark.asyncio
async def test_foreign_notifications_look_missing(session_factory) -> None:
    async with session_factory() as session:
        row = await insert_notification(session, user_id="user-2")
        other_tenant = await insert_notification(session, tenant_id="t2")

    async with api_client(session_factory) as client:
        read = await client.patch(f"/v1/notifications/{row.id}/read", headers=READER)
        fetched = await client.get(f"/v1/notifications/{row.id}", headers=READER)
        cross_tenant = await client.get(f"/v1/notifications/{other_tenant.id}", headers=READER)
        admin_view = await client.get(f"/v1/notifications/{row.id}", headers=ADMIN)
        admin_list = await client.get("/v1/notifications", headers=ADMIN, params={"user_id": "user-2"})
        reader_list = await client.get("/v1/notifications", headers=READER, params={"user_id": "user-2"})

    assert read.status_code == 404
    assert fetched.status_code == 404
    assert cross_tenant.status_code == 404
    assert admin_view.status_code == 200
    assert admin_list.json()["data"]["count"] == 1
    assert reader_list.status_code == 403
    async with session_factory() as session:
        current = await session.get(Notification, row.id)
    assert current.status == "pending"
    assert current.read_at is None


@pytest.mark.asyncio
async def test_admin_cancel_deliver_and_delete(session_factory) -> None:
    async with session_factory() as session:
        pending = await insert_notification(session)
        sent = await insert_notification(session, status="sent")

    async with api_client(session_factory) as client:
        reader_cancel = await client.post(f"/v1/notifications/{pending.id}/cancel", headers=READER)
        cancelled = await client.post(f"/v1/notifications/{pending.id}/cancel", headers=ADMIN)
        read_cancelled = await client.patch(f"/v1/notifications/{pending.id}/read", headers=READER)
        cancel_sent = await client.post(f"/v1/notifications/{sent.id}/cancel", headers=ADMIN)
        delivered = await client.post(f"/v1/notifications/{sent.id}/delivered", headers=ADMIN)
        attempts = await client.get(f"/v1/notifications/{sent.id}/attempts", headers=ADMIN)
        deleted = await client.delete(f"/v1/notifications/{sent.id}", headers=ADMIN)
        missing = await client.delete(f"/v1/notifications/{sent.id}", headers=ADMIN)

    assert reader_cancel.status_code == 403
    assert cancelled.json()["data"]["status"] == "cancelled"
    assert read_cancelled.status_code == 409
    assert read_cancelled.json()["error"]["code"] == "INVALID_TRANSITION"
    assert cancel_sent.status_code == 409
    assert cancel_sent.json()["error"]["details"] == {"status": "sent"}
    assert delivered.json()["data"]["status"] == "delivered"
    assert attempts.json()["data"] == []
    assert deleted.json()["data"] == {"deleted": True}
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_legacy_routes_return_bare_payloads(session_factory) -> None:
    async with session_factory() as session:
        await insert_notification(session)

    async with api_client(session_factory) as client:
        response = await client.get("/notifications/unread-count", headers=READER)
        missing = await client.get("/notifications/does-not-exist", headers=READER)

    assert response.status_code == 200
    assert response.json() == {"unread_count": 1}
    assert response.headers["Deprecation"] == "true"
    assert "successor-version" in response.headers["Link"]
    assert missing.status_code == 404
    assert missing.json() == {"detail": "Notification not found"}


@pytest.mark.asyncio
async def test_openapi_documents_notification_errors(session_factory) -> None:
    async with api_client(session_factory) as client:
        response = await client.get("/v1/openapi.json")
    schema = response.json()
    cancel = schema["paths"]["/v1/notifications/{notification_id}/cancel"]["post"]
    conflict = cancel["responses"]["409"]["content"]["application/json"]["examples"]
    assert conflict["invalid_transition"]["value"]["error"]["details"] == {"status": "sent"}
    bulk = schema["paths"]["/v1/notifications/bulk"]["post"]
    rejected = bulk["responses"]["422"]["content"]["application/json"]["examples"]
    assert rejected["bulk_element"]["value"]["error"]["details"]["index"] == 2
    assert "409" not in schema["paths"]["/v1/health"]["get"]["responses"]
    assert cancel["security"] == [{"TenantHeader": [], "UserHeader": []}]
