"""Tests for the HTTP API."""
import httpx
import pytest

from conftest import seed_tenant, seed_user
from notifyhub.domain.notifications.models import NotificationCategory, NotificationType
from notifyhub.main import create_app


@pytest.fixture
async def ids(db_session):
    return await seed_user(db_session), await seed_tenant(db_session)


@pytest.fixture
async def client(settings, container):
    app = create_app(settings, container)
    # ASGITransport does not run the lifespan; the container fixture is already started.
    app.state.container = container
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def _headers(ids):
    return {"X-User-Id": ids[0], "X-Tenant-Id": ids[1]}


async def _seed_notifications(services, ids, count):
    for i in range(count):
        await services.notifications.create(
            user_id=ids[0],
            tenant_id=ids[1],
            type=NotificationType.SYSTEM,
            category=NotificationCategory.WELCOME,
            title=f"n{i}",
            message="hello",
        )


class TestInbox:
    """Notification inbox routes."""

    async def test_identity_headers_required(self, client):
        response = await client.get("/v1/notifications")
        assert response.status_code == 401

    async def test_list_and_paginate(self, client, services, ids, clock):
        for i in range(25):
            await _seed_notifications(services, ids, 1)
            clock.advance(seconds=1)
        response = await client.get("/v1/notifications", headers=_headers(ids))
        assert response.status_code == 200
        body = response.json()
        assert len(body["items"]) == 20
        assert body["has_more"] is True

        response = await client.get(
            "/v1/notifications", params={"cursor": body["next_cursor"]}, headers=_headers(ids)
        )
        body = response.json()
        assert len(body["items"]) == 5
        assert body["has_more"] is False
        assert body["next_cursor"] is None

    async def test_read_flow(self, client, services, ids):
        await _seed_notifications(services, ids, 3)
        response = await client.get("/v1/notifications/unread-count", headers=_headers(ids))
        assert response.json() == {"unread": 3}

        first = (await client.get("/v1/notifications", headers=_headers(ids))).json()["items"][0]
        response = await client.patch(f"/v1/notifications/{first['id']}/read", headers=_headers(ids))
        assert response.status_code == 200
        assert response.json()["is_read"] is True

        response = await client.post("/v1/notifications/read-all", headers=_headers(ids))
        assert response.json() == {"updated": 2}
        response = await client.get("/v1/notifications", params={"unread_only": True}, headers=_headers(ids))
        assert response.json()["items"] == []

    async def test_other_users_notification_is_not_found(self, client, services, ids, db_session):
        await _seed_notifications(services, ids, 1)
        first = (await client.get("/v1/notifications", headers=_headers(ids))).json()["items"][0]
        stranger = {"X-User-Id": await seed_user(db_session), "X-Tenant-Id": ids[1]}
        response = await client.patch(f"/v1/notifications/{first['id']}/read", headers=stranger)
        assert response.status_code == 404
        response = await client.delete(f"/v1/notifications/{first['id']}", headers=stranger)
        assert response.status_code == 404

    async def test_delete(self, client, services, ids):
        await _seed_notifications(services, ids, 1)
        first = (await client.get("/v1/notifications", headers=_headers(ids))).json()["items"][0]
        response = await client.delete(f"/v1/notifications/{first['id']}", headers=_headers(ids))
        assert response.status_code == 204
        response = await client.get("/v1/notifications/unread-count", headers=_headers(ids))
        assert response.json() == {"unread": 0}


class TestPreferences:
    """Preference routes."""

    async def test_get_creates_defaults(self, client, ids):
        response = await client.get("/v1/notifications/preferences", headers=_headers(ids))
        assert response.status_code == 200
        body = response.json()
        assert body["email_enabled"] is True
        assert body["sound_volume"] == 50
        assert body["category_preferences"] == {}

    async def test_patch(self, client, ids):
        response = await client.patch(
            "/v1/notifications/preferences",
            json={"sound_volume": 20, "category_preferences": {"welcome": {"email": False}}},
            headers=_headers(ids),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["sound_volume"] == 20
        assert body["category_preferences"] == {"welcome": {"email": False}}

    async def test_patch_validation(self, client, ids):
        response = await client.patch(
            "/v1/notifications/preferences", json={"sound_volume": 101}, headers=_headers(ids)
        )
        assert response.status_code == 422
        response = await client.patch(
            "/v1/notifications/preferences",
            json={"category_preferences": {"lunch_menu": {"email": False}}},
            headers=_headers(ids),
        )
        assert response.status_code == 422

    async def test_pause_and_resume(self, client, ids):
        response = await client.post(
            "/v1/notifications/preferences/pause", json={"duration": "1h"}, headers=_headers(ids)
        )
        assert response.status_code == 200
        assert response.json()["is_paused"] is True
        response = await client.post("/v1/notifications/preferences/resume", headers=_headers(ids))
        assert response.json()["is_paused"] is False
        assert response.json()["paused_until"] is None

    async def test_custom_pause_needs_until(self, client, ids):
        response = await client.post(
            "/v1/notifications/preferences/pause", json={"duration": "custom"}, headers=_headers(ids)
        )
        assert response.status_code == 422


class TestAdmin:
    """Reminder admin routes."""

    async def test_manual_trigger(self, client, container):
        response = await client.post("/v1/admin/reminders/trigger/phone")
        assert response.status_code == 202
        job_id = response.json()["job_id"]
        assert job_id.startswith("manual-phone-")
        assert await container.queue.get_job(job_id) is not None

        response = await client.get("/v1/admin/reminders/queue")
        assert response.json()["waiting"] == 1

    async def test_unknown_trigger(self, client):
        response = await client.post("/v1/admin/reminders/trigger/sms")
        assert response.status_code == 422

    async def test_schedules(self, client, container):
        await container.scheduler.setup_schedules()
        response = await client.get("/v1/admin/reminders/schedules")
        assert response.status_code == 200
        assert len(response.json()) == 5


class TestEvents:
    """Internal event intake."""

    async def test_event_is_accepted_and_delivered(self, client, container, services, ids, email_sender):
        response = await client.post(
            "/v1/internal/events",
            json={"event": "mfa_disabled", "user_id": ids[0], "tenant_id": ids[1]},
        )
        assert response.status_code == 202
        await container.background.drain()
        assert len(email_sender.sent) == 1
        page = await services.notifications.list(*ids)
        assert page.items[0].category is NotificationCategory.MFA_DISABLED

    async def test_unknown_event(self, client, ids):
        response = await client.post("/v1/internal/events", json={"event": "nope", "user_id": ids[0]})
        assert response.status_code == 422


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
