"""HTTP tests for health, users and notifications."""

from __future__ import annotations

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from commonly.notifications.service import dispatch_notification
from tests.conftest import auth_headers, make_user


class TestHealth:
    async def test_health(self, client: AsyncClient) -> None:
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}

    async def test_ready_without_redis(self, client: AsyncClient) -> None:
        resp = await client.get("/ready")
        assert resp.json() == {"status": "ready", "checks": {"database": "ok", "redis": "disabled"}}

    async def test_version(self, client: AsyncClient) -> None:
        assert "version" in (await client.get("/version")).json()

    async def test_request_id_header(self, client: AsyncClient) -> None:
        resp = await client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert resp.headers["X-Request-ID"] == "abc-123"


class TestUsers:
    async def test_search_excludes_self(self, client: AsyncClient, db: AsyncSession) -> None:
        await make_user(db, "alice", "Alice Smith")
        await make_user(db, "alina", "Alina Jones")
        await make_user(db, "bob", "Bob")

        resp = await client.get("/api/v1/users/search?q=ali", headers=auth_headers("alice"))

        assert [u["uid"] for u in resp.json()["users"]] == ["alina"]

    async def test_search_wildcards_match_literally(self, client: AsyncClient, db: AsyncSession) -> None:
        await make_user(db, "promo", "100% Deals")
        await make_user(db, "bob", "Bob")
        await make_user(db, "snake", "snake_case")
        headers = auth_headers("alice")

        percent = (await client.get("/api/v1/users/search", params={"q": "%"}, headers=headers)).json()
        underscore = (await client.get("/api/v1/users/search", params={"q": "_"}, headers=headers)).json()

        assert [u["uid"] for u in percent["users"]] == ["promo"]
        assert [u["uid"] for u in underscore["users"]] == ["snake"]

    async def test_presence(self, client: AsyncClient) -> None:
        put = await client.put("/api/v1/users/me/presence", json={"online": True}, headers=auth_headers("alice"))
        assert put.json()["online"] is True

        resp = await client.get("/api/v1/users/alice/presence", headers=auth_headers("bob"))
        assert resp.json()["online"] is True
        assert (await client.get("/api/v1/users/ghost/presence", headers=auth_headers("bob"))).status_code == 404


class TestNotifications:
    async def test_list_read_and_count(self, client: AsyncClient, db: AsyncSession) -> None:
        await make_user(db, "alice")
        first = await dispatch_notification(db, "alice", "follow", title="Bob followed you")
        await dispatch_notification(db, "alice", "like", title="Bob liked your post")
        headers = auth_headers("alice")

        listing = (await client.get("/api/v1/notifications", headers=headers)).json()
        assert listing["total"] == 2
        assert {n["type"] for n in listing["notifications"]} == {"follow", "like"}

        read = await client.post(f"/api/v1/notifications/{first.notification_id}/read", headers=headers)
        assert read.status_code == 200
        assert (await client.get("/api/v1/notifications/unread-count", headers=headers)).json() == {"unread_count": 1}

        missing = await client.post("/api/v1/notifications/nope/read", headers=headers)
        assert missing.status_code == 404

    async def test_read_all_and_delete(self, client: AsyncClient, db: AsyncSession) -> None:
        await make_user(db, "alice")
        first = await dispatch_notification(db, "alice", "follow", title="Bob followed you")
        await dispatch_notification(db, "alice", "like", title="Bob liked your post")
        headers = auth_headers("alice")

        read_all = await client.post("/api/v1/notifications/read-all", headers=headers)
        assert read_all.status_code == 200
        assert read_all.json()["updated"] == 2
        assert (await client.get("/api/v1/notifications/unread-count", headers=headers)).json() == {"unread_count": 0}

        deleted = await client.delete(f"/api/v1/notifications/{first.notification_id}", headers=headers)
        assert deleted.status_code == 204
        assert (await client.get("/api/v1/notifications", headers=headers)).json()["total"] == 1

        other = await client.delete(f"/api/v1/notifications/{first.notification_id}", headers=auth_headers("bob"))
        assert other.status_code == 404

    async def test_settings(self, client: AsyncClient) -> None:
        headers = auth_headers("alice")

        defaults = (await client.get("/api/v1/notifications/settings", headers=headers)).json()
        assert defaults["in_app_notifications"] is True

        updated = await client.put(
            "/api/v1/notifications/settings", json={"in_app_notifications": False}, headers=headers
        )
        assert updated.json()["in_app_notifications"] is False
        assert updated.json()["push_notifications"] is True
