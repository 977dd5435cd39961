"""HTTP tests for wallet and referral endpoints."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from urllib.parse import quote

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from commonly.db.models import Transaction
from commonly.timestamps import to_epoch_ms
from tests.conftest import BASE_TIME, auth_headers, make_user, make_wallet


class TestWallet:
    async def test_new_user_has_null_wallet(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/wallet", headers=auth_headers("newUser"))
        assert resp.status_code == 200
        assert resp.json() == {"wallet": None}

    async def test_withdrawal_flow(self, client: AsyncClient, db: AsyncSession) -> None:
        await make_user(db, "alice")
        await make_wallet(db, "alice", available="50.00")
        headers = auth_headers("alice")

        ok = await client.post("/api/v1/wallet/withdrawals", json={"amount": "20.00"}, headers=headers)
        assert ok.status_code == 200
        assert ok.json()["success"] is True
        transaction_id = ok.json()["transaction_id"]

        wallet = (await client.get("/api/v1/wallet", headers=headers)).json()["wallet"]
        assert wallet["available_balance"] == "30.00"
        assert wallet["pending_balance"] == "20.00"

        history = (await client.get("/api/v1/wallet/transactions", headers=headers)).json()
        assert history["total"] == 1
        assert history["transactions"][0]["id"] == transaction_id
        assert history["transactions"][0]["status"] == "pending"

    async def test_over_balance_reports_failure(self, client: AsyncClient, db: AsyncSession) -> None:
        await make_user(db, "alice")
        await make_wallet(db, "alice", available="5.00")
        headers = auth_headers("alice")

        resp = await client.post("/api/v1/wallet/withdrawals", json={"amount": 6}, headers=headers)

        assert resp.status_code == 200
        assert resp.json() == {"success": False, "message": "Insufficient balance", "transaction_id": None}
        wallet = (await client.get("/api/v1/wallet", headers=headers)).json()["wallet"]
        assert wallet["available_balance"] == "5.00"

    async def test_transaction_filters_validated(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/wallet/transactions?page=0", headers=auth_headers("alice"))
        assert resp.status_code == 422

    async def test_date_filters_take_epoch_ms(self, client: AsyncClient, db: AsyncSession) -> None:
        await make_user(db, "alice")
        for days, description in [(0, "first"), (1, "second"), (2, "third")]:
            db.add(
                Transaction(
                    user_id="alice",
                    type="deposit",
                    amount=Decimal("10.00"),
                    status="completed",
                    description=description,
                    created_at=BASE_TIME + timedelta(days=days),
                )
            )
        await db.commit()
        start = to_epoch_ms(BASE_TIME + timedelta(days=1))
        headers = auth_headers("alice")

        resp = await client.get(f"/api/v1/wallet/transactions?start_date={start}&end_date={start}", headers=headers)

        assert resp.status_code == 200
        assert [t["description"] for t in resp.json()["transactions"]] == ["second"]
        iso = await client.get("/api/v1/wallet/transactions?start_date=2026-03-02T00:00:00Z", headers=headers)
        assert iso.status_code == 422


class TestReferrals:
    async def test_create_is_idempotent(self, client: AsyncClient) -> None:
        headers = auth_headers("alice")

        first = await client.post("/api/v1/referrals?title=Jazz Night", json={"event_id": "evt-1"}, headers=headers)
        second = await client.post("/api/v1/referrals", json={"event_id": "evt-1"}, headers=headers)

        assert first.status_code == 200
        assert first.json()["created"] is True
        assert second.json()["created"] is False
        assert first.json()["code"] == second.json()["code"]

        body = first.json()
        assert body["url"].endswith(f"/r/{body['code']}")
        assert set(body["share_urls"]) == {"facebook", "twitter", "linkedin"}
        assert quote("Check out this event: Jazz Night", safe="") in body["share_urls"]["twitter"]

        listing = (await client.get("/api/v1/referrals", headers=headers)).json()["referrals"]
        assert [r["event_id"] for r in listing] == ["evt-1"]

    async def test_stats(self, client: AsyncClient) -> None:
        headers = auth_headers("alice")
        await client.post("/api/v1/referrals", json={"event_id": "evt-1"}, headers=headers)

        resp = await client.get("/api/v1/referrals/stats?period=week", headers=headers)

        assert resp.json() == {
            "period": "week",
            "total_referrals": 1,
            "click_count": 0,
            "conversion_count": 0,
            "total_earnings": "0.00",
            "conversion_rate": 0.0,
        }

    async def test_bad_period(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/referrals/stats?period=decade", headers=auth_headers("alice"))
        assert resp.status_code == 422
