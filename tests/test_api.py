"""
HTTP surface: authentication, error shaping and thin router wiring.
"""
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt

from conftest import WEBHOOK_SECRET, open_portal, seed_task, seed_user
from nulex import config
from nulex.db import get_async_db
from nulex.dependencies import get_payment_processor, get_settings_provider
from nulex.main import app
from nulex.services.korapay_service import sign_payload


def bearer(user_id):
    token = jwt.encode({"sub": str(user_id)}, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(async_session_maker, settings, processor):
    async def override_db():
        async with async_session_maker() as session:
            yield session

    app.dependency_overrides[get_async_db] = override_db
    app.dependency_overrides[get_settings_provider] = lambda: settings
    app.dependency_overrides[get_payment_processor] = lambda: processor
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


class TestAuth:
    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/wallet/me")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_bad_token(self, client):
        response = await client.get("/wallet/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_blocked_user_is_refused(self, client, session):
        user = await seed_user(session, "blocked", is_blocked=True)
        response = await client.get("/wallet/me", headers=bearer(user.id))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_admin_routes_require_admin(self, client, session):
        user = await seed_user(session, "plain")
        response = await client.get("/admin/settings", headers=bearer(user.id))
        assert response.status_code == 403


class TestErrorShape:
    @pytest.mark.asyncio
    async def test_domain_error_maps_to_status_and_message(self, client, session):
        user = await seed_user(session, "worker")
        response = await client.post("/tasks/404/start", headers=bearer(user.id))
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Task not found or inactive"}

    @pytest.mark.asyncio
    async def test_state_conflict_is_409(self, client, session):
        user = await seed_user(session, "worker")
        task = await seed_task(session)
        first = await client.post(f"/tasks/{task.id}/start", headers=bearer(user.id))
        assert first.status_code == 200
        assert first.json()["success"] is True

        second = await client.post(f"/tasks/{task.id}/start", headers=bearer(user.id))
        assert second.status_code == 409
        assert second.json()["error"] == "You have already started this task"

    @pytest.mark.asyncio
    async def test_request_validation(self, client, session):
        user = await seed_user(session, "ada", affiliate_balance=Decimal("5000"))
        response = await client.post(
            "/withdrawals",
            headers=bearer(user.id),
            json={
                "amount": 2000,
                "balance_type": "affiliate",
                "bank_name": "Test Bank",
                "bank_code": "058",
                "account_number": "123",
                "account_name": "ADA OBI",
            },
        )
        assert response.status_code == 422


@pytest.mark.asyncio
async def test_withdrawal_flow_over_http(client, session):
    user = await seed_user(session, "ada", affiliate_balance=Decimal("12000"))
    admin = await seed_user(session, "boss", is_admin=True)
    await open_portal(session)

    created = await client.post(
        "/withdrawals",
        headers=bearer(user.id),
        json={
            "amount": "10000",
            "balance_type": "affiliate",
            "bank_name": "Test Bank",
            "bank_code": "058",
            "account_number": "0123456789",
            "account_name": "ADA OBI",
        },
    )
    assert created.status_code == 200
    body = created.json()
    assert Decimal(str(body["net_amount"])) == Decimal("9850.00")

    rejected = await client.post(
        f"/admin/withdrawals/{body['withdrawal_id']}/status",
        headers=bearer(admin.id),
        json={"status": "rejected", "notes": "Name mismatch"},
    )
    assert rejected.status_code == 200

    wallet = await client.get("/wallet/me", headers=bearer(user.id))
    assert Decimal(str(wallet.json()["affiliate_balance"])) == Decimal("12000")
    kinds = [t["kind"] for t in wallet.json()["recent_transactions"]]
    assert kinds == ["withdrawal", "withdrawal"]


@pytest.mark.asyncio
async def test_closed_portal_over_http(client, session):
    user = await seed_user(session, "ada", affiliate_balance=Decimal("12000"))
    response = await client.post(
        "/withdrawals",
        headers=bearer(user.id),
        json={
            "amount": "5000",
            "balance_type": "affiliate",
            "bank_name": "Test Bank",
            "bank_code": "058",
            "account_number": "0123456789",
            "account_name": "ADA OBI",
        },
    )
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Withdrawal portal is currently closed"}


@pytest.mark.asyncio
async def test_payment_initialize_and_signed_webhook(client, session):
    user = await seed_user(session, "buyer")

    init = await client.post("/payments/initialize", headers=bearer(user.id), json={"package_type": "knight"})
    assert init.status_code == 200
    reference = init.json()["reference"]

    payload = {"event": "charge.success", "data": {"reference": f"KPY-{reference}", "status": "success"}}
    unsigned = await client.post("/payments/webhook", json=payload)
    assert unsigned.status_code == 400
    assert unsigned.json()["error"] == "Invalid webhook signature"

    signed = await client.post(
        "/payments/webhook",
        json=payload,
        headers={"x-korapay-signature": sign_payload(payload["data"], WEBHOOK_SECRET)},
    )
    assert signed.status_code == 200
    assert signed.json()["processed"] is True

    wallet = await client.get("/wallet/me", headers=bearer(user.id))
    assert wallet.json()["package_type"] == "knight"
    assert wallet.json()["welcome_bonus_claimed"] is True


@pytest.mark.asyncio
async def test_registration_with_referrer(client, session):
    await seed_user(session, "sponsor")

    response = await client.post(
        "/users/register",
        json={"username": "newbie", "email": "newbie@example.com", "referrer_username": "sponsor"},
    )
    assert response.status_code == 200
    assert response.json()["referrer_id"] is not None

    self_ref = await client.post(
        "/users/register",
        json={"username": "loner", "email": "loner@example.com", "referrer_username": "loner"},
    )
    assert self_ref.status_code == 400
    assert self_ref.json() == {"success": False, "error": "You cannot refer yourself"}


@pytest.mark.asyncio
async def test_unexpected_errors_are_generic(async_session_maker, settings):
    class ExplodingProcessor:
        async def validate_bank_account(self, **kwargs):
            raise RuntimeError("socket closed")

    async def override_db():
        async with async_session_maker() as session:
            yield session

    async with async_session_maker() as session:
        user = await seed_user(session, "ada")

    app.dependency_overrides[get_async_db] = override_db
    app.dependency_overrides[get_settings_provider] = lambda: settings
    app.dependency_overrides[get_payment_processor] = lambda: ExplodingProcessor()
    try:
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.post(
                "/payments/banks/validate",
                headers=bearer(user.id),
                json={"account_number": "0123456789", "bank_code": "058"},
            )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error"}


@pytest.mark.asyncio
async def test_sub_kobo_amount_is_422(client, session):
    user = await seed_user(session, "ada", affiliate_balance=Decimal("5000"))
    await open_portal(session)
    response = await client.post(
        "/withdrawals",
        headers=bearer(user.id),
        json={
            "amount": "1000.015",
            "balance_type": "affiliate",
            "bank_name": "Test Bank",
            "bank_code": "058",
            "account_number": "0123456789",
            "account_name": "ADA OBI",
        },
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_webhook_with_array_body_is_400(client):
    response = await client.post("/payments/webhook", json=[{"reference": "KPY-1"}])
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Webhook payload must be a JSON object"}


class TestReadRoutes:
    @pytest.mark.asyncio
    async def test_withdrawal_is_visible_to_its_owner_only(self, client, session):
        owner = await seed_user(session, "ada", affiliate_balance=Decimal("12000"))
        other = await seed_user(session, "bayo")
        owner_id, other_id = owner.id, other.id
        await open_portal(session)

        created = await client.post(
            "/withdrawals",
            headers=bearer(owner_id),
            json={
                "amount": "5000",
                "balance_type": "affiliate",
                "bank_name": "Test Bank",
                "bank_code": "058",
                "account_number": "0123456789",
                "account_name": "ADA OBI",
            },
        )
        withdrawal_id = created.json()["withdrawal_id"]

        mine = await client.get(f"/withdrawals/{withdrawal_id}", headers=bearer(owner_id))
        assert mine.status_code == 200
        assert mine.json()["withdrawal"]["status"] == "pending"
        assert Decimal(str(mine.json()["withdrawal"]["amount"])) == Decimal("5000")

        theirs = await client.get(f"/withdrawals/{withdrawal_id}", headers=bearer(other_id))
        assert theirs.status_code == 404
        assert theirs.json() == {"success": False, "error": "Withdrawal not found"}

    @pytest.mark.asyncio
    async def test_task_detail(self, client, session):
        user = await seed_user(session, "worker")
        task = await seed_task(session, max_completions=4)
        user_id, task_id = user.id, task.id

        await client.post(f"/tasks/{task_id}/start", headers=bearer(user_id))
        response = await client.get(f"/tasks/{task_id}", headers=bearer(user_id))

        assert response.status_code == 200
        body = response.json()
        assert body["task"]["id"] == task_id
        assert body["user_status"] == "pending"
        assert body["slots_left"] == 4

    @pytest.mark.asyncio
    async def test_referral_link_and_stats(self, client, session):
        sponsor = await seed_user(session, "sponsor")
        sponsor_id = sponsor.id
        await seed_user(session, "newbie", referrer_id=sponsor_id)

        link = await client.get("/users/me/referral-link", headers=bearer(sponsor_id))
        assert link.status_code == 200
        assert link.json()["referral_link"].endswith("/register?ref=sponsor")

        stats = await client.get("/users/me/referrals", headers=bearer(sponsor_id))
        assert stats.status_code == 200
        assert stats.json()["total_referrals"] == 1
        assert stats.json()["history"] == []

    @pytest.mark.asyncio
    async def test_admin_logs_and_package_listing(self, client, session):
        admin = await seed_user(session, "boss", is_admin=True)
        buyer = await seed_user(session, "buyer")
        admin_id, buyer_id = admin.id, buyer.id

        init = await client.post("/payments/initialize", headers=bearer(buyer_id), json={"package_type": "elite"})
        package_id = init.json()["package_id"]

        pending = await client.get("/admin/packages", params={"status": "pending"}, headers=bearer(admin_id))
        assert [p["package_id"] for p in pending.json()["packages"]] == [package_id]

        verified = await client.post(
            f"/admin/packages/{package_id}/verify", headers=bearer(admin_id), json={"status": "failed"}
        )
        assert verified.status_code == 200

        pending = await client.get("/admin/packages", params={"status": "pending"}, headers=bearer(admin_id))
        assert pending.json()["packages"] == []

        logs = await client.get("/admin/logs", params={"action": "VERIFY_PACKAGE"}, headers=bearer(admin_id))
        assert logs.status_code == 200
        entries = logs.json()["logs"]
        assert len(entries) == 1
        assert entries[0]["record_id"] == package_id
        assert entries[0]["new_values"] == {"payment_status": "failed"}

        refused = await client.get("/admin/logs", headers=bearer(buyer_id))
        assert refused.status_code == 403
