"""
Settings provider fallbacks, admin settings updates, registration referral
assignment and user blocking.
"""
from decimal import Decimal

import pytest
from sqlalchemy import select

from conftest import fetch_user, seed_user
from nulex.errors import InvalidReferrer, NulexError, PriceNotConfigured, UserNotFound, ValidationError
from nulex.models import AdminLog, BalanceType, PackageTier, Referral, SystemSetting, WithdrawalPortal
from nulex.services import audit_service, user_service
from nulex.services.settings_service import (
    DatabaseSettings,
    StaticSettings,
    seed_default_settings,
    update_settings,
)


class TestSettingsProvider:
    @pytest.mark.asyncio
    async def test_fallbacks_when_rows_are_missing(self, session):
        provider = DatabaseSettings()

        assert await provider.welcome_bonus(session) == Decimal("1000")
        assert await provider.min_withdrawal(session, BalanceType.TASK) == Decimal("15000")
        assert await provider.min_withdrawal(session, BalanceType.AFFILIATE) == Decimal("1000")
        assert await provider.withdrawal_fee_percentage(session) == Decimal("1.5")
        assert await provider.commission_rates(session) == {
            PackageTier.KNIGHT: Decimal("1500"),
            PackageTier.ELITE: Decimal("3500"),
        }
        with pytest.raises(PriceNotConfigured):
            await provider.package_price(session, PackageTier.KNIGHT)

    @pytest.mark.asyncio
    async def test_values_are_read_on_every_call(self, session):
        provider = DatabaseSettings()
        session.add(SystemSetting(setting_key="welcome_bonus_amount", setting_value="1000"))
        await session.commit()
        assert await provider.welcome_bonus(session) == Decimal("1000")

        row = (await session.execute(select(SystemSetting))).scalar_one()
        row.setting_value = "2500"
        await session.commit()
        assert await provider.welcome_bonus(session) == Decimal("2500")

    @pytest.mark.asyncio
    async def test_unparsable_value_uses_fallback(self):
        provider = StaticSettings({"withdrawal_processing_fee": "one and a half"})
        assert await provider.withdrawal_fee_percentage(None) == Decimal("1.5")

    @pytest.mark.asyncio
    async def test_seed_defaults_is_idempotent(self, session):
        created = await seed_default_settings(session)
        again = await seed_default_settings(session)

        assert created == 8
        assert again == 0
        provider = DatabaseSettings()
        assert await provider.package_price(session, PackageTier.KNIGHT) == Decimal("4500")
        assert await provider.package_price(session, PackageTier.ELITE) == Decimal("7500")
        portals = (await session.execute(select(WithdrawalPortal))).scalars().all()
        assert len(portals) == 1
        assert portals[0].is_open is False

    @pytest.mark.asyncio
    async def test_update_settings_writes_audit_entry(self, session, async_session_maker):
        admin = await seed_user(session, "admin", is_admin=True)
        await seed_default_settings(session)

        updated = await update_settings(
            session, updates={"withdrawal_processing_fee": "2", "new_flag": 1}, admin_id=admin.id
        )
        assert updated == {"withdrawal_processing_fee": "2", "new_flag": "1"}
        assert await DatabaseSettings().withdrawal_fee_percentage(session) == Decimal("2")

        async with async_session_maker() as fresh:
            log = (await fresh.execute(select(AdminLog))).scalar_one()
        assert log.action == "UPDATE_SETTINGS"
        assert log.old_values == {"withdrawal_processing_fee": "1.5", "new_flag": None}

        with pytest.raises(NulexError):
            await update_settings(session, updates={}, admin_id=admin.id)


class TestRegistration:
    @pytest.mark.asyncio
    async def test_referrer_resolved_by_username(self, session):
        sponsor = await seed_user(session, "Sponsor")

        user = await user_service.register_user(
            session, username="newbie", email="NewBie@Example.com", referrer_username="sponsor"
        )
        assert user.referrer_id == sponsor.id
        assert user.email == "newbie@example.com"

    @pytest.mark.asyncio
    async def test_invalid_referrers(self, session):
        await seed_user(session, "banned", is_blocked=True)

        with pytest.raises(InvalidReferrer):
            await user_service.register_user(
                session, username="a1", email="a1@example.com", referrer_username="nobody"
            )
        with pytest.raises(InvalidReferrer):
            await user_service.register_user(
                session, username="a2", email="a2@example.com", referrer_username="banned"
            )
        with pytest.raises(InvalidReferrer):
            await user_service.register_user(
                session, username="a3", email="a3@example.com", referrer_username="A3"
            )

    @pytest.mark.asyncio
    async def test_duplicate_username(self, session):
        await seed_user(session, "taken")
        with pytest.raises(ValidationError):
            await user_service.register_user(session, username="Taken", email="other@example.com")


class TestBlocking:
    @pytest.mark.asyncio
    async def test_block_and_unblock(self, session, async_session_maker):
        admin = await seed_user(session, "admin", is_admin=True)
        user = await seed_user(session, "target")

        result = await user_service.set_blocked(session, user_id=user.id, blocked=True, admin_id=admin.id)
        assert result["is_blocked"] is True
        assert (await fetch_user(async_session_maker, user.id)).is_blocked is True

        await user_service.set_blocked(session, user_id=user.id, blocked=False, admin_id=admin.id)
        assert (await fetch_user(async_session_maker, user.id)).is_blocked is False

        async with async_session_maker() as fresh:
            actions = (await fresh.execute(select(AdminLog.action).order_by(AdminLog.id))).scalars().all()
        assert actions == ["BLOCK_USER", "UNBLOCK_USER"]

        with pytest.raises(UserNotFound):
            await user_service.set_blocked(session, user_id=777, blocked=True, admin_id=admin.id)

    @pytest.mark.asyncio
    async def test_admin_log_listing_filters_by_action(self, session):
        admin = await seed_user(session, "admin", is_admin=True)
        user = await seed_user(session, "target")
        admin_id, user_id = admin.id, user.id

        await user_service.set_blocked(session, user_id=user_id, blocked=True, admin_id=admin_id)
        await user_service.set_blocked(session, user_id=user_id, blocked=False, admin_id=admin_id)

        everything = await audit_service.list_admin_logs(session)
        assert [entry["action"] for entry in everything] == ["UNBLOCK_USER", "BLOCK_USER"]

        blocks = await audit_service.list_admin_logs(session, action="BLOCK_USER", admin_id=admin_id)
        assert len(blocks) == 1
        assert blocks[0]["record_id"] == user_id
        assert blocks[0]["new_values"] == {"is_blocked": True}

        assert await audit_service.list_admin_logs(session, admin_id=9999) == []


class TestReferralReadModels:
    @pytest.mark.asyncio
    async def test_stats_count_signups_and_paid_referrals(self, session):
        sponsor = await seed_user(session, "sponsor", package_type="elite")
        sponsor_id = sponsor.id
        kay = await seed_user(session, "kay", referrer_id=sponsor_id)
        ella = await seed_user(session, "ella", referrer_id=sponsor_id)
        await seed_user(session, "idle", referrer_id=sponsor_id)
        session.add(
            Referral(
                referrer_id=sponsor_id,
                referred_id=kay.id,
                package_type="knight",
                commission_amount=Decimal("1500"),
            )
        )
        session.add(
            Referral(
                referrer_id=sponsor_id,
                referred_id=ella.id,
                package_type="elite",
                commission_amount=Decimal("3500"),
            )
        )
        await session.commit()

        stats = await user_service.get_referral_stats(session, user_id=sponsor_id)

        assert stats["total_referrals"] == 3
        assert stats["knight_referrals"] == 1
        assert stats["elite_referrals"] == 1
        assert stats["total_earnings"] == Decimal("5000.00")
        assert [row["username"] for row in stats["history"]] == ["ella", "kay"]
        assert stats["history"][0]["commission"] == Decimal("3500")

    @pytest.mark.asyncio
    async def test_stats_for_user_without_referrals(self, session):
        user = await seed_user(session, "loner")

        stats = await user_service.get_referral_stats(session, user_id=user.id)

        assert stats["total_referrals"] == 0
        assert stats["total_earnings"] == Decimal("0.00")
        assert stats["history"] == []

    @pytest.mark.asyncio
    async def test_referral_link_uses_username(self, session):
        user = await seed_user(session, "sponsor")

        link = await user_service.get_referral_link(
            session, user_id=user.id, frontend_url="https://nulex.test/"
        )
        assert link["referral_link"] == "https://nulex.test/register?ref=sponsor"

        with pytest.raises(UserNotFound):
            await user_service.get_referral_link(session, user_id=4040)
