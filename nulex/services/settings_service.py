"""
Settings Service - business configuration read at call time

Values live in the ``system_settings`` key/value table and are never cached;
every accessor re-reads the row and falls back to a hardcoded default when the
key is absent or unparsable.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nulex.errors import NulexError, PriceNotConfigured
from nulex.models.ledger import BalanceType
from nulex.models.settings import SystemSetting
from nulex.models.user import PackageTier
from nulex.models.withdrawals import WithdrawalPortal
from nulex.services.audit_service import record_admin_action

logger = logging.getLogger(__name__)

WELCOME_BONUS_KEY = "welcome_bonus_amount"
KNIGHT_COMMISSION_KEY = "knight_referral_commission"
ELITE_COMMISSION_KEY = "elite_referral_commission"
WITHDRAWAL_FEE_KEY = "withdrawal_processing_fee"

PRICE_KEYS = {
    PackageTier.KNIGHT: "knight_package_price",
    PackageTier.ELITE: "elite_package_price",
}

MIN_WITHDRAWAL_KEYS = {
    BalanceType.AFFILIATE: "affiliate_min_withdrawal",
    BalanceType.TASK: "task_min_withdrawal",
}

FALLBACKS = {
    WELCOME_BONUS_KEY: Decimal("1000"),
    KNIGHT_COMMISSION_KEY: Decimal("1500"),
    ELITE_COMMISSION_KEY: Decimal("3500"),
    "affiliate_min_withdrawal": Decimal("1000"),
    "task_min_withdrawal": Decimal("15000"),
    WITHDRAWAL_FEE_KEY: Decimal("1.5"),
}

# Seeded by initialize_db.py
DEFAULT_SETTINGS = {
    "knight_package_price": ("4500", "Knight package price (NGN)"),
    "elite_package_price": ("7500", "Elite package price (NGN)"),
    WELCOME_BONUS_KEY: ("1000", "Welcome bonus credited on first package purchase"),
    KNIGHT_COMMISSION_KEY: ("1500", "Commission for a knight referral"),
    ELITE_COMMISSION_KEY: ("3500", "Commission for an elite referral made by an elite user"),
    "affiliate_min_withdrawal": ("1000", "Minimum affiliate balance withdrawal"),
    "task_min_withdrawal": ("15000", "Minimum task balance withdrawal"),
    WITHDRAWAL_FEE_KEY: ("1.5", "Withdrawal processing fee (percent)"),
}


def _to_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None


class SettingsProvider:
    """
    Configuration capability injected into the payment and withdrawal services.

    Subclasses implement ``get_raw``; the typed accessors are shared.
    """

    async def get_raw(self, db: Optional[AsyncSession], key: str) -> Optional[str]:
        raise NotImplementedError

    async def all(self, db: Optional[AsyncSession]) -> Dict[str, str]:
        raise NotImplementedError

    async def get_decimal(
        self, db: Optional[AsyncSession], key: str, default: Optional[Decimal] = None
    ) -> Optional[Decimal]:
        raw = await self.get_raw(db, key)
        value = _to_decimal(raw)
        if value is None:
            if raw is not None:
                logger.warning(f"Setting {key} has non-numeric value {raw!r}, using fallback")
            return default
        return value

    async def package_price(self, db, tier: PackageTier) -> Decimal:
        key = PRICE_KEYS.get(PackageTier(tier))
        price = await self.get_decimal(db, key) if key else None
        if price is None or price <= 0:
            raise PriceNotConfigured(f"Price not configured for {PackageTier(tier).value} package")
        return price

    async def welcome_bonus(self, db) -> Decimal:
        return await self.get_decimal(db, WELCOME_BONUS_KEY, FALLBACKS[WELCOME_BONUS_KEY])

    async def commission_rates(self, db) -> Dict[PackageTier, Decimal]:
        return {
            PackageTier.KNIGHT: await self.get_decimal(
                db, KNIGHT_COMMISSION_KEY, FALLBACKS[KNIGHT_COMMISSION_KEY]
            ),
            PackageTier.ELITE: await self.get_decimal(
                db, ELITE_COMMISSION_KEY, FALLBACKS[ELITE_COMMISSION_KEY]
            ),
        }

    async def min_withdrawal(self, db, balance_type: BalanceType) -> Decimal:
        key = MIN_WITHDRAWAL_KEYS[BalanceType(balance_type)]
        return await self.get_decimal(db, key, FALLBACKS[key])

    async def withdrawal_fee_percentage(self, db) -> Decimal:
        return await self.get_decimal(db, WITHDRAWAL_FEE_KEY, FALLBACKS[WITHDRAWAL_FEE_KEY])


class DatabaseSettings(SettingsProvider):
    """Reads ``system_settings`` on every call."""

    async def get_raw(self, db, key):
        result = await db.execute(
            select(SystemSetting.setting_value).where(SystemSetting.setting_key == key)
        )
        return result.scalar_one_or_none()

    async def all(self, db):
        result = await db.execute(select(SystemSetting).order_by(SystemSetting.setting_key))
        return {row.setting_key: row.setting_value for row in result.scalars().all()}


class StaticSettings(SettingsProvider):
    """Fixed in-memory values, used by tests and scripts."""

    def __init__(self, values: Optional[Mapping[str, object]] = None):
        self.values = {k: str(v) for k, v in (values or {}).items()}

    async def get_raw(self, db, key):
        return self.values.get(key)

    async def all(self, db):
        return dict(self.values)


async def update_settings(db: AsyncSession, *, updates: Mapping[str, object], admin_id: int) -> Dict[str, str]:
    """Upsert settings rows and write one audit entry with the before/after values."""
    if not updates:
        raise NulexError("No settings provided")

    old_values = {}
    new_values = {}
    try:
        for key, value in updates.items():
            result = await db.execute(select(SystemSetting).where(SystemSetting.setting_key == key))
            row = result.scalar_one_or_none()
            if row is None:
                row = SystemSetting(setting_key=key, setting_value=str(value))
                db.add(row)
                old_values[key] = None
            else:
                old_values[key] = row.setting_value
                row.setting_value = str(value)
            new_values[key] = str(value)

        record_admin_action(
            db,
            admin_id=admin_id,
            action="UPDATE_SETTINGS",
            table_name="system_settings",
            record_id=None,
            old_values=old_values,
            new_values=new_values,
        )
        await db.commit()
    except NulexError:
        await db.rollback()
        raise

    logger.info(f"Admin {admin_id} updated settings: {sorted(new_values)}")
    return new_values


async def seed_default_settings(db: AsyncSession) -> int:
    """Insert missing default settings and an initial closed portal row."""
    created = 0
    for key, (value, description) in DEFAULT_SETTINGS.items():
        result = await db.execute(select(SystemSetting).where(SystemSetting.setting_key == key))
        if result.scalar_one_or_none() is None:
            db.add(SystemSetting(setting_key=key, setting_value=value, description=description))
            created += 1

    portal = await db.execute(select(WithdrawalPortal.id).limit(1))
    if portal.scalar_one_or_none() is None:
        db.add(WithdrawalPortal(is_open=False, notes="Initial state"))

    await db.commit()
    return created
