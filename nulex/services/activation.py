"""
Package activation as a single command.

``plan_activation`` is pure: given a snapshot of the package, the buyer and the
referrer, plus the observed processor status, it returns the ordered list of
effects to apply. ``ActivationCommand`` gathers the snapshot under row locks
and applies the effects inside the caller's unit of work, so the whole cascade
commits or rolls back together.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from nulex.models.ledger import BalanceType, TransactionKind
from nulex.models.packages import PaymentStatus, Referral
from nulex.models.user import PackageTier
from nulex.services import repository
from nulex.services.commission import compute_commission
from nulex.services.ledger_service import post_transaction

logger = logging.getLogger(__name__)


class PackageAlreadySettled(Exception):
    """The package left ``pending`` in another unit of work."""


@dataclass(frozen=True)
class ActivationState:
    package_id: int
    user_id: int
    package_type: PackageTier
    amount: Decimal
    payment_status: PaymentStatus
    payment_reference: str
    welcome_bonus_claimed: bool
    referrer_id: Optional[int] = None
    referrer_tier: PackageTier = PackageTier.NONE
    referrer_active: bool = False
    referral_exists: bool = False


@dataclass(frozen=True)
class SettlementEvent:
    observed_status: str
    welcome_bonus: Decimal
    commission_rates: Dict[PackageTier, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class MarkPackage:
    status: PaymentStatus


@dataclass(frozen=True)
class SetUserTier:
    user_id: int
    tier: PackageTier


@dataclass(frozen=True)
class GrantWelcomeBonus:
    user_id: int
    amount: Decimal


@dataclass(frozen=True)
class RecordPurchase:
    user_id: int
    amount: Decimal
    package_type: PackageTier
    reference: str


@dataclass(frozen=True)
class CreditCommission:
    referrer_id: int
    referred_id: int
    package_type: PackageTier
    amount: Decimal


def plan_activation(state: ActivationState, event: SettlementEvent) -> List[object]:
    if state.payment_status is not PaymentStatus.PENDING:
        return []

    if event.observed_status == PaymentStatus.FAILED.value:
        return [MarkPackage(PaymentStatus.FAILED)]
    if event.observed_status != PaymentStatus.SUCCESS.value:
        return []

    effects = [
        MarkPackage(PaymentStatus.SUCCESS),
        SetUserTier(state.user_id, state.package_type),
    ]
    # A zero bonus still consumes the one-time claim
    if not state.welcome_bonus_claimed:
        effects.append(GrantWelcomeBonus(state.user_id, max(event.welcome_bonus, Decimal("0"))))
    effects.append(
        RecordPurchase(state.user_id, state.amount, state.package_type, state.payment_reference)
    )

    if state.referrer_id and state.referrer_active and not state.referral_exists:
        commission = compute_commission(
            state.referrer_tier, state.package_type, event.commission_rates
        )
        if commission > 0:
            effects.append(
                CreditCommission(state.referrer_id, state.user_id, state.package_type, commission)
            )
    return effects


class ActivationCommand:
    """Applies one observed processor status to a locked package row."""

    def __init__(self, db, settings):
        self.db = db
        self.settings = settings

    async def load_state(self, package) -> ActivationState:
        user = await repository.lock_user(self.db, user_id=package.user_id)
        referrer = None
        if user.referrer_id:
            referrer = await repository.get_user(self.db, user_id=user.referrer_id)
        existing = await repository.get_referral_for(self.db, referred_id=user.id)

        return ActivationState(
            package_id=package.id,
            user_id=user.id,
            package_type=PackageTier(package.package_type),
            amount=Decimal(package.amount),
            payment_status=PaymentStatus(package.payment_status),
            payment_reference=package.payment_reference,
            welcome_bonus_claimed=bool(user.welcome_bonus_claimed),
            referrer_id=user.referrer_id,
            referrer_tier=referrer.tier if referrer else PackageTier.NONE,
            referrer_active=bool(referrer and not referrer.is_blocked),
            referral_exists=existing is not None,
        )

    async def run(self, package, observed_status: str) -> List[object]:
        if PaymentStatus(package.payment_status) is not PaymentStatus.PENDING:
            return []

        state = await self.load_state(package)
        event = SettlementEvent(observed_status=observed_status, welcome_bonus=Decimal("0"))
        if observed_status == PaymentStatus.SUCCESS.value:
            event = SettlementEvent(
                observed_status=observed_status,
                welcome_bonus=await self.settings.welcome_bonus(self.db),
                commission_rates=await self.settings.commission_rates(self.db),
            )

        effects = plan_activation(state, event)
        try:
            for effect in effects:
                await self.apply(package, effect)
        except PackageAlreadySettled:
            # MarkPackage runs first, so nothing else was applied
            await self.db.refresh(package)
            logger.info(f"Package {package.id} settled by another request as {package.payment_status}")
            return []
        await self.db.flush()
        return effects

    async def apply(self, package, effect) -> None:
        db = self.db
        if isinstance(effect, MarkPackage):
            claimed = await repository.settle_pending_package(
                db, package_id=package.id, status=effect.status.value, verified_at=datetime.utcnow()
            )
            if not claimed:
                raise PackageAlreadySettled()
            await db.refresh(package)
            logger.info(f"Package {package.id} marked {effect.status.value}")

        elif isinstance(effect, SetUserTier):
            user = await repository.lock_user(db, user_id=effect.user_id)
            user.package_type = effect.tier.value

        elif isinstance(effect, GrantWelcomeBonus):
            user = await repository.lock_user(db, user_id=effect.user_id)
            user.welcome_bonus_claimed = True
            if effect.amount <= 0:
                await db.flush()
                return
            await post_transaction(
                db,
                user_id=effect.user_id,
                kind=TransactionKind.WELCOME_BONUS,
                amount=effect.amount,
                balance_type=BalanceType.AFFILIATE,
                description="Welcome bonus",
                allow_blocked=True,
            )

        elif isinstance(effect, RecordPurchase):
            await post_transaction(
                db,
                user_id=effect.user_id,
                kind=TransactionKind.PACKAGE_PURCHASE,
                amount=effect.amount,
                balance_type=BalanceType.NONE,
                description=f"{effect.package_type.value.title()} package purchase",
                reference=effect.reference,
                allow_blocked=True,
            )

        elif isinstance(effect, CreditCommission):
            await self._credit_commission(effect)

        else:
            raise TypeError(f"Unknown activation effect: {effect!r}")

    async def _credit_commission(self, effect: CreditCommission) -> None:
        db = self.db
        try:
            # Savepoint: a concurrent activation for the same referred user
            # trips the unique referred_id constraint and only this step is undone
            async with db.begin_nested():
                db.add(
                    Referral(
                        referrer_id=effect.referrer_id,
                        referred_id=effect.referred_id,
                        package_type=effect.package_type.value,
                        commission_amount=effect.amount,
                        status="completed",
                    )
                )
                await db.flush()
                await post_transaction(
                    db,
                    user_id=effect.referrer_id,
                    kind=TransactionKind.REFERRAL,
                    amount=effect.amount,
                    balance_type=BalanceType.AFFILIATE,
                    description=f"Referral commission for user {effect.referred_id} "
                    f"({effect.package_type.value} package)",
                )
        except IntegrityError:
            logger.warning(
                f"Referral for user {effect.referred_id} already recorded, commission skipped"
            )
            return

        logger.info(
            f"Credited {effect.amount} commission to referrer {effect.referrer_id} "
            f"for user {effect.referred_id}"
        )
