"""
Pure planning of package activation and the referral commission table.
No database involved.
"""
from decimal import Decimal

import pytest

from nulex.models import PackageTier, PaymentStatus
from nulex.services.activation import (
    ActivationState,
    CreditCommission,
    GrantWelcomeBonus,
    MarkPackage,
    RecordPurchase,
    SetUserTier,
    SettlementEvent,
    plan_activation,
)
from nulex.services.commission import compute_commission

RATES = {PackageTier.KNIGHT: Decimal("1500"), PackageTier.ELITE: Decimal("3500")}


@pytest.mark.parametrize(
    "referrer, referred, expected",
    [
        (PackageTier.ELITE, PackageTier.KNIGHT, Decimal("1500")),
        (PackageTier.ELITE, PackageTier.ELITE, Decimal("3500")),
        (PackageTier.KNIGHT, PackageTier.KNIGHT, Decimal("1500")),
        (PackageTier.KNIGHT, PackageTier.ELITE, Decimal("1500")),
        (PackageTier.NONE, PackageTier.ELITE, Decimal("0")),
        (PackageTier.NONE, PackageTier.KNIGHT, Decimal("0")),
    ],
)
def test_commission_table(referrer, referred, expected):
    assert compute_commission(referrer, referred, RATES) == expected


def test_commission_uses_configured_rates():
    rates = {PackageTier.KNIGHT: Decimal("2000"), PackageTier.ELITE: Decimal("5000")}
    assert compute_commission("elite", "elite", rates) == Decimal("5000")
    assert compute_commission("knight", "elite", rates) == Decimal("2000")


def _state(**overrides):
    values = dict(
        package_id=1,
        user_id=20,
        package_type=PackageTier.KNIGHT,
        amount=Decimal("4500"),
        payment_status=PaymentStatus.PENDING,
        payment_reference="PKG-1",
        welcome_bonus_claimed=False,
        referrer_id=10,
        referrer_tier=PackageTier.ELITE,
        referrer_active=True,
        referral_exists=False,
    )
    values.update(overrides)
    return ActivationState(**values)


SUCCESS = SettlementEvent(observed_status="success", welcome_bonus=Decimal("1000"), commission_rates=RATES)


def test_success_plans_full_cascade_in_order():
    effects = plan_activation(_state(), SUCCESS)

    assert effects == [
        MarkPackage(PaymentStatus.SUCCESS),
        SetUserTier(20, PackageTier.KNIGHT),
        GrantWelcomeBonus(20, Decimal("1000")),
        RecordPurchase(20, Decimal("4500"), PackageTier.KNIGHT, "PKG-1"),
        CreditCommission(10, 20, PackageTier.KNIGHT, Decimal("1500")),
    ]


def test_terminal_package_plans_nothing():
    assert plan_activation(_state(payment_status=PaymentStatus.SUCCESS), SUCCESS) == []
    assert plan_activation(_state(payment_status=PaymentStatus.FAILED), SUCCESS) == []


def test_failed_only_marks_package():
    event = SettlementEvent(observed_status="failed", welcome_bonus=Decimal("1000"))
    assert plan_activation(_state(), event) == [MarkPackage(PaymentStatus.FAILED)]


def test_unsettled_status_is_a_noop():
    event = SettlementEvent(observed_status="processing", welcome_bonus=Decimal("1000"))
    assert plan_activation(_state(), event) == []


def test_claimed_bonus_is_not_granted_again():
    effects = plan_activation(_state(welcome_bonus_claimed=True), SUCCESS)
    assert not any(isinstance(e, GrantWelcomeBonus) for e in effects)
    assert any(isinstance(e, RecordPurchase) for e in effects)


@pytest.mark.parametrize(
    "overrides",
    [
        {"referrer_id": None, "referrer_tier": PackageTier.NONE, "referrer_active": False},
        {"referrer_tier": PackageTier.NONE},
        {"referrer_active": False},
        {"referral_exists": True},
    ],
)
def test_no_commission_cases(overrides):
    effects = plan_activation(_state(**overrides), SUCCESS)
    assert not any(isinstance(e, CreditCommission) for e in effects)
    assert effects[0] == MarkPackage(PaymentStatus.SUCCESS)


def test_zero_bonus_is_still_planned_to_consume_the_claim():
    event = SettlementEvent(observed_status="success", welcome_bonus=Decimal("0"), commission_rates=RATES)
    effects = plan_activation(_state(), event)
    assert GrantWelcomeBonus(20, Decimal("0")) in effects
