"""
Referral commission table.

    referrer tier | referred tier | commission
    elite         | knight        | knight rate (1500)
    elite         | elite         | elite rate (3500)
    knight        | any           | knight rate (1500)
    none          | any           | nothing
"""
from decimal import Decimal
from typing import Mapping

from nulex.models.user import PackageTier

ZERO = Decimal("0")


def compute_commission(
    referrer_tier: PackageTier,
    referred_tier: PackageTier,
    rates: Mapping[PackageTier, Decimal],
) -> Decimal:
    referrer_tier = PackageTier(referrer_tier)
    referred_tier = PackageTier(referred_tier)

    if referrer_tier is PackageTier.NONE or referred_tier is PackageTier.NONE:
        return ZERO
    if referrer_tier is PackageTier.ELITE:
        return Decimal(rates[referred_tier])
    return Decimal(rates[PackageTier.KNIGHT])
