"""
User Service - registration referral assignment, soft blocking and referral stats
"""
import logging
from decimal import Decimal
from typing import Optional
from urllib.parse import urlencode

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from nulex import config
from nulex.errors import InvalidReferrer, NulexError, UserNotFound, ValidationError
from nulex.models.user import PackageTier, User
from nulex.services import repository
from nulex.services.audit_service import record_admin_action
from nulex.services.ledger_service import CENT

logger = logging.getLogger(__name__)


async def register_user(
    db: AsyncSession,
    *,
    username: str,
    email: str,
    phone: Optional[str] = None,
    referrer_username: Optional[str] = None,
) -> User:
    """
    Create a user, resolving the optional referrer by username.

    The referrer must be an existing, non-blocked user other than the new one.
    ``referrer_id`` is never reassigned after this point.
    """
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username or not email:
        raise ValidationError("Username and email are required")

    try:
        existing = await db.execute(
            select(User.id).where(
                or_(func.lower(User.username) == username.lower(), User.email == email)
            )
        )
        if existing.first() is not None:
            raise ValidationError("Username or email already registered")

        referrer_id = None
        if referrer_username:
            referrer_username = referrer_username.strip()
            if referrer_username.lower() == username.lower():
                raise InvalidReferrer("You cannot refer yourself")
            result = await db.execute(
                select(User).where(
                    func.lower(User.username) == referrer_username.lower(),
                    User.is_blocked.is_(False),
                )
            )
            referrer = result.scalar_one_or_none()
            if referrer is None:
                raise InvalidReferrer("Invalid referrer username")
            referrer_id = referrer.id

        user = User(username=username, email=email, phone=phone, referrer_id=referrer_id)
        db.add(user)
        await db.commit()
    except NulexError:
        await db.rollback()
        raise

    logger.info(f"Registered user {user.id} ({username}), referrer={referrer_id}")
    return user


async def set_blocked(db: AsyncSession, *, user_id: int, blocked: bool, admin_id: int) -> dict:
    try:
        user = await repository.lock_user(db, user_id=user_id)
        if user is None:
            raise UserNotFound()
        old = user.is_blocked
        user.is_blocked = bool(blocked)
        record_admin_action(
            db,
            admin_id=admin_id,
            action="BLOCK_USER" if blocked else "UNBLOCK_USER",
            table_name="users",
            record_id=user_id,
            old_values={"is_blocked": old},
            new_values={"is_blocked": user.is_blocked},
        )
        await db.commit()
    except NulexError:
        await db.rollback()
        raise

    return {"success": True, "user_id": user_id, "is_blocked": user.is_blocked}


async def get_referral_link(db: AsyncSession, *, user_id: int, frontend_url: Optional[str] = None) -> dict:
    user = await repository.get_user(db, user_id=user_id)
    if user is None:
        raise UserNotFound()
    base = (frontend_url or config.FRONTEND_URL).rstrip("/")
    return {
        "success": True,
        "username": user.username,
        "referral_link": f"{base}/register?{urlencode({'ref': user.username})}",
    }


async def get_referral_stats(db: AsyncSession, *, user_id: int, limit: int = 20, offset: int = 0) -> dict:
    """
    Referral summary for one referrer: users who signed up with their username,
    paid referrals per package type, total commission and recent history.
    """
    referred_count, by_package = await repository.get_referral_stats(db, referrer_id=user_id)
    history = await repository.list_referral_history(db, referrer_id=user_id, limit=limit, offset=offset)

    def paid(tier: PackageTier) -> int:
        return by_package.get(tier.value, (0, 0))[0]

    total_earnings = sum((Decimal(str(earned)) for _, earned in by_package.values()), Decimal("0"))
    return {
        "success": True,
        "total_referrals": referred_count,
        "knight_referrals": paid(PackageTier.KNIGHT),
        "elite_referrals": paid(PackageTier.ELITE),
        "total_earnings": total_earnings.quantize(CENT),
        "history": [
            {
                "username": username,
                "package_type": referral.package_type,
                "commission": referral.commission_amount,
                "status": referral.status,
                "created_at": referral.created_at,
            }
            for referral, username in history
        ],
    }
