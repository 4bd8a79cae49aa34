"""Row-lock and lookup helpers shared by the services."""

from typing import Optional

from sqlalchemy import desc, func, or_, select, update


async def _fetch_locked(db, stmt):
    # Flush first: populate_existing reloads the locked row over the identity map
    await db.flush()
    result = await db.execute(stmt.with_for_update().execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def lock_user(db, *, user_id: int):
    from nulex.models.user import User

    return await _fetch_locked(db, select(User).where(User.id == user_id))


async def get_user(db, *, user_id: int):
    from nulex.models.user import User

    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def lock_task(db, *, task_id: int):
    from nulex.models.tasks import Task

    return await _fetch_locked(db, select(Task).where(Task.id == task_id))


async def lock_user_task(db, *, user_id: int, task_id: int):
    from nulex.models.tasks import UserTask

    return await _fetch_locked(
        db, select(UserTask).where(UserTask.user_id == user_id, UserTask.task_id == task_id)
    )


async def lock_user_task_by_id(db, *, user_task_id: int):
    from nulex.models.tasks import UserTask

    return await _fetch_locked(db, select(UserTask).where(UserTask.id == user_task_id))


async def lock_package(db, *, package_id: Optional[int] = None, reference: Optional[str] = None):
    """Lock a package by id, or by internal or external payment reference."""
    from nulex.models.packages import Package

    stmt = select(Package)
    if package_id is not None:
        stmt = stmt.where(Package.id == package_id)
    else:
        stmt = stmt.where(
            or_(Package.payment_reference == reference, Package.external_reference == reference)
        )
    return await _fetch_locked(db, stmt.order_by(Package.id).limit(1))


async def get_package_by_reference(db, *, reference: str):
    from nulex.models.packages import Package

    result = await db.execute(
        select(Package)
        .where(or_(Package.payment_reference == reference, Package.external_reference == reference))
        .order_by(Package.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_referral_for(db, *, referred_id: int):
    from nulex.models.packages import Referral

    result = await db.execute(select(Referral).where(Referral.referred_id == referred_id))
    return result.scalar_one_or_none()


async def lock_withdrawal(db, *, withdrawal_id: int):
    from nulex.models.withdrawals import Withdrawal

    return await _fetch_locked(db, select(Withdrawal).where(Withdrawal.id == withdrawal_id))


async def get_transaction(db, *, transaction_id: int):
    from nulex.models.ledger import Transaction

    result = await db.execute(select(Transaction).where(Transaction.id == transaction_id))
    return result.scalar_one_or_none()


async def get_latest_portal(db):
    from nulex.models.withdrawals import WithdrawalPortal

    result = await db.execute(
        select(WithdrawalPortal).order_by(desc(WithdrawalPortal.id)).limit(1)
    )
    return result.scalar_one_or_none()


async def list_user_transactions(db, *, user_id: int, limit: int = 20, offset: int = 0):
    from nulex.models.ledger import Transaction

    stmt = (
        select(Transaction)
        .where(Transaction.user_id == user_id)
        .order_by(desc(Transaction.id))
        .limit(limit)
        .offset(offset)
    )
    result = await db.execute(stmt)
    return result.scalars().all()


async def list_user_withdrawals(db, *, user_id: int, limit: int = 20, offset: int = 0):
    from nulex.models.withdrawals import Withdrawal

    stmt = (
        select(Withdrawal)
        .where(Withdrawal.user_id == user_id)
        .order_by(desc(Withdrawal.id))
        .limit(limit)
        .offset(offset)
    )
    result = await db.execute(stmt)
    return result.scalars().all()


async def list_withdrawals(db, *, status_filter: Optional[str], limit: int, offset: int):
    from nulex.models.withdrawals import Withdrawal

    stmt = select(Withdrawal)
    if status_filter:
        stmt = stmt.where(Withdrawal.status == status_filter)
    result = await db.execute(stmt.order_by(desc(Withdrawal.id)).limit(limit).offset(offset))
    return result.scalars().all()


async def get_task(db, *, task_id: int):
    from nulex.models.tasks import Task

    result = await db.execute(select(Task).where(Task.id == task_id))
    return result.scalar_one_or_none()


async def apply_balance_delta(db, *, user_id: int, column: str, amount, floor=None) -> bool:
    """
    Add ``amount`` to one balance column in a single UPDATE.

    With ``floor`` set, the row only changes when the result stays at or above
    it; returns False when no row matched.
    """
    from nulex.models.user import User

    balance = getattr(User, column)
    new_value = func.round(balance + amount, 2)
    stmt = update(User).where(User.id == user_id).values({column: new_value})
    if floor is not None:
        stmt = stmt.where(new_value >= floor)
    result = await db.execute(stmt.execution_options(synchronize_session=False))
    return result.rowcount == 1


async def claim_task_slot(db, *, task_id: int) -> bool:
    """Take one completion slot if the task still has one."""
    from nulex.models.tasks import Task

    result = await db.execute(
        update(Task)
        .where(Task.id == task_id, Task.current_completions < Task.max_completions)
        .values(current_completions=Task.current_completions + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def settle_pending_package(db, *, package_id: int, status: str, verified_at) -> bool:
    """Move a package out of ``pending``; False if it already left."""
    from nulex.models.packages import Package, PaymentStatus

    result = await db.execute(
        update(Package)
        .where(Package.id == package_id, Package.payment_status == PaymentStatus.PENDING.value)
        .values(payment_status=status, verified_at=verified_at)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def get_withdrawal(db, *, withdrawal_id: int):
    from nulex.models.withdrawals import Withdrawal

    result = await db.execute(select(Withdrawal).where(Withdrawal.id == withdrawal_id))
    return result.scalar_one_or_none()


async def list_packages(db, *, status_filter: Optional[str] = None, limit: int = 20, offset: int = 0):
    from nulex.models.packages import Package

    stmt = select(Package)
    if status_filter:
        stmt = stmt.where(Package.payment_status == status_filter)
    result = await db.execute(stmt.order_by(desc(Package.id)).limit(limit).offset(offset))
    return result.scalars().all()


async def list_admin_logs(
    db, *, action: Optional[str] = None, admin_id: Optional[int] = None, limit: int = 50, offset: int = 0
):
    from nulex.models.ledger import AdminLog

    stmt = select(AdminLog)
    if action:
        stmt = stmt.where(AdminLog.action == action)
    if admin_id is not None:
        stmt = stmt.where(AdminLog.admin_id == admin_id)
    result = await db.execute(stmt.order_by(desc(AdminLog.id)).limit(limit).offset(offset))
    return result.scalars().all()


async def get_referral_stats(db, *, referrer_id: int):
    """Referred-user count, plus (paid referrals, commission) per package type."""
    from nulex.models.packages import Referral
    from nulex.models.user import User

    referred = await db.execute(select(func.count(User.id)).where(User.referrer_id == referrer_id))
    paid = await db.execute(
        select(
            Referral.package_type,
            func.count(Referral.id),
            func.coalesce(func.sum(Referral.commission_amount), 0),
        )
        .where(Referral.referrer_id == referrer_id)
        .group_by(Referral.package_type)
    )
    return referred.scalar_one(), {package_type: (count, earned) for package_type, count, earned in paid.all()}


async def list_referral_history(db, *, referrer_id: int, limit: int = 20, offset: int = 0):
    from nulex.models.packages import Referral
    from nulex.models.user import User

    result = await db.execute(
        select(Referral, User.username)
        .join(User, User.id == Referral.referred_id)
        .where(Referral.referrer_id == referrer_id)
        .order_by(desc(Referral.id))
        .limit(limit)
        .offset(offset)
    )
    return result.all()
