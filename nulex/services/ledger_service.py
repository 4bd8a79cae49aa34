"""
Ledger Service - the single path through which balances change
"""
import logging
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from nulex.errors import InsufficientFunds, UserNotFound
from nulex.models.ledger import BalanceType, Transaction, TransactionKind, TransactionStatus
from nulex.services import repository

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


async def post_transaction(
    db: AsyncSession,
    *,
    user_id: int,
    kind: TransactionKind,
    amount: Decimal,
    balance_type: BalanceType,
    description: str,
    status: TransactionStatus = TransactionStatus.COMPLETED,
    enforce_non_negative: bool = False,
    allow_blocked: bool = False,
    reference: Optional[str] = None,
) -> Tuple[int, Optional[Decimal]]:
    """
    Apply ``amount`` to one of the user's balances and record the transaction.

    Locks the user row (SELECT FOR UPDATE), then changes the balance with one
    guarded UPDATE, so concurrent postings for one user cannot overdraw it even
    where the backend ignores row locks. Does not commit: the caller's unit of
    work owns the transaction boundary.

    Args:
        db: Async database session
        user_id: User whose balance changes
        kind: Transaction kind
        amount: Signed amount (negative for debits)
        balance_type: Balance to mutate; ``BalanceType.NONE`` records without
            touching any balance
        description: Human-readable description
        status: Initial transaction status
        enforce_non_negative: Fail instead of letting the balance go below zero
        allow_blocked: Permit posting to a blocked user (refunds)
        reference: Optional external reference stored on the row

    Returns:
        (transaction id, new balance) -- new balance is None for ``BalanceType.NONE``

    Raises:
        UserNotFound: If the user does not exist or is blocked
        InsufficientFunds: If enforcement is on and the balance would go negative
    """
    balance_type = BalanceType(balance_type)
    amount = Decimal(amount).quantize(CENT)

    user = await repository.lock_user(db, user_id=user_id)
    if user is None or (user.is_blocked and not allow_blocked):
        raise UserNotFound()

    new_balance = None
    if balance_type is not BalanceType.NONE:
        applied = await repository.apply_balance_delta(
            db,
            user_id=user_id,
            column=balance_type.column,
            amount=amount,
            floor=Decimal("0") if enforce_non_negative else None,
        )
        if not applied:
            logger.warning(
                f"Insufficient {balance_type.value} balance for user {user_id}: "
                f"current={balance_type.read(user)}, amount={amount}"
            )
            raise InsufficientFunds()
        await db.refresh(user, [balance_type.column])
        new_balance = balance_type.read(user).quantize(CENT)

    txn = Transaction(
        user_id=user_id,
        kind=TransactionKind(kind).value,
        amount=amount,
        balance_type=balance_type.value,
        description=description,
        status=TransactionStatus(status).value,
        reference=reference,
    )
    db.add(txn)
    await db.flush()

    logger.info(
        f"Posted {txn.kind} {amount} to user {user_id} ({balance_type.value}), "
        f"transaction={txn.id}, new_balance={new_balance}"
    )
    return txn.id, new_balance


async def set_transaction_status(db: AsyncSession, *, transaction_id: int, status: TransactionStatus) -> None:
    """Update a transaction's status; amount, kind and owner stay as written."""
    txn = await repository.get_transaction(db, transaction_id=transaction_id)
    if txn is None:
        logger.warning(f"Transaction {transaction_id} not found for status update")
        return
    txn.status = TransactionStatus(status).value
    await db.flush()
