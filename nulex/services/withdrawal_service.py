"""
Withdrawal Service - portal gating, balance debit, review and payout

Withdrawal states: pending -> approved -> paid, pending | approved -> rejected.
``paid`` and ``rejected`` are terminal. The full amount is debited at creation;
a rejection refunds it through the ledger.
"""
import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from nulex.errors import (
    BelowMinimum,
    InsufficientFunds,
    InvalidTransition,
    NotesRequired,
    NulexError,
    PaymentProcessorError,
    PortalClosed,
    SettlementFailed,
    TerminalState,
    UserNotFound,
    ValidationError,
    WithdrawalNotFound,
)
from nulex.models.ledger import BalanceType, TransactionKind, TransactionStatus
from nulex.models.withdrawals import Withdrawal, WithdrawalPortal, WithdrawalStatus
from nulex.services import repository
from nulex.services.audit_service import record_admin_action
from nulex.services.korapay_service import generate_reference
from nulex.services.ledger_service import CENT, post_transaction, set_transaction_status

logger = logging.getLogger(__name__)

WITHDRAWABLE_BALANCES = (BalanceType.TASK, BalanceType.AFFILIATE)


def calculate_net_amount(amount: Decimal, fee_percentage: Decimal) -> Decimal:
    """``amount - amount * fee% / 100``, rounded half-up to kobo."""
    amount = Decimal(amount)
    fee = (amount * Decimal(fee_percentage) / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)
    return (amount - fee).quantize(CENT, rounding=ROUND_HALF_UP)


def portal_is_open(portal: Optional[WithdrawalPortal], now: Optional[datetime] = None) -> bool:
    if portal is None or not portal.is_open:
        return False
    if portal.open_until is not None and portal.open_until <= (now or datetime.utcnow()):
        return False
    return True


def _withdrawal_dict(withdrawal: Withdrawal) -> Dict[str, Any]:
    return {
        "id": withdrawal.id,
        "amount": withdrawal.amount,
        "net_amount": withdrawal.net_amount,
        "balance_type": withdrawal.balance_type,
        "status": withdrawal.status,
        "bank_name": withdrawal.bank_name,
        "account_number": withdrawal.account_number,
        "account_name": withdrawal.account_name,
        "external_recipient_ref": withdrawal.external_recipient_ref,
        "external_transfer_ref": withdrawal.external_transfer_ref,
        "admin_notes": withdrawal.admin_notes,
        "processed_at": withdrawal.processed_at,
        "created_at": withdrawal.created_at,
    }


class WithdrawalService:
    def __init__(self, settings, processor):
        self.settings = settings
        self.processor = processor

    async def get_portal_status(self, db: AsyncSession) -> Dict[str, Any]:
        portal = await repository.get_latest_portal(db)
        return {
            "is_open": portal_is_open(portal),
            "open_until": portal.open_until if portal else None,
            "notes": portal.notes if portal else None,
        }

    async def update_portal(
        self,
        db: AsyncSession,
        *,
        is_open: bool,
        admin_id: int,
        open_until: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        if open_until is not None and open_until.tzinfo is not None:
            open_until = open_until.astimezone(timezone.utc).replace(tzinfo=None)

        previous = await repository.get_latest_portal(db)
        portal = WithdrawalPortal(
            is_open=bool(is_open), open_until=open_until, notes=notes, updated_by=admin_id
        )
        db.add(portal)
        await db.flush()
        record_admin_action(
            db,
            admin_id=admin_id,
            action="UPDATE_PORTAL",
            table_name="withdrawal_portal",
            record_id=portal.id,
            old_values={
                "is_open": previous.is_open if previous else None,
                "open_until": previous.open_until if previous else None,
            },
            new_values={"is_open": portal.is_open, "open_until": open_until, "notes": notes},
        )
        await db.commit()
        logger.info(f"Admin {admin_id} set withdrawal portal open={is_open} until={open_until}")
        return {"success": True, "is_open": portal_is_open(portal), "open_until": open_until, "notes": notes}

    async def validate_bank_account(self, *, account_number: str, bank_code: str) -> Dict[str, Any]:
        result = await self.processor.validate_bank_account(
            account_number=account_number, bank_code=bank_code
        )
        return {"success": True, **result}

    async def create(
        self,
        db: AsyncSession,
        *,
        user_id: int,
        amount: Decimal,
        balance_type: str,
        bank_name: str,
        bank_code: str,
        account_number: str,
        account_name: str,
    ) -> Dict[str, Any]:
        """
        Debit ``amount`` from the chosen balance and open a pending withdrawal.

        The minimum and funds checks and the debit all run under the user row
        lock, so concurrent requests cannot overdraw the balance.
        """
        amount = Decimal(amount)
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero")
        if amount != amount.quantize(CENT):
            raise ValidationError("Amount cannot have more than two decimal places")
        amount = amount.quantize(CENT)
        try:
            balance_type = BalanceType(balance_type)
        except ValueError:
            balance_type = None
        if balance_type not in WITHDRAWABLE_BALANCES:
            raise ValidationError("Invalid balance type")
        if not (account_number.isdigit() and len(account_number) == 10):
            raise ValidationError("Account number must be 10 digits")

        try:
            portal = await repository.get_latest_portal(db)
            if not portal_is_open(portal):
                raise PortalClosed()

            user = await repository.lock_user(db, user_id=user_id)
            if user is None or user.is_blocked:
                raise UserNotFound()

            minimum = await self.settings.min_withdrawal(db, balance_type)
            if amount < minimum:
                raise BelowMinimum(
                    f"Minimum withdrawal for {balance_type.value} balance is ₦{minimum:,.2f}"
                )
            if amount > balance_type.read(user):
                raise InsufficientFunds()

            fee_percentage = await self.settings.withdrawal_fee_percentage(db)
            net_amount = calculate_net_amount(amount, fee_percentage)

            transaction_id, new_balance = await post_transaction(
                db,
                user_id=user_id,
                kind=TransactionKind.WITHDRAWAL,
                amount=-amount,
                balance_type=balance_type,
                description=f"Withdrawal request ({balance_type.value} balance)",
                status=TransactionStatus.PENDING,
                enforce_non_negative=True,
            )

            withdrawal = Withdrawal(
                user_id=user_id,
                amount=amount,
                balance_type=balance_type.value,
                net_amount=net_amount,
                bank_name=bank_name,
                bank_code=bank_code,
                account_number=account_number,
                account_name=account_name,
                status=WithdrawalStatus.PENDING.value,
                transaction_id=transaction_id,
            )
            db.add(withdrawal)
            await db.flush()
            await db.commit()
        except NulexError:
            await db.rollback()
            raise

        logger.info(
            f"Withdrawal {withdrawal.id} created for user {user_id}: "
            f"amount={amount}, net={net_amount}, balance={balance_type.value}"
        )
        return {
            "success": True,
            "withdrawal_id": withdrawal.id,
            "amount": amount,
            "net_amount": net_amount,
            "fee_percentage": fee_percentage,
            "new_balance": new_balance,
            "status": withdrawal.status,
        }

    async def update_status(
        self,
        db: AsyncSession,
        *,
        withdrawal_id: int,
        new_status: str,
        admin_id: int,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            target = WithdrawalStatus(new_status)
        except ValueError:
            raise ValidationError("Invalid withdrawal status")

        try:
            withdrawal = await repository.lock_withdrawal(db, withdrawal_id=withdrawal_id)
            if withdrawal is None:
                raise WithdrawalNotFound()
            current = WithdrawalStatus(withdrawal.status)
            if current.is_terminal:
                raise TerminalState(f"Cannot update a {current.value} withdrawal")
            if target is WithdrawalStatus.APPROVED and current is not WithdrawalStatus.PENDING:
                raise InvalidTransition("Only pending withdrawals can be approved")
            if target is WithdrawalStatus.PAID:
                raise InvalidTransition("Withdrawals are marked paid by settlement")
            if target is WithdrawalStatus.PENDING:
                raise InvalidTransition("Cannot move a withdrawal back to pending")
            if target is WithdrawalStatus.REJECTED and not (notes or "").strip():
                raise NotesRequired()

            if target is WithdrawalStatus.REJECTED:
                await post_transaction(
                    db,
                    user_id=withdrawal.user_id,
                    kind=TransactionKind.WITHDRAWAL,
                    amount=withdrawal.amount,
                    balance_type=BalanceType(withdrawal.balance_type),
                    description=f"Refund for rejected withdrawal #{withdrawal.id}",
                    allow_blocked=True,
                )
                if withdrawal.transaction_id:
                    await set_transaction_status(
                        db, transaction_id=withdrawal.transaction_id, status=TransactionStatus.FAILED
                    )
            elif withdrawal.transaction_id:
                await set_transaction_status(
                    db, transaction_id=withdrawal.transaction_id, status=TransactionStatus.COMPLETED
                )

            withdrawal.status = target.value
            withdrawal.admin_notes = notes
            withdrawal.processed_by = admin_id
            withdrawal.processed_at = datetime.utcnow()

            record_admin_action(
                db,
                admin_id=admin_id,
                action="UPDATE_WITHDRAWAL",
                table_name="withdrawals",
                record_id=withdrawal.id,
                old_values={"status": current.value},
                new_values={"status": target.value, "admin_notes": notes},
            )
            await db.commit()
        except NulexError:
            await db.rollback()
            raise

        logger.info(f"Admin {admin_id} moved withdrawal {withdrawal_id} {current.value} -> {target.value}")
        return {"success": True, "withdrawal_id": withdrawal_id, "status": target.value}

    async def settle(
        self,
        db: AsyncSession,
        *,
        withdrawal_id: int,
        admin_id: int,
        recipient_code: Optional[str] = None,
        transfer_code: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Pay out an approved withdrawal.

        With ``transfer_code`` the payout was made outside the platform and is
        only recorded. Otherwise a transfer recipient is created (or reused) and
        ``net_amount`` is transferred. A processor failure raises
        ``SettlementFailed`` and leaves the withdrawal approved; a recipient
        created before the failure is kept for the retry.
        """
        try:
            withdrawal = await repository.lock_withdrawal(db, withdrawal_id=withdrawal_id)
            if withdrawal is None:
                raise WithdrawalNotFound()
            current = WithdrawalStatus(withdrawal.status)
            if current.is_terminal:
                raise TerminalState(f"Cannot settle a {current.value} withdrawal")
            if current is not WithdrawalStatus.APPROVED:
                raise InvalidTransition("Only approved withdrawals can be settled")

            recipient_code = recipient_code or withdrawal.external_recipient_ref
            if transfer_code is None:
                if not recipient_code:
                    recipient = await self.processor.create_transfer_recipient(
                        name=withdrawal.account_name,
                        account_number=withdrawal.account_number,
                        bank_code=withdrawal.bank_code,
                    )
                    recipient_code = recipient["recipient_code"]
                    withdrawal.external_recipient_ref = recipient_code
                    await db.flush()

                transfer = await self.processor.initiate_transfer(
                    amount=withdrawal.net_amount,
                    recipient_code=recipient_code,
                    reference=generate_reference("TRF"),
                    reason=f"Withdrawal #{withdrawal.id}",
                )
                transfer_code = transfer["transfer_code"]

            withdrawal.status = WithdrawalStatus.PAID.value
            withdrawal.external_recipient_ref = recipient_code
            withdrawal.external_transfer_ref = transfer_code
            withdrawal.processed_by = admin_id
            withdrawal.processed_at = datetime.utcnow()

            record_admin_action(
                db,
                admin_id=admin_id,
                action="SETTLE_WITHDRAWAL",
                table_name="withdrawals",
                record_id=withdrawal.id,
                old_values={"status": current.value},
                new_values={
                    "status": withdrawal.status,
                    "external_recipient_ref": recipient_code,
                    "external_transfer_ref": transfer_code,
                },
            )
            await db.commit()
        except PaymentProcessorError as e:
            saved_recipient = withdrawal.external_recipient_ref
            await db.rollback()
            logger.error(f"Settlement of withdrawal {withdrawal_id} failed: {e.message}")
            if saved_recipient:
                await self._remember_recipient(db, withdrawal_id, saved_recipient)
            raise SettlementFailed(e.message)
        except NulexError:
            await db.rollback()
            raise

        logger.info(f"Withdrawal {withdrawal_id} paid: transfer={transfer_code}")
        return {
            "success": True,
            "withdrawal_id": withdrawal_id,
            "status": WithdrawalStatus.PAID.value,
            "recipient_code": recipient_code,
            "transfer_code": transfer_code,
        }

    async def _remember_recipient(self, db, withdrawal_id: int, recipient_code: str) -> None:
        withdrawal = await repository.lock_withdrawal(db, withdrawal_id=withdrawal_id)
        if withdrawal is not None and withdrawal.status == WithdrawalStatus.APPROVED.value:
            withdrawal.external_recipient_ref = recipient_code
            await db.commit()

    async def list_for_user(self, db: AsyncSession, *, user_id: int, limit: int = 20, offset: int = 0):
        withdrawals = await repository.list_user_withdrawals(db, user_id=user_id, limit=limit, offset=offset)
        return [_withdrawal_dict(w) for w in withdrawals]

    async def list_admin(self, db: AsyncSession, *, status_filter: Optional[str], limit: int = 50, offset: int = 0):
        withdrawals = await repository.list_withdrawals(
            db, status_filter=status_filter, limit=limit, offset=offset
        )
        return [{**_withdrawal_dict(w), "user_id": w.user_id} for w in withdrawals]

    async def get_for_user(self, db: AsyncSession, *, user_id: int, withdrawal_id: int) -> Dict[str, Any]:
        withdrawal = await repository.get_withdrawal(db, withdrawal_id=withdrawal_id)
        if withdrawal is None or withdrawal.user_id != user_id:
            raise WithdrawalNotFound()
        return _withdrawal_dict(withdrawal)
