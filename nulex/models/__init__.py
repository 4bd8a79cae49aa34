from nulex.models.user import User, PackageTier
from nulex.models.ledger import Transaction, TransactionKind, TransactionStatus, BalanceType, AdminLog
from nulex.models.tasks import Task, UserTask, UserTaskStatus
from nulex.models.packages import Package, PaymentStatus, Referral
from nulex.models.withdrawals import Withdrawal, WithdrawalStatus, WithdrawalPortal
from nulex.models.settings import SystemSetting

__all__ = [
    "User",
    "PackageTier",
    "Transaction",
    "TransactionKind",
    "TransactionStatus",
    "BalanceType",
    "AdminLog",
    "Task",
    "UserTask",
    "UserTaskStatus",
    "Package",
    "PaymentStatus",
    "Referral",
    "Withdrawal",
    "WithdrawalStatus",
    "WithdrawalPortal",
    "SystemSetting",
]
