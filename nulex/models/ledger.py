"""
Ledger Models: transactions and the admin audit trail
"""

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from nulex.db import Base


class TransactionKind(str, enum.Enum):
    TASK_EARNING = "task_earning"
    REFERRAL = "referral"
    WITHDRAWAL = "withdrawal"
    PACKAGE_PURCHASE = "package_purchase"
    WELCOME_BONUS = "welcome_bonus"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class BalanceType(str, enum.Enum):
    TASK = "task"
    AFFILIATE = "affiliate"
    NONE = "none"

    @property
    def column(self) -> str:
        if self is BalanceType.NONE:
            raise ValueError("BalanceType.NONE has no backing balance")
        return f"{self.value}_balance"

    def read(self, user) -> Decimal:
        """Current value of this balance on ``user``."""
        if self is BalanceType.TASK:
            return Decimal(user.task_balance or 0)
        if self is BalanceType.AFFILIATE:
            return Decimal(user.affiliate_balance or 0)
        raise ValueError("BalanceType.NONE has no backing balance")

    def write(self, user, value: Decimal) -> None:
        if self is BalanceType.TASK:
            user.task_balance = value
        elif self is BalanceType.AFFILIATE:
            user.affiliate_balance = value
        else:
            raise ValueError("BalanceType.NONE has no backing balance")


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    kind = Column(String(20), nullable=False)  # task_earning, referral, withdrawal, package_purchase, welcome_bonus
    amount = Column(Numeric(12, 2), nullable=False)
    balance_type = Column(String(10), nullable=False)  # task, affiliate, none
    description = Column(Text, nullable=True)
    status = Column(String(10), default=TransactionStatus.COMPLETED.value, nullable=False)  # pending, completed, failed
    reference = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="transactions")


class AdminLog(Base):
    __tablename__ = "admin_logs"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(String(50), nullable=False)
    table_name = Column(String(50), nullable=False)
    record_id = Column(Integer, nullable=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
