"""
Withdrawal Models
"""

import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from nulex.db import Base


class WithdrawalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (WithdrawalStatus.PAID, WithdrawalStatus.REJECTED)


class Withdrawal(Base):
    __tablename__ = "withdrawals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    balance_type = Column(String(10), nullable=False)  # task, affiliate
    net_amount = Column(Numeric(12, 2), nullable=False)
    bank_name = Column(String(100), nullable=False)
    bank_code = Column(String(10), nullable=False)
    account_number = Column(String(20), nullable=False)
    account_name = Column(String(255), nullable=False)
    status = Column(String(10), default=WithdrawalStatus.PENDING.value, nullable=False)  # pending, approved, paid, rejected
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True)
    external_recipient_ref = Column(String(100), nullable=True)
    external_transfer_ref = Column(String(100), nullable=True)
    admin_notes = Column(Text, nullable=True)
    processed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User", foreign_keys=[user_id], back_populates="withdrawals")
    admin = relationship("User", foreign_keys=[processed_by])
    transaction = relationship("Transaction")


class WithdrawalPortal(Base):
    """Append-only portal toggle; the latest row is the current state."""

    __tablename__ = "withdrawal_portal"

    id = Column(Integer, primary_key=True, index=True)
    is_open = Column(Boolean, default=False, nullable=False)
    open_until = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
