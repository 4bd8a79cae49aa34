"""
User Model
"""

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from nulex.db import Base


class PackageTier(str, enum.Enum):
    NONE = "none"
    KNIGHT = "knight"
    ELITE = "elite"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(20), nullable=True)
    # Set once at registration, never reassigned
    referrer_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    package_type = Column(String(10), default=PackageTier.NONE.value, nullable=False)  # none, knight, elite
    task_balance = Column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    affiliate_balance = Column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    welcome_bonus_claimed = Column(Boolean, default=False, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    is_blocked = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    referrer = relationship("User", remote_side=[id])
    transactions = relationship("Transaction", back_populates="user")
    withdrawals = relationship("Withdrawal", back_populates="user", foreign_keys="Withdrawal.user_id")

    @property
    def tier(self) -> PackageTier:
        return PackageTier(self.package_type or PackageTier.NONE.value)
