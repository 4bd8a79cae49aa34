"""
Package purchase and referral models
"""

import enum
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from nulex.db import Base


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class Package(Base):
    __tablename__ = "packages"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    package_type = Column(String(10), nullable=False)  # knight, elite
    amount = Column(Numeric(12, 2), nullable=False)
    payment_reference = Column(String(100), unique=True, nullable=False)
    external_reference = Column(String(100), nullable=True, index=True)
    payment_status = Column(String(10), default=PaymentStatus.PENDING.value, nullable=False)  # pending, success, failed
    verified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User")


class Referral(Base):
    __tablename__ = "referrals"

    id = Column(Integer, primary_key=True, index=True)
    referrer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # A user can be referred at most once
    referred_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    package_type = Column(String(10), nullable=False)
    commission_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(10), default="completed", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    referrer = relationship("User", foreign_keys=[referrer_id])
    referred = relationship("User", foreign_keys=[referred_id])
