"""
Task Models
"""

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from nulex.db import Base


class UserTaskStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    APPROVED = "approved"
    REJECTED = "rejected"


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    task_type = Column(String(50), nullable=True)  # video, social, survey, etc.
    reward = Column(Numeric(12, 2), nullable=False)
    duration_minutes = Column(Integer, nullable=True)
    url = Column(Text, nullable=True)
    max_completions = Column(Integer, nullable=False)
    current_completions = Column(Integer, default=0, nullable=False)
    requires_screenshot = Column(Boolean, default=False, nullable=False)
    requires_question = Column(Boolean, default=False, nullable=False)
    verification_question = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    user_tasks = relationship("UserTask", back_populates="task")


class UserTask(Base):
    __tablename__ = "user_tasks"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False)
    status = Column(String(10), default=UserTaskStatus.PENDING.value, nullable=False)  # pending, completed, approved, rejected
    screenshot_url = Column(Text, nullable=True)
    answer = Column(Text, nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    review_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "task_id", name="uq_user_task"),)

    # Relationships
    task = relationship("Task", back_populates="user_tasks")
    user = relationship("User", foreign_keys=[user_id])
