"""
Task Service - per-user task state machine and slot accounting

UserTask states: pending -> completed -> approved | rejected.
A rejected task may be started again.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from nulex.errors import (
    AlreadyStarted,
    AlreadySubmitted,
    AnswerRequired,
    NotReviewable,
    NotStarted,
    NulexError,
    ScreenshotRequired,
    TaskFull,
    TaskInactiveOrMissing,
    UserNotFound,
    UserTaskNotFound,
    ValidationError,
)
from nulex.models.ledger import BalanceType, TransactionKind
from nulex.models.tasks import Task, UserTask, UserTaskStatus
from nulex.services import repository
from nulex.services.audit_service import record_admin_action
from nulex.services.ledger_service import post_transaction

logger = logging.getLogger(__name__)

APPROVE = "approve"
REJECT = "reject"

EDITABLE_TASK_FIELDS = (
    "title",
    "description",
    "task_type",
    "reward",
    "duration_minutes",
    "url",
    "max_completions",
    "requires_screenshot",
    "requires_question",
    "verification_question",
    "is_active",
)


def _task_snapshot(task: Task) -> dict:
    return {field: getattr(task, field) for field in EDITABLE_TASK_FIELDS}


async def _lock_available_task(db, task_id: int) -> Task:
    task = await repository.lock_task(db, task_id=task_id)
    if task is None or not task.is_active:
        raise TaskInactiveOrMissing()
    if task.current_completions >= task.max_completions:
        raise TaskFull()
    return task


async def start_task(db: AsyncSession, *, task_id: int, user_id: int) -> dict:
    try:
        user = await repository.get_user(db, user_id=user_id)
        if user is None or user.is_blocked:
            raise UserNotFound()

        await _lock_available_task(db, task_id)

        user_task = await repository.lock_user_task(db, user_id=user_id, task_id=task_id)
        if user_task is not None:
            if user_task.status != UserTaskStatus.REJECTED.value:
                raise AlreadyStarted()
            # Restart: clear the previous submission and review
            user_task.status = UserTaskStatus.PENDING.value
            user_task.screenshot_url = None
            user_task.answer = None
            user_task.submitted_at = None
            user_task.approved_at = None
            user_task.approved_by = None
            user_task.review_notes = None
        else:
            user_task = UserTask(user_id=user_id, task_id=task_id, status=UserTaskStatus.PENDING.value)
            db.add(user_task)

        await db.flush()
        user_task_id = user_task.id
        await db.commit()
    except NulexError:
        await db.rollback()
        raise

    logger.info(f"User {user_id} started task {task_id} (user_task={user_task_id})")
    return {"success": True, "user_task_id": user_task_id, "status": UserTaskStatus.PENDING.value}


async def submit_task(
    db: AsyncSession,
    *,
    task_id: int,
    user_id: int,
    screenshot_url: Optional[str] = None,
    answer: Optional[str] = None,
) -> dict:
    try:
        # Task row first, matching start_task lock order
        task = await repository.lock_task(db, task_id=task_id)
        user_task = await repository.lock_user_task(db, user_id=user_id, task_id=task_id)
        if user_task is None:
            raise NotStarted()
        if user_task.status != UserTaskStatus.PENDING.value:
            if user_task.status == UserTaskStatus.REJECTED.value:
                raise NotStarted()
            raise AlreadySubmitted()

        # Early slot check; the guarded claim below decides
        if task is None or not task.is_active:
            raise TaskInactiveOrMissing()
        if task.current_completions >= task.max_completions:
            raise TaskFull()

        if task.requires_screenshot and not (screenshot_url or "").strip():
            raise ScreenshotRequired()
        if task.requires_question and not (answer or "").strip():
            raise AnswerRequired()

        if not await repository.claim_task_slot(db, task_id=task_id):
            raise TaskFull()
        await db.refresh(task)

        user_task.status = UserTaskStatus.COMPLETED.value
        user_task.screenshot_url = screenshot_url
        user_task.answer = answer
        user_task.submitted_at = datetime.utcnow()

        await db.commit()
    except NulexError:
        await db.rollback()
        raise

    logger.info(
        f"User {user_id} submitted task {task_id}, completions={task.current_completions}/{task.max_completions}"
    )
    return {"success": True, "user_task_id": user_task.id, "status": UserTaskStatus.COMPLETED.value}


async def review_task(
    db: AsyncSession,
    *,
    user_task_id: int,
    decision: str,
    reviewer_id: int,
    notes: Optional[str] = None,
) -> dict:
    """
    Approve or reject a submitted task.

    Approval posts the task reward to the user's task balance as a
    ``task_earning`` transaction. Every review writes an audit entry.
    """
    if decision not in (APPROVE, REJECT):
        raise ValidationError("Decision must be 'approve' or 'reject'")

    try:
        user_task = await repository.lock_user_task_by_id(db, user_task_id=user_task_id)
        if user_task is None:
            raise UserTaskNotFound()
        if user_task.status != UserTaskStatus.COMPLETED.value:
            raise NotReviewable()

        old_status = user_task.status
        reward = None
        if decision == APPROVE:
            task = await repository.get_task(db, task_id=user_task.task_id)
            reward = task.reward
            await post_transaction(
                db,
                user_id=user_task.user_id,
                kind=TransactionKind.TASK_EARNING,
                amount=reward,
                balance_type=BalanceType.TASK,
                description=f"Task reward: {task.title}",
            )
            user_task.status = UserTaskStatus.APPROVED.value
        else:
            user_task.status = UserTaskStatus.REJECTED.value

        user_task.approved_at = datetime.utcnow()
        user_task.approved_by = reviewer_id
        user_task.review_notes = notes

        record_admin_action(
            db,
            admin_id=reviewer_id,
            action="REVIEW_TASK",
            table_name="user_tasks",
            record_id=user_task.id,
            old_values={"status": old_status},
            new_values={"status": user_task.status, "review_notes": notes, "reward": reward},
        )
        await db.commit()
    except NulexError:
        await db.rollback()
        raise

    logger.info(f"Reviewer {reviewer_id} {decision}d user_task {user_task_id}")
    return {"success": True, "user_task_id": user_task_id, "status": user_task.status}


async def create_task(db: AsyncSession, *, admin_id: int, **fields) -> Task:
    unknown = set(fields) - set(EDITABLE_TASK_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown task fields: {', '.join(sorted(unknown))}")

    task = Task(created_by=admin_id, current_completions=0, **fields)
    db.add(task)
    await db.flush()
    record_admin_action(
        db,
        admin_id=admin_id,
        action="CREATE_TASK",
        table_name="tasks",
        record_id=task.id,
        new_values=_task_snapshot(task),
    )
    await db.commit()
    logger.info(f"Admin {admin_id} created task {task.id}")
    return task


async def update_task(db: AsyncSession, *, task_id: int, admin_id: int, updates: dict) -> Task:
    unknown = set(updates) - set(EDITABLE_TASK_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown task fields: {', '.join(sorted(unknown))}")

    try:
        task = await repository.lock_task(db, task_id=task_id)
        if task is None:
            raise TaskInactiveOrMissing("Task not found")
        if "max_completions" in updates and updates["max_completions"] < task.current_completions:
            raise ValidationError("max_completions cannot be below current completions")

        old_values = _task_snapshot(task)
        for field, value in updates.items():
            setattr(task, field, value)

        record_admin_action(
            db,
            admin_id=admin_id,
            action="UPDATE_TASK",
            table_name="tasks",
            record_id=task.id,
            old_values=old_values,
            new_values=_task_snapshot(task),
        )
        await db.commit()
    except NulexError:
        await db.rollback()
        raise
    return task


async def list_available_tasks(db: AsyncSession, *, limit: int = 50, offset: int = 0):
    stmt = (
        select(Task)
        .where(Task.is_active.is_(True), Task.current_completions < Task.max_completions)
        .order_by(desc(Task.id))
        .limit(limit)
        .offset(offset)
    )
    result = await db.execute(stmt)
    return result.scalars().all()


async def list_user_tasks(db: AsyncSession, *, user_id: int, limit: int = 50, offset: int = 0):
    stmt = (
        select(UserTask, Task)
        .join(Task, UserTask.task_id == Task.id)
        .where(UserTask.user_id == user_id)
        .order_by(desc(UserTask.id))
        .limit(limit)
        .offset(offset)
    )
    result = await db.execute(stmt)
    return result.all()


async def list_pending_submissions(db: AsyncSession, *, limit: int = 50, offset: int = 0):
    stmt = (
        select(UserTask, Task)
        .join(Task, UserTask.task_id == Task.id)
        .where(UserTask.status == UserTaskStatus.COMPLETED.value)
        .order_by(UserTask.submitted_at)
        .limit(limit)
        .offset(offset)
    )
    result = await db.execute(stmt)
    return result.all()


async def get_task_detail(db: AsyncSession, *, task_id: int, user_id: int) -> dict:
    """An active task plus the caller's progress on it (None if not started)."""
    task = await repository.get_task(db, task_id=task_id)
    if task is None or not task.is_active:
        raise TaskInactiveOrMissing()
    result = await db.execute(
        select(UserTask).where(UserTask.user_id == user_id, UserTask.task_id == task_id)
    )
    user_task = result.scalar_one_or_none()
    return {
        "task": task,
        "user_task_id": user_task.id if user_task else None,
        "user_status": user_task.status if user_task else None,
        "slots_left": max(task.max_completions - task.current_completions, 0),
    }
