"""
Admin Router - task review, withdrawals, portal, packages, settings and users
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from nulex.db import get_async_db
from nulex.dependencies import (
    get_admin_user,
    get_package_service,
    get_settings_provider,
    get_withdrawal_service,
)
from nulex.models.user import User
from nulex.schemas import (
    AdminVerifyPackageRequest,
    BlockUserRequest,
    PortalUpdateRequest,
    ReviewTaskRequest,
    SettingsUpdateRequest,
    TaskCreateRequest,
    TaskResponse,
    TaskUpdateRequest,
    WithdrawalSettleRequest,
    WithdrawalStatusRequest,
)
from nulex.services import audit_service, task_service, user_service
from nulex.services.package_service import PackageService
from nulex.services.settings_service import SettingsProvider, update_settings
from nulex.services.withdrawal_service import WithdrawalService

router = APIRouter(prefix="/admin", tags=["Admin"])


# Tasks


@router.post("/tasks")
async def create_task(
    request: TaskCreateRequest,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_async_db),
):
    task = await task_service.create_task(db, admin_id=admin.id, **request.model_dump())
    return {"success": True, "task": TaskResponse.model_validate(task)}


@router.patch("/tasks/{task_id}")
async def update_task(
    task_id: int,
    request: TaskUpdateRequest,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_async_db),
):
    task = await task_service.update_task(
        db, task_id=task_id, admin_id=admin.id, updates=request.model_dump(exclude_unset=True)
    )
    return {"success": True, "task": TaskResponse.model_validate(task)}


@router.get("/submissions")
async def pending_submissions(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_async_db),
):
    rows = await task_service.list_pending_submissions(db, limit=limit, offset=offset)
    return {
        "success": True,
        "submissions": [
            {
                "user_task_id": user_task.id,
                "user_id": user_task.user_id,
                "task_id": task.id,
                "title": task.title,
                "reward": task.reward,
                "screenshot_url": user_task.screenshot_url,
                "answer": user_task.answer,
                "verification_question": task.verification_question,
                "submitted_at": user_task.submitted_at,
            }
            for user_task, task in rows
        ],
    }


@router.post("/submissions/{user_task_id}/review")
async def review_submission(
    user_task_id: int,
    request: ReviewTaskRequest,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await task_service.review_task(
        db,
        user_task_id=user_task_id,
        decision=request.decision,
        reviewer_id=admin.id,
        notes=request.notes,
    )


# Withdrawals


@router.get("/withdrawals")
async def list_withdrawals(
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_async_db),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    withdrawals = await service.list_admin(db, status_filter=status_filter, limit=limit, offset=offset)
    return {"success": True, "withdrawals": withdrawals}


@router.post("/withdrawals/{withdrawal_id}/status")
async def update_withdrawal_status(
    withdrawal_id: int,
    request: WithdrawalStatusRequest,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_async_db),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    return await service.update_status(
        db,
        withdrawal_id=withdrawal_id,
        new_status=request.status,
        notes=request.notes,
        admin_id=admin.id,
    )


@router.post("/withdrawals/{withdrawal_id}/settle")
async def settle_withdrawal(
    withdrawal_id: int,
    request: WithdrawalSettleRequest,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_async_db),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    return await service.settle(
        db,
        withdrawal_id=withdrawal_id,
        admin_id=admin.id,
        recipient_code=request.recipient_code,
        transfer_code=request.transfer_code,
    )


@router.put("/withdrawals/portal")
async def update_portal(
    request: PortalUpdateRequest,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_async_db),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    return await service.update_portal(
        db,
        is_open=request.is_open,
        open_until=request.open_until,
        notes=request.notes,
        admin_id=admin.id,
    )


# Packages


@router.get("/packages")
async def list_packages(
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_async_db),
    service: PackageService = Depends(get_package_service),
):
    packages = await service.list_admin(db, status_filter=status_filter, limit=limit, offset=offset)
    return {"success": True, "packages": packages}


@router.post("/packages/{package_id}/verify")
async def verify_package(
    package_id: int,
    request: AdminVerifyPackageRequest,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_async_db),
    service: PackageService = Depends(get_package_service),
):
    return await service.admin_verify(
        db, package_id=package_id, status=request.status, admin_id=admin.id
    )


# Settings


@router.get("/settings")
async def get_settings(
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_async_db),
    settings: SettingsProvider = Depends(get_settings_provider),
):
    return {"success": True, "settings": await settings.all(db)}


@router.put("/settings")
async def put_settings(
    request: SettingsUpdateRequest,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_async_db),
):
    updated = await update_settings(db, updates=request.settings, admin_id=admin.id)
    return {"success": True, "settings": updated}


# Users


@router.post("/users/{user_id}/block")
async def block_user(
    user_id: int,
    request: BlockUserRequest,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await user_service.set_blocked(
        db, user_id=user_id, blocked=request.blocked, admin_id=admin.id
    )


# Audit log


@router.get("/logs")
async def list_logs(
    action: Optional[str] = Query(None),
    admin_id: Optional[int] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_async_db),
):
    logs = await audit_service.list_admin_logs(db, action=action, admin_id=admin_id, limit=limit, offset=offset)
    return {"success": True, "logs": logs}
