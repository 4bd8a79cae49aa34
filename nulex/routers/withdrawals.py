"""
Withdrawals Router - portal status, withdrawal requests and history
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from nulex.db import get_async_db
from nulex.dependencies import get_current_user, get_withdrawal_service
from nulex.models.user import User
from nulex.schemas import WithdrawalCreateRequest
from nulex.services.withdrawal_service import WithdrawalService

router = APIRouter(prefix="/withdrawals", tags=["Withdrawals"])


@router.get("/portal")
async def portal_status(
    db: AsyncSession = Depends(get_async_db),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    return {"success": True, **await service.get_portal_status(db)}


@router.post("")
async def create_withdrawal(
    request: WithdrawalCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    return await service.create(
        db,
        user_id=user.id,
        amount=request.amount,
        balance_type=request.balance_type,
        bank_name=request.bank_name,
        bank_code=request.bank_code,
        account_number=request.account_number,
        account_name=request.account_name,
    )


@router.get("/mine")
async def my_withdrawals(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    withdrawals = await service.list_for_user(db, user_id=user.id, limit=limit, offset=offset)
    return {"success": True, "withdrawals": withdrawals}


@router.get("/{withdrawal_id}")
async def get_withdrawal(
    withdrawal_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    withdrawal = await service.get_for_user(db, user_id=user.id, withdrawal_id=withdrawal_id)
    return {"success": True, "withdrawal": withdrawal}
