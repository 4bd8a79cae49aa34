"""
Wallet Router - balances and transaction history
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from nulex.db import get_async_db
from nulex.dependencies import get_current_user
from nulex.models.user import User
from nulex.schemas import TransactionResponse, WalletResponse
from nulex.services import repository

router = APIRouter(prefix="/wallet", tags=["Wallet"])


@router.get("/me", response_model=WalletResponse)
async def get_wallet_info(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Get both balances and the ten most recent transactions for the current user.
    """
    transactions = await repository.list_user_transactions(db, user_id=user.id, limit=10)
    return WalletResponse(
        task_balance=user.task_balance,
        affiliate_balance=user.affiliate_balance,
        package_type=user.package_type,
        welcome_bonus_claimed=user.welcome_bonus_claimed,
        recent_transactions=[TransactionResponse.model_validate(t) for t in transactions],
    )


@router.get("/transactions")
async def list_transactions(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    transactions = await repository.list_user_transactions(
        db, user_id=user.id, limit=limit, offset=offset
    )
    return {
        "success": True,
        "transactions": [TransactionResponse.model_validate(t) for t in transactions],
    }
