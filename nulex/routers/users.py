"""
Users Router - registration with optional referrer, referral link and stats
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from nulex.db import get_async_db
from nulex.dependencies import get_current_user
from nulex.models.user import User
from nulex.schemas import RegisterRequest
from nulex.services import user_service

router = APIRouter(prefix="/users", tags=["Users"])


@router.post("/register")
async def register(request: RegisterRequest, db: AsyncSession = Depends(get_async_db)):
    user = await user_service.register_user(
        db,
        username=request.username,
        email=request.email,
        phone=request.phone,
        referrer_username=request.referrer_username,
    )
    return {
        "success": True,
        "user_id": user.id,
        "username": user.username,
        "referrer_id": user.referrer_id,
    }


@router.get("/me/referral-link")
async def referral_link(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await user_service.get_referral_link(db, user_id=user.id)


@router.get("/me/referrals")
async def referral_stats(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await user_service.get_referral_stats(db, user_id=user.id, limit=limit, offset=offset)
