"""
Payments Router - package purchase, verification and the Korapay webhook
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from nulex.db import get_async_db
from nulex.dependencies import get_current_user, get_package_service, get_withdrawal_service
from nulex.models.user import User
from nulex.schemas import BankValidationRequest, InitializePaymentRequest
from nulex.services.package_service import PackageService
from nulex.services.withdrawal_service import WithdrawalService

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/initialize")
async def initialize_payment(
    request: InitializePaymentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    service: PackageService = Depends(get_package_service),
):
    return await service.initialize(db, user_id=user.id, package_type=request.package_type)


@router.get("/verify/{reference}")
async def verify_payment(
    reference: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    service: PackageService = Depends(get_package_service),
):
    return await service.verify(db, user_id=user.id, reference=reference)


@router.post("/webhook")
async def korapay_webhook(
    request: Request,
    x_korapay_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_async_db),
    service: PackageService = Depends(get_package_service),
):
    """Korapay charge notifications. Signature is checked before the payload is used."""
    payload = await request.json()
    return await service.handle_webhook(db, payload=payload, signature=x_korapay_signature)


@router.post("/banks/validate")
async def validate_bank_account(
    request: BankValidationRequest,
    user: User = Depends(get_current_user),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    return await service.validate_bank_account(
        account_number=request.account_number, bank_code=request.bank_code
    )
