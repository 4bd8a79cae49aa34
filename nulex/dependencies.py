"""
Async Dependencies for authentication and service wiring
"""
import logging

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from nulex import config
from nulex.db import get_async_db
from nulex.models.user import User
from nulex.services import repository
from nulex.services.korapay_service import KorapayClient
from nulex.services.package_service import PackageService
from nulex.services.settings_service import DatabaseSettings, SettingsProvider
from nulex.services.withdrawal_service import WithdrawalService

logger = logging.getLogger(__name__)


def decode_access_token(token: str) -> int:
    """Return the user id carried in the token's ``sub`` claim."""
    try:
        payload = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
        return int(payload["sub"])
    except (JWTError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_async_db)
) -> User:
    """
    Extracts and validates the bearer token from the Authorization header.
    Blocked users are refused.
    """
    auth_header = request.headers.get('authorization') or request.headers.get('Authorization')
    if not auth_header or not auth_header.lower().startswith('bearer '):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization token missing."
        )
    token = auth_header.split(' ', 1)[1].strip()
    user_id = decode_access_token(token)

    user = await repository.get_user(db, user_id=user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    if user.is_blocked:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is blocked"
        )
    return user


async def get_admin_user(user: User = Depends(get_current_user)) -> User:
    """Verify user is admin"""
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required for this endpoint"
        )
    return user


def get_settings_provider() -> SettingsProvider:
    return DatabaseSettings()


def get_payment_processor() -> KorapayClient:
    return KorapayClient()


def get_package_service(
    settings: SettingsProvider = Depends(get_settings_provider),
    processor=Depends(get_payment_processor),
) -> PackageService:
    return PackageService(settings, processor)


def get_withdrawal_service(
    settings: SettingsProvider = Depends(get_settings_provider),
    processor=Depends(get_payment_processor),
) -> WithdrawalService:
    return WithdrawalService(settings, processor)
