"""
Package Service - package payment initialization and settlement

Reconciliation is reachable from the user verify call, the processor webhook
and the admin verify action. The package row lock plus a guarded
pending-to-terminal UPDATE make all three idempotent.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from nulex import config
from nulex.errors import (
    InvalidWebhookSignature,
    NulexError,
    PackageNotFound,
    PaymentInitError,
    PaymentProcessorError,
    UserNotFound,
    ValidationError,
)
from nulex.models.packages import Package, PaymentStatus
from nulex.models.user import PackageTier
from nulex.services import repository
from nulex.services.activation import ActivationCommand
from nulex.services.audit_service import record_admin_action
from nulex.services.korapay_service import generate_reference

logger = logging.getLogger(__name__)

PURCHASABLE_TIERS = (PackageTier.KNIGHT, PackageTier.ELITE)
HANDLED_EVENTS = {
    "charge.success": PaymentStatus.SUCCESS.value,
    "charge.failed": PaymentStatus.FAILED.value,
}


def _package_result(package: Package, *, already_processed: bool) -> Dict[str, Any]:
    return {
        "success": True,
        "package_id": package.id,
        "reference": package.payment_reference,
        "package_type": package.package_type,
        "amount": package.amount,
        "status": package.payment_status,
        "already_processed": already_processed,
    }


class PackageService:
    def __init__(self, settings, processor, base_url: Optional[str] = None):
        self.settings = settings
        self.processor = processor
        self.base_url = (base_url or config.BASE_URL).rstrip("/")

    async def initialize(self, db: AsyncSession, *, user_id: int, package_type: str) -> Dict[str, Any]:
        try:
            tier = PackageTier(package_type)
        except ValueError:
            tier = None
        if tier not in PURCHASABLE_TIERS:
            raise ValidationError("Invalid package type")

        user = await repository.get_user(db, user_id=user_id)
        if user is None or user.is_blocked:
            raise UserNotFound()

        price = await self.settings.package_price(db, tier)
        reference = generate_reference("PKG")

        try:
            charge = await self.processor.create_charge(
                amount=price,
                reference=reference,
                customer={"name": user.username, "email": user.email},
                metadata={"user_id": user.id, "package_type": tier.value},
                notification_url=f"{self.base_url}/payments/webhook",
                redirect_url=f"{self.base_url}/payments/verify/{reference}",
            )
        except PaymentProcessorError as e:
            logger.error(f"Charge initialization failed for user {user_id}: {e.message}")
            raise PaymentInitError(e.message)

        package = Package(
            user_id=user.id,
            package_type=tier.value,
            amount=price,
            payment_reference=reference,
            external_reference=charge.get("reference") or reference,
            payment_status=PaymentStatus.PENDING.value,
        )
        db.add(package)
        await db.commit()

        logger.info(f"Initialized {tier.value} package {package.id} for user {user_id}: {reference}")
        return {
            "success": True,
            "package_id": package.id,
            "reference": reference,
            "checkout_url": charge.get("checkout_url"),
            "access_code": charge.get("access_code"),
            "amount": price,
        }

    async def _reconcile_locked(self, db, package: Package, observed_status: str) -> Dict[str, Any]:
        if package.payment_status != PaymentStatus.PENDING.value:
            logger.info(
                f"Package {package.id} already {package.payment_status}, ignoring {observed_status}"
            )
            return _package_result(package, already_processed=True)

        effects = await ActivationCommand(db, self.settings).run(package, observed_status)
        settled_elsewhere = not effects and package.payment_status != PaymentStatus.PENDING.value
        return _package_result(package, already_processed=settled_elsewhere)

    async def reconcile(self, db: AsyncSession, *, external_reference: str, observed_status: str) -> Dict[str, Any]:
        """
        Apply an observed processor status to the package with this reference.

        ``success`` activates the package (tier, welcome bonus, purchase record,
        referral commission); ``failed`` marks it failed; anything else leaves it
        pending. A package already out of ``pending`` returns its cached result.
        """
        try:
            package = await repository.lock_package(db, reference=external_reference)
            if package is None:
                raise PackageNotFound()
            result = await self._reconcile_locked(db, package, observed_status)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return result

    async def verify(self, db: AsyncSession, *, user_id: int, reference: str) -> Dict[str, Any]:
        package = await repository.get_package_by_reference(db, reference=reference)
        if package is None or package.user_id != user_id:
            raise PackageNotFound()
        if package.payment_status == PaymentStatus.SUCCESS.value:
            return _package_result(package, already_processed=True)

        charge = await self.processor.get_charge(package.external_reference or package.payment_reference)
        return await self.reconcile(
            db, external_reference=package.payment_reference, observed_status=charge.get("status", "")
        )

    async def handle_webhook(
        self, db: AsyncSession, *, payload: Dict[str, Any], signature: Optional[str]
    ) -> Dict[str, Any]:
        if not isinstance(payload, dict):
            raise ValidationError("Webhook payload must be a JSON object")
        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise ValidationError("Webhook data must be a JSON object")
        if not self.processor.verify_webhook_signature(data, signature):
            logger.warning("Rejected webhook with invalid signature")
            raise InvalidWebhookSignature()

        event = payload.get("event")
        observed_status = HANDLED_EVENTS.get(event)
        reference = data.get("reference")
        if observed_status is None or not reference:
            logger.info(f"Ignoring webhook event {event}")
            return {"success": True, "processed": False}

        try:
            result = await self.reconcile(db, external_reference=reference, observed_status=observed_status)
        except PackageNotFound:
            logger.warning(f"Webhook {event} for unknown reference {reference}")
            return {"success": True, "processed": False}

        return {**result, "processed": not result["already_processed"]}

    async def admin_verify(
        self, db: AsyncSession, *, package_id: int, status: str, admin_id: int
    ) -> Dict[str, Any]:
        if status not in (PaymentStatus.SUCCESS.value, PaymentStatus.FAILED.value):
            raise ValidationError("Status must be 'success' or 'failed'")

        try:
            package = await repository.lock_package(db, package_id=package_id)
            if package is None:
                raise PackageNotFound()
            old_status = package.payment_status
            result = await self._reconcile_locked(db, package, status)
            if not result["already_processed"]:
                record_admin_action(
                    db,
                    admin_id=admin_id,
                    action="VERIFY_PACKAGE",
                    table_name="packages",
                    record_id=package.id,
                    old_values={"payment_status": old_status},
                    new_values={"payment_status": package.payment_status},
                )
            await db.commit()
        except NulexError:
            await db.rollback()
            raise
        return result

    async def list_admin(
        self, db: AsyncSession, *, status_filter: Optional[str] = None, limit: int = 20, offset: int = 0
    ):
        packages = await repository.list_packages(db, status_filter=status_filter, limit=limit, offset=offset)
        return [
            {
                **_package_result(package, already_processed=package.payment_status != PaymentStatus.PENDING.value),
                "user_id": package.user_id,
                "external_reference": package.external_reference,
                "verified_at": package.verified_at,
                "created_at": package.created_at,
            }
            for package in packages
        ]
