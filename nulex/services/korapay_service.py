"""
Korapay Service - merchant API client for charges, bank lookups and payouts
"""
import hashlib
import hmac
import json
import logging
import random
import string
import time
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from nulex import config
from nulex.errors import PaymentProcessorError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-korapay-signature"


def generate_reference(prefix: str) -> str:
    """Unique merchant reference, e.g. ``PKG-1718000000000-K3J9QZ1AB``."""
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=9))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


def sign_payload(data: Any, secret_key: str) -> str:
    """HMAC-SHA256 (hex) of the compact JSON encoding of the webhook ``data`` object."""
    message = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
    return hmac.new(secret_key.encode(), message.encode(), hashlib.sha256).hexdigest()


class KorapayClient:
    """
    Thin async wrapper over the Korapay merchant API.

    Every failure (HTTP error status, ``status: false`` envelope, timeout or
    transport error) is raised as ``PaymentProcessorError`` carrying the
    processor's own message.
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        currency: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key if secret_key is not None else config.KORAPAY_SECRET_KEY
        self.base_url = (base_url or config.KORAPAY_BASE_URL).rstrip("/")
        self.timeout = timeout or config.KORAPAY_TIMEOUT_SECONDS
        self.currency = currency or config.KORAPAY_CURRENCY
        self.transport = transport

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, json=payload, headers=headers)
        except httpx.TimeoutException:
            logger.error(f"Korapay {method} {path} timed out after {self.timeout}s")
            raise PaymentProcessorError("Payment processor request timed out")
        except httpx.HTTPError as e:
            logger.error(f"Korapay {method} {path} transport error: {e}")
            raise PaymentProcessorError(f"Payment processor unreachable: {e}")

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400 or body.get("status") is False:
            message = body.get("message") or f"Payment processor returned HTTP {response.status_code}"
            logger.error(f"Korapay {method} {path} failed ({response.status_code}): {message}")
            raise PaymentProcessorError(message)

        return body.get("data") or {}

    async def create_charge(
        self,
        *,
        amount: Decimal,
        reference: str,
        customer: Dict[str, str],
        metadata: Optional[Dict[str, Any]] = None,
        notification_url: Optional[str] = None,
        redirect_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = {
            "amount": float(amount),
            "currency": self.currency,
            "reference": reference,
            "customer": customer,
            "metadata": metadata or {},
            "notification_url": notification_url,
            "redirect_url": redirect_url,
        }
        data = await self._request("POST", "/charges/initialize", payload)
        logger.info(f"Korapay charge created for {reference}")
        return {
            "reference": data.get("reference") or reference,
            "checkout_url": data.get("checkout_url"),
            "access_code": data.get("access_code"),
        }

    async def get_charge(self, reference: str) -> Dict[str, Any]:
        data = await self._request("GET", f"/charges/{reference}")
        return {
            "status": (data.get("status") or "").lower(),
            "reference": data.get("reference") or reference,
            "amount": data.get("amount"),
        }

    async def validate_bank_account(self, *, account_number: str, bank_code: str) -> Dict[str, Any]:
        data = await self._request(
            "POST",
            "/bank_accounts/validate",
            {"account_number": account_number, "bank_code": bank_code},
        )
        return {
            "account_name": data.get("account_name"),
            "bank_name": data.get("bank_name"),
        }

    async def create_transfer_recipient(
        self, *, name: str, account_number: str, bank_code: str
    ) -> Dict[str, Any]:
        data = await self._request(
            "POST",
            "/transfer_recipients",
            {
                "type": "nuban",
                "name": name,
                "account_number": account_number,
                "bank_code": bank_code,
                "currency": self.currency,
            },
        )
        return {"recipient_code": data.get("recipient_code")}

    async def initiate_transfer(
        self, *, amount: Decimal, recipient_code: str, reference: str, reason: str = "Withdrawal"
    ) -> Dict[str, Any]:
        data = await self._request(
            "POST",
            "/transfers",
            {
                "source": "balance",
                "amount": float(amount),
                "currency": self.currency,
                "reference": reference,
                "recipient": recipient_code,
                "reason": reason,
            },
        )
        logger.info(f"Korapay transfer {reference} initiated to {recipient_code}")
        return {"transfer_code": data.get("transfer_code") or data.get("reference")}

    def verify_webhook_signature(self, data: Any, signature: Optional[str]) -> bool:
        if not signature or not self.secret_key:
            return False
        expected = sign_payload(data, self.secret_key)
        return hmac.compare_digest(expected, signature)
