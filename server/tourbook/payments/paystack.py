"""Paystack transaction adapter."""

import hashlib
import hmac
import logging
from typing import Any, Dict, Mapping

from ..models.payment import Payment, PaymentProvider, PaymentStatus
from .base import (
    CheckoutRequest,
    DecodedWebhook,
    PaymentGateway,
    ProviderInitResult,
    get_header,
    to_minor_units,
)

logger = logging.getLogger(__name__)

FAILED_TRANSACTION_STATUSES = {"failed", "abandoned", "reversed"}


class PaystackGateway(PaymentGateway):
    """Paystack transactions are referenced by our payment id."""

    provider = PaymentProvider.PAYSTACK

    @property
    def headers(self) -> Dict[str, str]:
        return {**super().headers, "Content-Type": "application/json"}

    async def initialize(self, payment: Payment, request: CheckoutRequest) -> ProviderInitResult:
        body = await self._request(
            "POST",
            "/transaction/initialize",
            json={
                "email": request.customer_email,
                "amount": to_minor_units(payment.amount),
                "currency": payment.currency,
                "reference": payment.id,
                "callback_url": request.callback_url,
                "metadata": {
                    "paymentId": payment.id,
                    "bookingId": payment.booking_id,
                },
            },
        )
        data = body.get("data") or {}
        return ProviderInitResult(
            payment_url=data.get("authorization_url"),
            provider_transaction_id=data.get("reference", payment.id),
        )

    async def verify(self, payment: Payment) -> PaymentStatus:
        body = await self._request("GET", f"/transaction/verify/{payment.provider_transaction_id}")
        status = (body.get("data") or {}).get("status")
        if status == "success":
            return PaymentStatus.SUCCESS
        if status in FAILED_TRANSACTION_STATUSES:
            return PaymentStatus.FAILED
        return PaymentStatus.PENDING

    def decode_webhook(self, payload: Dict[str, Any]) -> DecodedWebhook:
        data = payload.get("data")
        if not isinstance(data, dict):
            raise self._malformed("Paystack event has no data object")
        metadata = data.get("metadata")
        payment_id = self._require_payment_id(metadata.get("paymentId") if isinstance(metadata, dict) else None)

        return DecodedWebhook(
            payment_id=payment_id,
            status=PaymentStatus.SUCCESS if payload.get("event") == "charge.success" else PaymentStatus.FAILED,
            provider_transaction_id=data.get("reference"),
            provider=self.provider,
        )

    def verify_signature(self, headers: Mapping[str, str], raw_body: bytes) -> bool:
        if not self.secret_key:
            logger.warning("Paystack secret key not configured; skipping signature check")
            return True

        signature = get_header(headers, "x-paystack-signature")
        if not signature:
            return False
        expected = hmac.new(self.secret_key.encode(), raw_body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)
