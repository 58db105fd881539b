"""Flutterwave Standard adapter."""

import hmac
import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from ..models.payment import Payment, PaymentProvider, PaymentStatus
from .base import (
    CheckoutRequest,
    DecodedWebhook,
    PaymentGateway,
    ProviderInitResult,
    get_header,
)

logger = logging.getLogger(__name__)


class FlutterwaveGateway(PaymentGateway):
    """Flutterwave takes major-unit amounts and our payment id as ``tx_ref``."""

    provider = PaymentProvider.FLUTTERWAVE

    def __init__(
        self,
        base_url: str,
        secret_key: str,
        webhook_hash: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, secret_key, timeout=timeout, transport=transport)
        self.webhook_hash = webhook_hash

    @property
    def headers(self) -> Dict[str, str]:
        return {**super().headers, "Content-Type": "application/json"}

    async def initialize(self, payment: Payment, request: CheckoutRequest) -> ProviderInitResult:
        body = await self._request(
            "POST",
            "/v3/payments",
            json={
                "tx_ref": payment.id,
                "amount": payment.amount,
                "currency": payment.currency,
                "redirect_url": request.callback_url,
                "customer": {
                    "email": request.customer_email,
                    "name": request.customer_name or request.customer_email,
                },
                "customizations": {"title": request.description},
                "meta": {
                    "paymentId": payment.id,
                    "bookingId": payment.booking_id,
                },
            },
        )
        data = body.get("data") or {}
        return ProviderInitResult(payment_url=data.get("link"), provider_transaction_id=payment.id)

    async def verify(self, payment: Payment) -> PaymentStatus:
        body = await self._request(
            "GET",
            "/v3/transactions/verify_by_reference",
            params={"tx_ref": payment.provider_transaction_id},
        )
        status = (body.get("data") or {}).get("status")
        if status == "successful":
            return PaymentStatus.SUCCESS
        if status == "failed":
            return PaymentStatus.FAILED
        return PaymentStatus.PENDING

    def decode_webhook(self, payload: Dict[str, Any]) -> DecodedWebhook:
        data = payload.get("data")
        if not isinstance(data, dict):
            raise self._malformed("Flutterwave event has no data object")
        meta = data.get("meta")
        payment_id = self._require_payment_id(meta.get("paymentId") if isinstance(meta, dict) else None)

        succeeded = payload.get("event") == "charge.completed" and data.get("status") == "successful"
        return DecodedWebhook(
            payment_id=payment_id,
            status=PaymentStatus.SUCCESS if succeeded else PaymentStatus.FAILED,
            provider_transaction_id=data.get("flw_ref"),
            provider=self.provider,
        )

    def verify_signature(self, headers: Mapping[str, str], raw_body: bytes) -> bool:
        if not self.webhook_hash:
            logger.warning("Flutterwave webhook hash not configured; skipping signature check")
            return True

        signature = get_header(headers, "verif-hash")
        if not signature:
            return False
        return hmac.compare_digest(self.webhook_hash, signature)
