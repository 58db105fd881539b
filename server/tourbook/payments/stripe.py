"""Stripe Checkout adapter."""

import hashlib
import hmac
import logging
import time
from typing import Any, Dict, Mapping, Optional

import httpx

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


class StripeGateway(PaymentGateway):
    """Stripe Checkout Sessions; requests are form encoded, amounts in minor units."""

    provider = PaymentProvider.STRIPE

    def __init__(
        self,
        base_url: str,
        secret_key: str,
        webhook_secret: str = "",
        tolerance_seconds: int = 300,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, secret_key, timeout=timeout, transport=transport)
        self.webhook_secret = webhook_secret
        self.tolerance_seconds = tolerance_seconds

    async def initialize(self, payment: Payment, request: CheckoutRequest) -> ProviderInitResult:
        form = {
            "mode": "payment",
            "success_url": request.callback_url,
            "cancel_url": request.callback_url,
            "customer_email": request.customer_email,
            "client_reference_id": payment.id,
            "metadata[paymentId]": payment.id,
            "metadata[bookingId]": payment.booking_id,
            "payment_intent_data[metadata][paymentId]": payment.id,
            "line_items[0][quantity]": "1",
            "line_items[0][price_data][currency]": payment.currency.lower(),
            "line_items[0][price_data][unit_amount]": str(to_minor_units(payment.amount)),
            "line_items[0][price_data][product_data][name]": request.description,
        }
        body = await self._request("POST", "/v1/checkout/sessions", data=form)
        return ProviderInitResult(
            payment_url=body.get("url"),
            provider_transaction_id=body.get("id"),
        )

    async def verify(self, payment: Payment) -> PaymentStatus:
        body = await self._request("GET", f"/v1/checkout/sessions/{payment.provider_transaction_id}")
        if body.get("payment_status") == "paid":
            return PaymentStatus.SUCCESS
        if body.get("status") == "expired":
            return PaymentStatus.FAILED
        return PaymentStatus.PENDING

    def decode_webhook(self, payload: Dict[str, Any]) -> DecodedWebhook:
        # Events arrive enveloped ({"type", "data": {"object"}}); bare objects are accepted too
        data = payload.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        if not isinstance(obj, dict):
            obj = payload

        metadata = obj.get("metadata")
        if not isinstance(metadata, dict):
            raise self._malformed("Stripe event object has no metadata")
        payment_id = self._require_payment_id(metadata.get("paymentId"))

        # payment_intent objects report status, checkout sessions report payment_status
        succeeded = obj.get("status") == "succeeded" or obj.get("payment_status") == "paid"

        return DecodedWebhook(
            payment_id=payment_id,
            status=PaymentStatus.SUCCESS if succeeded else PaymentStatus.FAILED,
            provider_transaction_id=obj.get("id"),
            provider=self.provider,
        )

    def verify_signature(self, headers: Mapping[str, str], raw_body: bytes) -> bool:
        if not self.webhook_secret:
            logger.warning("Stripe webhook secret not configured; skipping signature check")
            return True

        header = get_header(headers, "Stripe-Signature")
        if not header:
            return False

        timestamp = None
        signatures = []
        for part in header.split(","):
            key, _, value = part.strip().partition("=")
            if key == "t":
                timestamp = value
            elif key == "v1":
                signatures.append(value)

        if not timestamp or not signatures:
            return False
        try:
            if abs(time.time() - int(timestamp)) > self.tolerance_seconds:
                logger.warning("Stripe webhook timestamp outside tolerance", extra={"timestamp": timestamp})
                return False
        except ValueError:
            return False

        signed_payload = f"{timestamp}.".encode() + raw_body
        expected = hmac.new(self.webhook_secret.encode(), signed_payload, hashlib.sha256).hexdigest()
        return any(hmac.compare_digest(expected, signature) for signature in signatures)
