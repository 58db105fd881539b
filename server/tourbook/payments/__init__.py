"""Payment provider adapters."""

from .base import (
    CheckoutRequest,
    DecodedWebhook,
    PaymentGateway,
    ProviderInitResult,
    to_minor_units,
)
from .flutterwave import FlutterwaveGateway
from .paystack import PaystackGateway
from .registry import PaymentGatewayRegistry, build_gateway_registry
from .stripe import StripeGateway

__all__ = [
    "CheckoutRequest",
    "DecodedWebhook",
    "PaymentGateway",
    "ProviderInitResult",
    "to_minor_units",
    "StripeGateway",
    "PaystackGateway",
    "FlutterwaveGateway",
    "PaymentGatewayRegistry",
    "build_gateway_registry",
]
