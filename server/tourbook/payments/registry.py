"""Provider to gateway lookup."""

from typing import Dict, Iterable, Optional, Union

import httpx

from ..core.config import Settings
from ..core.exceptions import UnsupportedProviderError
from ..models.payment import PaymentProvider
from .base import PaymentGateway
from .flutterwave import FlutterwaveGateway
from .paystack import PaystackGateway
from .stripe import StripeGateway


class PaymentGatewayRegistry:
    """Maps each ``PaymentProvider`` to the adapter that speaks its API."""

    def __init__(self, gateways: Iterable[PaymentGateway]):
        self._gateways: Dict[PaymentProvider, PaymentGateway] = {
            gateway.provider: gateway for gateway in gateways
        }

    def get(self, provider: Union[PaymentProvider, str]) -> PaymentGateway:
        """
        Resolve the gateway for ``provider``.

        Accepts enum members or provider names in any case, so URL path
        segments like ``paystack`` resolve directly.

        Raises:
            UnsupportedProviderError: If no gateway handles the provider
        """
        name = provider.value if isinstance(provider, PaymentProvider) else str(provider).upper()
        try:
            return self._gateways[PaymentProvider(name)]
        except (KeyError, ValueError):
            raise UnsupportedProviderError(str(provider))

    def __contains__(self, provider: PaymentProvider) -> bool:
        return provider in self._gateways


def build_gateway_registry(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PaymentGatewayRegistry:
    """Build the registry of all supported providers from settings."""
    timeout = settings.payment_http_timeout_seconds
    return PaymentGatewayRegistry([
        StripeGateway(
            settings.stripe_api_base,
            settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            tolerance_seconds=settings.stripe_webhook_tolerance_seconds,
            timeout=timeout,
            transport=transport,
        ),
        PaystackGateway(
            settings.paystack_api_base,
            settings.paystack_secret_key,
            timeout=timeout,
            transport=transport,
        ),
        FlutterwaveGateway(
            settings.flutterwave_api_base,
            settings.flutterwave_secret_key,
            webhook_hash=settings.flutterwave_webhook_hash,
            timeout=timeout,
            transport=transport,
        ),
    ])
