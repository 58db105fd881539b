"""
Base Payment Gateway
====================

Abstract base class defining the interface every payment provider adapter
implements. The reconciliation and payment services only ever talk to this
interface; provider specifics (endpoints, payload shapes, signature schemes)
stay inside the concrete adapters.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import httpx

from ..core.exceptions import MalformedWebhookError, PaymentProviderError
from ..models.payment import Payment, PaymentProvider, PaymentStatus

logger = logging.getLogger(__name__)


@dataclass
class CheckoutRequest:
    """Customer-facing details a provider needs to open a checkout."""
    customer_email: str
    customer_name: Optional[str]
    description: str
    callback_url: str


@dataclass
class ProviderInitResult:
    """What a provider hands back when a checkout is opened."""
    payment_url: Optional[str] = None
    provider_transaction_id: Optional[str] = None


@dataclass
class DecodedWebhook:
    """Provider-neutral view of a payment webhook."""
    payment_id: str
    status: PaymentStatus
    provider_transaction_id: Optional[str]
    provider: PaymentProvider


def to_minor_units(amount: float) -> int:
    """Convert a major-unit amount to the integer minor units providers expect."""
    return int(round(amount * 100))


def get_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup for plain dicts and Starlette headers alike."""
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


class PaymentGateway(ABC):
    """
    Abstract base class for payment provider adapters.

    Adapters handle:
    - Opening a checkout with the provider
    - Asking the provider for the authoritative status of a payment
    - Decoding provider webhooks into ``DecodedWebhook``
    - Verifying webhook signatures

    Transport failures are translated to ``PaymentProviderError`` so callers
    see one error type regardless of provider.
    """

    provider: PaymentProvider

    def __init__(
        self,
        base_url: str,
        secret_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the gateway.

        Args:
            base_url: Provider API base URL
            secret_key: Provider API secret key
            timeout: HTTP request timeout in seconds
            transport: Optional httpx transport, used to stub the provider in tests
        """
        self.base_url = base_url.rstrip("/")
        self.secret_key = secret_key
        self.timeout = timeout
        self.transport = transport

    @property
    def headers(self) -> Dict[str, str]:
        """Return default headers for API requests."""
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Accept": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        """
        Make an API request and return the decoded JSON body.

        Raises:
            PaymentProviderError: On transport errors, non-2xx responses or
                bodies that are not JSON
        """
        async with self._client() as client:
            try:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                logger.error(
                    "Payment provider returned an error response",
                    extra={
                        "provider": self.provider.value,
                        "path": path,
                        "status_code": e.response.status_code,
                    }
                )
                raise PaymentProviderError(
                    self.provider.value,
                    f"{self.provider.value} responded with HTTP {e.response.status_code}",
                    upstream_status=e.response.status_code,
                ) from e
            except httpx.HTTPError as e:
                logger.error(
                    "Payment provider request failed",
                    extra={"provider": self.provider.value, "path": path, "error": str(e)}
                )
                raise PaymentProviderError(
                    self.provider.value,
                    f"Could not reach {self.provider.value}: {e.__class__.__name__}",
                ) from e
            except ValueError as e:
                raise PaymentProviderError(
                    self.provider.value,
                    f"{self.provider.value} returned a non-JSON response",
                ) from e

    def _require_payment_id(self, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise MalformedWebhookError(
                self.provider.value,
                "Webhook payload does not reference a payment",
            )
        return value

    def _malformed(self, detail: str) -> MalformedWebhookError:
        return MalformedWebhookError(self.provider.value, detail)

    # =========================================================================
    # ABSTRACT METHODS - Must be implemented by each adapter
    # =========================================================================

    @abstractmethod
    async def initialize(self, payment: Payment, request: CheckoutRequest) -> ProviderInitResult:
        """
        Open a checkout for ``payment``.

        Returns:
            The redirect URL and the provider's transaction reference
        """

    @abstractmethod
    async def verify(self, payment: Payment) -> PaymentStatus:
        """Ask the provider for the current status of ``payment``."""

    @abstractmethod
    def decode_webhook(self, payload: Dict[str, Any]) -> DecodedWebhook:
        """
        Translate a provider webhook body.

        Events other than the provider's success event decode as FAILED.

        Raises:
            MalformedWebhookError: If the payload carries no payment id
        """

    @abstractmethod
    def verify_signature(self, headers: Mapping[str, str], raw_body: bytes) -> bool:
        """Check the webhook signature against the configured secret."""
