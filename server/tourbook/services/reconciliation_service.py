"""Payment reconciliation: applying provider outcomes to payments and bookings."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.auth import Principal
from ..core.exceptions import (
    IntegrityViolationError,
    NotFoundError,
    PaymentProviderError,
    ProviderMismatchError,
)
from ..core.observability import metrics_collector
from ..models.booking import BookingStatus
from ..models.payment import Payment, PaymentStatus
from ..payments import DecodedWebhook, PaymentGatewayRegistry
from .booking_service import BookingService
from .notification_service import NotificationService

logger = logging.getLogger(__name__)


def _plain(value) -> str:
    return getattr(value, "value", value)


class ReconciliationService:
    """
    Applies payment status changes reported by providers.

    The payment update and the booking confirmation it triggers share one
    transaction. Notifications go out only after that transaction commits.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateways: PaymentGatewayRegistry,
        notifications: Optional[NotificationService] = None,
    ):
        self.db = db
        self.gateways = gateways
        self.notifications = notifications
        self.bookings = BookingService(db, notifications)

    async def get_payment_or_raise(self, payment_id: str, for_update: bool = False) -> Payment:
        """
        Get payment by ID with its booking loaded.

        Raises:
            NotFoundError: If payment not found
        """
        stmt = (
            select(Payment)
            .options(selectinload(Payment.booking))
            .where(Payment.id == payment_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError(resource_type="payment", resource_id=payment_id)
        return payment

    async def process_webhook(self, decoded: DecodedWebhook) -> Payment:
        """
        Apply a decoded provider webhook.

        Raises:
            NotFoundError: If the referenced payment does not exist
            ProviderMismatchError: If the payment belongs to another provider;
                the payment is left unchanged
        """
        payment = await self.get_payment_or_raise(decoded.payment_id)

        if _plain(payment.provider) != _plain(decoded.provider):
            logger.warning(
                "Webhook provider does not match payment",
                extra={
                    "payment_id": payment.id,
                    "expected_provider": _plain(payment.provider),
                    "received_provider": _plain(decoded.provider)
                }
            )
            raise ProviderMismatchError(payment.id, _plain(payment.provider), _plain(decoded.provider))

        return await self.update_status(payment.id, decoded.status, decoded.provider_transaction_id)

    async def verify(self, payment_id: str, principal: Optional[Principal] = None) -> Payment:
        """
        Ask the provider about a PENDING payment and apply any change.

        A provider failure is logged and the payment is returned as stored,
        so the caller can retry later.
        """
        payment = await self.get_payment_or_raise(payment_id)
        if principal is not None:
            self.bookings.ensure_can_access(principal, payment.booking)

        if payment.status != PaymentStatus.PENDING or not payment.provider_transaction_id:
            return payment

        gateway = self.gateways.get(payment.provider)
        try:
            provider_status = await gateway.verify(payment)
        except PaymentProviderError as e:
            logger.warning(
                "Payment verification with provider failed",
                extra={"payment_id": payment_id, "provider": _plain(payment.provider), "error": e.message}
            )
            return payment

        if provider_status == payment.status:
            return payment
        return await self.update_status(payment_id, provider_status, payment.provider_transaction_id)

    async def update_status(
        self,
        payment_id: str,
        new_status: PaymentStatus,
        provider_transaction_id: Optional[str] = None,
    ) -> Payment:
        """
        Persist a payment status and confirm the booking on first success.

        Repeating the same update is harmless: the booking is confirmed and
        its slots taken at most once. SUCCESS is terminal; a later
        non-success status for a settled payment is logged and ignored.

        Raises:
            NotFoundError: If payment not found
            IntegrityViolationError: If confirming would oversell the
                offering; nothing is persisted
        """
        payment = await self.get_payment_or_raise(payment_id, for_update=True)
        if payment.status == PaymentStatus.SUCCESS and new_status != PaymentStatus.SUCCESS:
            logger.warning(
                "Ignoring status change for settled payment",
                extra={"payment_id": payment_id, "status": _plain(new_status)}
            )
            return payment

        previous_status = payment.status
        booking_id = payment.booking_id
        provider = _plain(payment.provider)

        try:
            payment.status = new_status
            if provider_transaction_id:
                payment.provider_transaction_id = provider_transaction_id

            confirmed = False
            if new_status == PaymentStatus.SUCCESS:
                booking = await self.bookings.get_booking_by_id_or_raise(booking_id, for_update=True)
                if booking.status == BookingStatus.PENDING:
                    confirmed = await self.bookings.apply_confirmation(booking)

            await self.db.commit()
        except IntegrityViolationError:
            await self.db.rollback()
            logger.error(
                "Payment succeeded but booking could not be confirmed",
                extra={"payment_id": payment_id, "booking_id": booking_id}
            )
            raise
        except Exception:
            await self.db.rollback()
            raise

        status_changed = _plain(previous_status) != _plain(new_status)
        if status_changed:
            metrics_collector.record_payment_transition(provider, _plain(new_status))
        if confirmed:
            metrics_collector.record_booking_confirmed()

        logger.info(
            "Payment status updated",
            extra={
                "payment_id": payment_id,
                "booking_id": booking_id,
                "previous_status": _plain(previous_status),
                "status": _plain(new_status),
                "booking_confirmed": confirmed
            }
        )

        if self.notifications:
            if status_changed:
                await self.notifications.dispatch_safely(
                    "payment_status", self.notifications.send_payment_status, payment_id
                )
            if confirmed:
                await self.notifications.dispatch_safely(
                    "booking_confirmation",
                    self.notifications.send_booking_confirmation,
                    booking_id,
                    payment_id,
                )
            if new_status == PaymentStatus.FAILED:
                await self.notifications.dispatch_safely(
                    "payment_failure", self.notifications.send_payment_failure_alert, payment_id
                )

        return await self.get_payment_or_raise(payment_id)
