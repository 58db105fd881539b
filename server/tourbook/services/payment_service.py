"""Payment initialization and invoicing."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.auth import Principal
from ..core.config import settings
from ..core.exceptions import (
    BusinessRuleError,
    InvalidBookingTransitionError,
    NotFoundError,
    PaymentProviderError,
)
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus
from ..models.payment import Payment, PaymentMethod, PaymentProvider, PaymentStatus
from ..models.tour import Tour
from ..payments import CheckoutRequest, PaymentGatewayRegistry
from .booking_service import BookingService
from .business_rules import validate_payment

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = 0.01


@dataclass
class Invoice:
    invoice_number: str
    booking_id: str
    customer_name: Optional[str]
    customer_email: str
    tour_title: str
    destination: str
    tour_date: datetime
    travelers_count: int
    total_amount: float
    currency: str
    payment_method: str
    payment_date: datetime
    status: str


class PaymentService:
    """Service that opens provider checkouts for pending bookings."""

    def __init__(self, db: AsyncSession, gateways: PaymentGatewayRegistry):
        self.db = db
        self.gateways = gateways
        self.bookings = BookingService(db)

    async def _load_booking(self, booking_id: str) -> Booking:
        result = await self.db.execute(
            select(Booking)
            .options(
                selectinload(Booking.user),
                selectinload(Booking.tour).selectinload(Tour.destination),
                selectinload(Booking.availability),
            )
            .where(Booking.id == booking_id)
        )
        booking = result.scalar_one_or_none()
        if not booking:
            raise NotFoundError(resource_type="booking", resource_id=booking_id)
        return booking

    async def initialize(
        self,
        principal: Principal,
        booking_id: str,
        amount: float,
        currency: str,
        method: PaymentMethod,
        provider: PaymentProvider,
    ) -> Payment:
        """
        Record a PENDING payment and open a checkout with the provider.

        Raises:
            BusinessRuleError: Invalid amount/currency/method, or an amount
                that differs from the booking total
            NotFoundError: If booking not found
            PermissionDeniedError: If the caller does not own the booking
            InvalidBookingTransitionError: If the booking is not PENDING
            PaymentProviderError: If the provider call fails; the payment is
                stored as FAILED
        """
        validate_payment(amount, currency, method, provider)
        gateway = self.gateways.get(provider)

        booking = await self._load_booking(booking_id)
        self.bookings.ensure_can_access(principal, booking)

        if booking.status != BookingStatus.PENDING:
            raise InvalidBookingTransitionError(booking.id, booking.status, BookingStatus.CONFIRMED)

        if abs(amount - booking.total_price) > AMOUNT_TOLERANCE:
            raise BusinessRuleError(
                f"Payment amount {amount:.2f} does not match booking total {booking.total_price:.2f}",
                field="amount",
            )

        payment = Payment(
            booking_id=booking.id,
            amount=round(amount, 2),
            currency=currency.upper(),
            method=method,
            provider=provider,
            status=PaymentStatus.PENDING,
        )
        self.db.add(payment)
        await self.db.commit()
        await self.db.refresh(payment)

        checkout = CheckoutRequest(
            customer_email=booking.user.email,
            customer_name=booking.user.name,
            description=f"{booking.tour.title} - {booking.travelers_count} traveler(s)",
            callback_url=settings.payment_callback_url,
        )

        try:
            result = await gateway.initialize(payment, checkout)
        except PaymentProviderError:
            payment.status = PaymentStatus.FAILED
            await self.db.commit()
            metrics_collector.record_payment_transition(provider.value, PaymentStatus.FAILED.value)
            logger.error(
                "Payment initialization failed at provider",
                extra={"payment_id": payment.id, "booking_id": booking.id, "provider": provider.value}
            )
            raise

        payment.provider_transaction_id = result.provider_transaction_id
        payment.payment_url = result.payment_url
        await self.db.commit()
        await self.db.refresh(payment)

        metrics_collector.record_payment_initialized(provider.value)
        logger.info(
            "Payment initialized",
            extra={
                "payment_id": payment.id,
                "booking_id": booking.id,
                "provider": provider.value,
                "amount": payment.amount,
                "currency": payment.currency
            }
        )
        return payment

    async def generate_invoice(self, principal: Principal, booking_id: str) -> Invoice:
        """
        Build the invoice for a booking from its successful payment.

        Raises:
            NotFoundError: If the booking or a successful payment is missing
        """
        booking = await self._load_booking(booking_id)
        self.bookings.ensure_can_access(principal, booking)

        result = await self.db.execute(
            select(Payment)
            .where(Payment.booking_id == booking_id, Payment.status == PaymentStatus.SUCCESS)
            .order_by(Payment.updated_at.desc())
        )
        payment = result.scalars().first()
        if not payment:
            raise NotFoundError(
                resource_type="payment",
                detail=f"No successful payment found for booking {booking_id}",
            )

        return Invoice(
            invoice_number=f"INV-{booking.id}",
            booking_id=booking.id,
            customer_name=booking.user.name,
            customer_email=booking.user.email,
            tour_title=booking.tour.title,
            destination=booking.tour.destination.name,
            tour_date=booking.availability.start_date,
            travelers_count=booking.travelers_count,
            total_amount=booking.total_price,
            currency=payment.currency,
            payment_method=getattr(payment.method, "value", payment.method),
            payment_date=payment.updated_at,
            status=getattr(booking.status, "value", booking.status),
        )
