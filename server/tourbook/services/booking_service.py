"""Booking lifecycle service."""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import Principal
from ..core.database import utcnow
from ..core.exceptions import (
    BusinessRuleError,
    ConflictError,
    InvalidBookingTransitionError,
    NotFoundError,
    PermissionDeniedError,
)
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus
from ..models.tour import Tour
from .business_rules import validate_availability, validate_referential_integrity
from .capacity_ledger import CapacityLedger
from .notification_service import NotificationService

logger = logging.getLogger(__name__)


class BookingService:
    """
    Service for booking state transitions.

    PENDING -> CONFIRMED | CANCELLED, CONFIRMED -> CANCELLED. Slots are only
    taken when a booking is confirmed and only returned when a confirmed
    booking is cancelled.
    """

    def __init__(self, db: AsyncSession, notifications: Optional[NotificationService] = None):
        self.db = db
        self.ledger = CapacityLedger(db)
        self.notifications = notifications

    async def get_booking_by_id(self, booking_id: str) -> Optional[Booking]:
        return await self.db.get(Booking, booking_id)

    async def get_booking_by_id_or_raise(self, booking_id: str, for_update: bool = False) -> Booking:
        """
        Get booking by ID, optionally locking the row.

        Raises:
            NotFoundError: If booking not found
        """
        stmt = select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        booking = result.scalar_one_or_none()
        if not booking:
            raise NotFoundError(resource_type="booking", resource_id=booking_id)
        return booking

    def ensure_can_access(self, principal: Principal, booking: Booking) -> None:
        """Owners and staff may act on a booking; anyone else is refused."""
        if booking.user_id != principal.id and not principal.is_staff:
            logger.warning(
                "Booking access denied",
                extra={"booking_id": booking.id, "user_id": principal.id}
            )
            raise PermissionDeniedError("You do not have access to this booking")

    async def create(
        self,
        user_id: str,
        tour_id: str,
        availability_id: str,
        travelers_count: int,
        today: Optional[date] = None,
    ) -> Booking:
        """
        Create a PENDING booking.

        Capacity is only checked here, not taken; slots are taken on
        confirmation.

        Raises:
            BusinessRuleError: Malformed ids, travelers out of range, or an
                unbookable tour/offering
            NotFoundError: If the tour or offering does not exist
            InsufficientCapacityError: If the offering lacks free slots
        """
        validate_referential_integrity("User", user_id, "Tour", tour_id)
        validate_referential_integrity("Tour", tour_id, "Availability", availability_id)
        if travelers_count < 1:
            raise BusinessRuleError("Number of travelers must be at least 1", field="travelers_count")

        tour = await self.db.get(Tour, tour_id)
        if not tour:
            raise NotFoundError(resource_type="tour", resource_id=tour_id)

        availability = await self.ledger.reserve_tentative(availability_id, travelers_count)
        if availability.tour_id != tour_id:
            raise BusinessRuleError("Availability does not belong to this tour", field="availability_id")

        validate_availability(tour, availability, travelers_count, today or utcnow().date())

        booking = Booking(
            user_id=user_id,
            tour_id=tour_id,
            availability_id=availability_id,
            travelers_count=travelers_count,
            total_price=round(tour.price_per_person * travelers_count, 2),
            status=BookingStatus.PENDING,
        )
        self.db.add(booking)
        await self.db.commit()
        await self.db.refresh(booking)

        metrics_collector.record_booking_created()
        logger.info(
            "Booking created",
            extra={
                "booking_id": booking.id,
                "user_id": user_id,
                "availability_id": availability_id,
                "travelers_count": travelers_count,
                "total_price": booking.total_price
            }
        )
        return booking

    async def _transition(
        self,
        booking: Booking,
        target: BookingStatus,
        cancellation_reason: Optional[str] = None,
    ) -> bool:
        """Status-guarded update; False when the row no longer has ``booking.status``."""
        values = {"status": target}
        if cancellation_reason is not None:
            values["cancellation_reason"] = cancellation_reason

        result = await self.db.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.status == booking.status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def apply_confirmation(self, booking: Booking) -> bool:
        """
        Flip a PENDING booking to CONFIRMED and take its slots, without committing.

        Returns:
            True if this call confirmed the booking, False if it was no
            longer PENDING

        Raises:
            IntegrityViolationError: If the offering no longer has the slots
        """
        if booking.status != BookingStatus.PENDING:
            return False
        if not await self._transition(booking, BookingStatus.CONFIRMED):
            return False

        await self.ledger.commit(booking.availability_id, booking.travelers_count)
        return True

    async def confirm(self, booking_id: str) -> Booking:
        """
        Confirm a booking, taking its slots in the same transaction.

        Already CONFIRMED bookings are returned unchanged.

        Raises:
            NotFoundError: If booking not found
            InvalidBookingTransitionError: If the booking is CANCELLED
            IntegrityViolationError: If the slots are gone; nothing is changed
        """
        booking = await self.get_booking_by_id_or_raise(booking_id, for_update=True)

        if booking.status == BookingStatus.CONFIRMED:
            logger.info("Booking already confirmed", extra={"booking_id": booking_id})
            return booking
        if booking.status == BookingStatus.CANCELLED:
            raise InvalidBookingTransitionError(booking_id, booking.status, BookingStatus.CONFIRMED)

        try:
            confirmed = await self.apply_confirmation(booking)
            if not confirmed:
                raise ConflictError(f"Booking {booking_id} changed while being confirmed")
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        booking = await self.get_booking_by_id_or_raise(booking_id)
        metrics_collector.record_booking_confirmed()
        logger.info(
            "Booking confirmed",
            extra={
                "booking_id": booking_id,
                "availability_id": booking.availability_id,
                "travelers_count": booking.travelers_count
            }
        )

        if self.notifications:
            sent = await self.notifications.dispatch_safely(
                "booking_confirmation", self.notifications.send_booking_confirmation, booking_id
            )
            if not sent:
                # A failed dispatch rolls back and expires the session
                booking = await self.get_booking_by_id_or_raise(booking_id)
        return booking

    async def cancel(self, booking_id: str, reason: Optional[str] = None) -> Booking:
        """
        Cancel a booking; a CONFIRMED booking gives its slots back.

        Cancelling an already CANCELLED booking is a no-op.

        Raises:
            NotFoundError: If booking not found
            ConflictError: If the booking changed status concurrently
        """
        booking = await self.get_booking_by_id_or_raise(booking_id, for_update=True)

        if booking.status == BookingStatus.CANCELLED:
            logger.info("Booking already cancelled", extra={"booking_id": booking_id})
            return booking

        releases_slots = booking.status == BookingStatus.CONFIRMED
        try:
            if not await self._transition(booking, BookingStatus.CANCELLED, cancellation_reason=reason):
                raise ConflictError(f"Booking {booking_id} changed while being cancelled")
            if releases_slots:
                await self.ledger.release(booking.availability_id, booking.travelers_count)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        booking = await self.get_booking_by_id_or_raise(booking_id)
        metrics_collector.record_booking_cancelled(released=releases_slots)
        logger.info(
            "Booking cancelled",
            extra={
                "booking_id": booking_id,
                "released_slots": booking.travelers_count if releases_slots else 0,
                "reason": reason
            }
        )
        return booking

    async def get(self, principal: Principal, booking_id: str) -> Booking:
        booking = await self.get_booking_by_id_or_raise(booking_id)
        self.ensure_can_access(principal, booking)
        return booking

    async def list_for_user(self, user_id: str) -> list[Booking]:
        """Bookings of ``user_id``, newest first."""
        result = await self.db.execute(
            select(Booking)
            .where(Booking.user_id == user_id)
            .order_by(Booking.created_at.desc(), Booking.id.desc())
        )
        return list(result.scalars().all())

    async def cancel_for(self, principal: Principal, booking_id: str, reason: Optional[str] = None) -> Booking:
        """
        Cancel on behalf of ``principal``.

        When staff cancel someone else's booking the customer is emailed.
        """
        booking = await self.get_booking_by_id_or_raise(booking_id)
        self.ensure_can_access(principal, booking)
        was_cancelled = booking.status == BookingStatus.CANCELLED

        booking = await self.cancel(booking_id, reason)

        if not was_cancelled and booking.user_id != principal.id:
            await self._notify_cancellation(booking)
        return booking

    async def update_status(self, principal: Principal, booking_id: str, status: BookingStatus) -> Booking:
        """
        Administrative status override, routed through confirm and cancel.

        A booking can never be moved back to PENDING.

        Raises:
            PermissionDeniedError: If the caller is not staff
            InvalidBookingTransitionError: For transitions the lifecycle forbids
        """
        if not principal.is_staff:
            raise PermissionDeniedError("Only staff can change booking status", required_role="STAFF")

        booking = await self.get_booking_by_id_or_raise(booking_id)
        logger.info(
            "Booking status override requested",
            extra={
                "booking_id": booking_id,
                "current_status": booking.status,
                "target_status": status,
                "requested_by": principal.id
            }
        )

        if status == BookingStatus.PENDING:
            if booking.status == BookingStatus.PENDING:
                return booking
            raise InvalidBookingTransitionError(booking_id, booking.status, status)
        if status == BookingStatus.CONFIRMED:
            return await self.confirm(booking_id)

        was_cancelled = booking.status == BookingStatus.CANCELLED
        booking = await self.cancel(booking_id, reason=f"Cancelled by {principal.role.value.lower()}")
        if not was_cancelled:
            await self._notify_cancellation(booking)
        return booking

    async def _notify_cancellation(self, booking: Booking) -> None:
        if not self.notifications:
            return
        await self.notifications.dispatch_safely(
            "booking_cancellation", self.notifications.send_booking_cancellation, booking.id
        )
        await self.db.refresh(booking)
