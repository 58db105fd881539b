"""Notification dispatcher for customer emails and admin alerts."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.config import settings
from ..core.database import utcnow
from ..core.observability import metrics_collector
from ..models.availability import TourAvailability
from ..models.booking import Booking, BookingStatus
from ..models.notification import NotificationRecord, NotificationType
from ..models.payment import Payment
from ..models.user import NotificationPreference, User, UserRole
from .email_transport import EmailMessage, EmailTransport

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"

# Applied when a user has never saved preferences
DEFAULT_PREFERENCES: Dict[str, bool] = {
    "email_notifications": True,
    "booking_confirmations": True,
    "tour_reminders": True,
    "payment_updates": True,
    "marketing_emails": False,
}

_template_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
    undefined=StrictUndefined,
    keep_trailing_newline=False,
)


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


@dataclass
class RenderedEmail:
    subject: str
    body_text: str
    body_html: str


@dataclass
class ReminderRunResult:
    """Outcome of one reminder sweep."""
    candidates: int = 0
    sent: int = 0
    failed: int = 0


def render_email(template_name: str, context: Dict[str, Any]) -> RenderedEmail:
    """Render the subject, plain-text and HTML parts of ``template_name``."""
    subject = _template_env.get_template(f"{template_name}.subject.txt").render(**context)
    return RenderedEmail(
        subject=" ".join(subject.split()),
        body_text=_template_env.get_template(f"{template_name}.txt").render(**context),
        body_html=_template_env.get_template(f"{template_name}.html").render(**context),
    )


class NotificationService:
    """
    Service for outbound notifications.

    Every send method is meant to run after the business transaction has
    committed, wrapped in ``dispatch_safely`` so a delivery problem never
    reaches the caller.
    """

    def __init__(self, db: AsyncSession, transport: EmailTransport):
        self.db = db
        self.transport = transport

    async def dispatch_safely(
        self,
        kind: str,
        operation: Callable[..., Awaitable[bool]],
        *args: Any,
    ) -> bool:
        """
        Run a send operation and commit its audit record; never raise.

        Returns:
            What the operation returned (False when preferences suppressed
            the email), or False when anything failed. On failure only the
            notification's own pending writes are rolled back.
        """
        try:
            sent = await operation(*args)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            metrics_collector.record_notification(kind, "failed")
            logger.error(
                "Notification dispatch failed",
                extra={"kind": kind, "args": [str(arg) for arg in args]},
                exc_info=True
            )
            return False

        metrics_collector.record_notification(kind, "sent" if sent else "skipped")
        return sent

    async def get_preferences(self, user_id: str) -> Dict[str, bool]:
        """Return the user's notification switches, defaulting when none are stored."""
        result = await self.db.execute(
            select(NotificationPreference).where(NotificationPreference.user_id == user_id)
        )
        preference = result.scalar_one_or_none()
        if preference is None:
            return dict(DEFAULT_PREFERENCES)
        return {key: getattr(preference, key) for key in DEFAULT_PREFERENCES}

    async def _allows(self, user: User, switch: str) -> bool:
        preferences = await self.get_preferences(user.id)
        allowed = preferences["email_notifications"] and preferences[switch]
        if not allowed:
            logger.info(
                "Email skipped by user preference",
                extra={"user_id": user.id, "preference": switch}
            )
        return allowed

    async def _deliver(
        self,
        notification_type: NotificationType,
        template_name: str,
        recipient: str,
        context: Dict[str, Any],
        booking_id: str,
        payment_id: Optional[str] = None,
    ) -> None:
        rendered = render_email(template_name, context)
        await self.transport.send(EmailMessage(
            to=recipient,
            subject=rendered.subject,
            body_text=rendered.body_text,
            body_html=rendered.body_html,
            from_email=settings.email_from,
        ))

        self.db.add(NotificationRecord(
            type=notification_type,
            recipient_email=recipient,
            subject=rendered.subject,
            booking_id=booking_id,
            payment_id=payment_id,
        ))
        await self.db.flush()

        logger.info(
            "Notification sent",
            extra={
                "type": notification_type.value,
                "recipient": recipient,
                "booking_id": booking_id,
                "payment_id": payment_id,
            }
        )

    async def _load_booking(self, booking_id: str) -> Booking:
        result = await self.db.execute(
            select(Booking)
            .options(
                selectinload(Booking.user),
                selectinload(Booking.tour),
                selectinload(Booking.availability),
            )
            .where(Booking.id == booking_id)
        )
        return result.scalar_one()

    async def _load_payment(self, payment_id: str) -> Payment:
        result = await self.db.execute(
            select(Payment)
            .options(
                selectinload(Payment.booking).selectinload(Booking.user),
                selectinload(Payment.booking).selectinload(Booking.tour),
            )
            .where(Payment.id == payment_id)
        )
        return result.scalar_one()

    async def send_booking_confirmation(self, booking_id: str, payment_id: Optional[str] = None) -> bool:
        """Email the customer that their booking is confirmed, with the receipt when paid."""
        booking = await self._load_booking(booking_id)
        if not await self._allows(booking.user, "booking_confirmations"):
            return False

        payment = await self.db.get(Payment, payment_id) if payment_id else None
        context = {
            "customer_name": booking.user.name or "Valued Customer",
            "booking_id": booking.id,
            "tour_title": booking.tour.title,
            "travelers_count": booking.travelers_count,
            "total_price": booking.total_price,
            "currency": payment.currency if payment else "",
            "tour_start_date": booking.availability.start_date,
            "payment": {
                "id": payment.id,
                "amount": payment.amount,
                "currency": payment.currency,
                "method": _plain(payment.method),
                "provider": _plain(payment.provider),
            } if payment else None,
        }
        await self._deliver(
            NotificationType.BOOKING_CONFIRMATION,
            "booking_confirmation",
            booking.user.email,
            context,
            booking_id=booking.id,
            payment_id=payment.id if payment else None,
        )
        return True

    async def send_booking_cancellation(self, booking_id: str) -> bool:
        """Tell the customer an administrator cancelled their booking."""
        booking = await self._load_booking(booking_id)
        if not await self._allows(booking.user, "booking_confirmations"):
            return False

        await self._deliver(
            NotificationType.BOOKING_CANCELLATION,
            "booking_cancellation",
            booking.user.email,
            {
                "customer_name": booking.user.name or "Valued Customer",
                "booking_id": booking.id,
                "tour_title": booking.tour.title,
                "tour_start_date": booking.availability.start_date,
                "reason": booking.cancellation_reason,
            },
            booking_id=booking.id,
        )
        return True

    async def send_payment_status(self, payment_id: str) -> bool:
        """Email the customer the current status of a payment."""
        payment = await self._load_payment(payment_id)
        user = payment.booking.user
        if not await self._allows(user, "payment_updates"):
            return False

        await self._deliver(
            NotificationType.PAYMENT_STATUS,
            "payment_status",
            user.email,
            {
                "customer_name": user.name or "Valued Customer",
                "payment_id": payment.id,
                "booking_id": payment.booking_id,
                "tour_title": payment.booking.tour.title,
                "amount": payment.amount,
                "currency": payment.currency,
                "status": _plain(payment.status),
                "provider": _plain(payment.provider),
            },
            booking_id=payment.booking_id,
            payment_id=payment.id,
        )
        return True

    async def send_payment_failure_alert(self, payment_id: str) -> bool:
        """
        Alert every administrator about a failed payment.

        Each recipient's record is committed once its email is sent, so an
        outage partway through keeps the alerts already delivered.
        """
        payment = await self._load_payment(payment_id)
        result = await self.db.execute(select(User).where(User.role == UserRole.ADMIN))
        admins = result.scalars().all()
        if not admins:
            logger.warning("No administrators to alert about failed payment", extra={"payment_id": payment_id})
            return False

        customer = payment.booking.user
        for admin in admins:
            await self._deliver(
                NotificationType.PAYMENT_FAILURE,
                "payment_failure",
                admin.email,
                {
                    "admin_name": admin.name or "Admin",
                    "payment_id": payment.id,
                    "booking_id": payment.booking_id,
                    "amount": payment.amount,
                    "currency": payment.currency,
                    "provider": _plain(payment.provider),
                    "customer_name": customer.name or "Unknown",
                    "customer_email": customer.email,
                    "tour_title": payment.booking.tour.title,
                },
                booking_id=payment.booking_id,
                payment_id=payment.id,
            )
            await self.db.commit()
        return True

    async def send_tour_reminder(self, booking_id: str, days_until_tour: int) -> bool:
        booking = await self._load_booking(booking_id)
        if not await self._allows(booking.user, "tour_reminders"):
            return False

        await self._deliver(
            NotificationType.TOUR_REMINDER,
            "tour_reminder",
            booking.user.email,
            {
                "customer_name": booking.user.name or "Valued Customer",
                "booking_id": booking.id,
                "tour_title": booking.tour.title,
                "tour_start_date": booking.availability.start_date,
                "days_until_tour": days_until_tour,
            },
            booking_id=booking.id,
        )
        return True

    async def send_tour_reminders(self, today: Optional[date] = None) -> ReminderRunResult:
        """
        Remind customers with CONFIRMED bookings whose tour starts in one of
        the configured lead times (7, 3 and 1 days by default).

        Each reminder is dispatched independently; one failure does not stop
        the sweep.
        """
        today = today or utcnow().date()
        outcome = ReminderRunResult()

        for days in settings.reminder_days:
            window_start = datetime.combine(today + timedelta(days=days), time.min)
            window_end = window_start + timedelta(days=1)

            result = await self.db.execute(
                select(Booking.id)
                .join(TourAvailability, Booking.availability_id == TourAvailability.id)
                .where(
                    Booking.status == BookingStatus.CONFIRMED,
                    TourAvailability.start_date >= window_start,
                    TourAvailability.start_date < window_end,
                )
                .order_by(TourAvailability.start_date)
            )
            booking_ids = list(result.scalars().all())
            outcome.candidates += len(booking_ids)

            for booking_id in booking_ids:
                try:
                    sent = await self.send_tour_reminder(booking_id, days)
                    await self.db.commit()
                except Exception:
                    await self.db.rollback()
                    outcome.failed += 1
                    metrics_collector.record_notification("tour_reminder", "failed")
                    logger.error(
                        "Tour reminder failed",
                        extra={"booking_id": booking_id, "days_until_tour": days},
                        exc_info=True
                    )
                    continue
                if sent:
                    outcome.sent += 1
                metrics_collector.record_notification("tour_reminder", "sent" if sent else "skipped")

        logger.info(
            "Tour reminder sweep finished",
            extra={"candidates": outcome.candidates, "sent": outcome.sent, "failed": outcome.failed}
        )
        return outcome
